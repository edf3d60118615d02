"""Exception types raised by the journal engine.

Data-quality problems in broker feeds are never raised; they are logged and
the offending record is skipped. Only invariant breaches (in strict mode) and
upstream trade-store failures surface as exceptions.
"""


class JournalEngineError(Exception):
    """Base class for all engine errors"""


class InvariantViolation(JournalEngineError):
    """A lot or quantity invariant was broken beyond tolerance"""

    def __init__(self, message: str, key: str = ""):
        self.key = key
        super().__init__(f"{key}: {message}" if key else message)


class TradeStoreError(JournalEngineError):
    """The trade store could not supply trades for a report"""

    def __init__(self, user_id: str, cause: Exception):
        self.user_id = user_id
        self.cause = cause
        super().__init__(f"Failed to fetch trades for user {user_id}: {cause}")
