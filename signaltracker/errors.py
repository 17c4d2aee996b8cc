"""
Errors that abort a run before any ledger mutation.

Everything else (bad documents, a failing subscriber, a failed contract call)
is logged, counted and skipped.
"""


class FatalRunError(Exception):
    """A run cannot start"""


class ConfigurationError(FatalRunError):
    """Required settings are missing or invalid"""


class StoreUnavailableError(FatalRunError):
    """The tracking store failed to connect or its health check"""


class ContractUnavailableError(FatalRunError):
    """The staking contract health check failed"""


class RunLockNotAcquiredError(FatalRunError):
    """Another run holds the run lock"""
