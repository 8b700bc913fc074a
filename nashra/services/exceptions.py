class PipelineError(Exception):
    """Base class for refresh and alert pipeline errors."""


class StoreUnavailableError(PipelineError):
    """The database cannot be reached; the rest of the cycle is pointless."""


class RefreshInProgressError(PipelineError):
    """Another refresh cycle holds the runner lock."""


class RefreshCancelledError(PipelineError):
    pass
