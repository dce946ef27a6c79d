class PipelineError(Exception):
    """Base class for failures raised by the processing collaborators."""


class StorageError(PipelineError):
    pass


class TranscodeError(PipelineError):
    pass


class LedgerError(PipelineError):
    pass
