"""
Exceptions raised by the sync pipeline.
Every error carries the stage that produced it as a message prefix.
"""


class PipelineError(RuntimeError):
    """Base class for failures surfaced by write_dynamic_parquet."""

    stage = 'pipeline'

    def __init__(self, message):
        self.detail = message
        super().__init__(f"{self.stage}: {message}")


class TransformError(PipelineError):
    """A record could not be flattened."""

    stage = 'transform'


class EncodingError(PipelineError):
    """The Arrow schema or column arrays could not be built."""

    stage = 'encode'


class StorageError(PipelineError):
    """Parquet serialization or a GCS upload failed."""

    stage = 'storage'
