"""Domain errors and failure typing."""


class PipelineError(Exception):
    """Base class for monitor failures."""

    error_code = "PIPELINE_ERROR"


class ConfigError(PipelineError):
    """Raised for invalid or missing configuration."""

    error_code = "CONFIG_ERROR"


class StageError(PipelineError):
    """Raised for stage failures that are recoverable at run level."""

    error_code = "STAGE_ERROR"


class FeedFormatError(StageError):
    """Raised when a feed body cannot be decoded at all."""

    error_code = "FEED_FORMAT_ERROR"


class StoreError(PipelineError):
    """Raised when the object store cannot be read or written. Fatal to a run."""

    error_code = "STORE_ERROR"
