# prism_etl/errors.py
"""Exception types raised by the PRISM download/crop pipeline."""


class PrismPipelineError(Exception):
    """Base class for every error the pipeline reports."""


class ConfigurationError(PrismPipelineError, ValueError):
    """Invalid run configuration. Fatal, raised before any I/O."""


class FetchError(PrismPipelineError):
    """A PRISM download failed for one variable."""

    def __init__(self, message, variable=None):
        super().__init__(message)
        self.variable = variable


class MalformedDataset(PrismPipelineError):
    """A raw dataset directory does not hold exactly one primary raster."""

    def __init__(self, directory, count):
        self.directory = directory
        self.count = count
        super().__init__(
            f"{directory}: expected exactly one .bil raster, found {count}"
        )


class WriteError(PrismPipelineError):
    """Writing a cropped raster or copying a sidecar failed."""

    def __init__(self, message, directory=None):
        super().__init__(message)
        self.directory = directory
