"""Exceptions raised by the optimiser pipeline."""

from typing import Optional


class OptimiserError(Exception):
    """Base class for everything the pipeline raises on purpose."""


class ConfigError(OptimiserError):
    pass


class DiscoveryError(OptimiserError):
    """Input root is missing or unreadable. Nothing can be processed."""


class CodecError(OptimiserError):
    pass


class VariantCellError(OptimiserError):
    """One width x format cell failed for one image.

    Recorded on the image's result and logged. Never aborts the image or the run.
    """

    def __init__(self, source: str, width: int, fmt: str, cause: Optional[BaseException] = None):
        self.source = source
        self.width = width
        self.format = fmt
        self.cause = cause
        reason = str(cause) if cause is not None else "unknown error"
        super().__init__(f"{source} [{width}w {fmt}]: {reason}")


class MarkupWriteError(OptimiserError):
    pass
