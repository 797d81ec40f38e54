"""Responsive image variants and <picture> snippets for a directory of images."""

from .config import OutputFormat, PipelineConfig, VariantSpec
from .errors import (
    CodecError,
    ConfigError,
    DiscoveryError,
    MarkupWriteError,
    OptimiserError,
    VariantCellError,
)
from .pipeline import optimise_single, run

__version__ = "0.1.0"

__all__ = [
    "CodecError",
    "ConfigError",
    "DiscoveryError",
    "MarkupWriteError",
    "OptimiserError",
    "OutputFormat",
    "PipelineConfig",
    "VariantCellError",
    "VariantSpec",
    "optimise_single",
    "run",
]
