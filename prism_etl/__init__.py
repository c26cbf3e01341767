# prism_etl/__init__.py
"""Bulk download of PRISM climate rasters cropped to a study area."""

from .config import PipelineConfig, load_config, validate_config
from .errors import (
    ConfigurationError,
    FetchError,
    MalformedDataset,
    PrismPipelineError,
    WriteError,
)
from .run_pipeline import PipelineReport, run_pipeline

__all__ = [
    'PipelineConfig',
    'load_config',
    'validate_config',
    'ConfigurationError',
    'FetchError',
    'MalformedDataset',
    'PrismPipelineError',
    'WriteError',
    'PipelineReport',
    'run_pipeline',
]
