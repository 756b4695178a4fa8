"""fftkit: Fast-and-frugal tree construction for binary classification."""

from loguru import logger

from fftkit.config import CostOutcomes, FFTConfig, load_config
from fftkit.dataset import Dataset
from fftkit.exceptions import ConfigurationError, ConstructionError, DataError, DegenerateCueWarning, FFTError
from fftkit.logging import PACKAGE_NAME, enable_logging
from fftkit.trees import FFTResult, Tree, build_fft, cue_table, performance_table, predict, tree_definitions

logger.disable(PACKAGE_NAME)  # noqa: RUF067 - Disable logging for the fftkit module by default

__all__ = [
    "ConfigurationError",
    "ConstructionError",
    "CostOutcomes",
    "DataError",
    "Dataset",
    "DegenerateCueWarning",
    "FFTConfig",
    "FFTError",
    "FFTResult",
    "Tree",
    "build_fft",
    "cue_table",
    "enable_logging",
    "load_config",
    "performance_table",
    "predict",
    "tree_definitions",
]
