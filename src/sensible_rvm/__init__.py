"""sensible_rvm public API."""
from loguru import logger

from .config import RVMConfig
from .errors import RVMConfigError, RVMError, RVMNumericalError
from .features import (
    Feature,
    InterceptProvider,
    KernelProvider,
    RandomRBFProvider,
    RBFProvider,
)
from .kernels import LinearKernel, PolyKernel, RBFKernel
from .log import enable_logging
from .methods import Method, ProgressInfo
from .model import RVMRegression
from .run import Prediction, RVMResults, RVMRun

logger.disable("sensible_rvm")

__all__ = [
    "Feature",
    "InterceptProvider",
    "KernelProvider",
    "LinearKernel",
    "Method",
    "PolyKernel",
    "Prediction",
    "ProgressInfo",
    "RBFKernel",
    "RBFProvider",
    "RVMConfig",
    "RVMConfigError",
    "RVMError",
    "RVMNumericalError",
    "RVMRegression",
    "RVMResults",
    "RVMRun",
    "RandomRBFProvider",
    "enable_logging",
]
