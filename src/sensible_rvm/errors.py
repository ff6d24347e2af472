from __future__ import annotations


class RVMError(Exception):
    """Base class for errors raised by sensible_rvm."""


class RVMConfigError(RVMError, ValueError):
    """Invalid configuration; fixable by the caller before fitting."""


class RVMNumericalError(RVMError, ArithmeticError):
    """Numerical failure that depends on the data or the hyperparameters."""
