from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from .methods import Method


class RVMConfig(BaseModel):
    """Hyperparameters shared by every fit method."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    method: Method = Method.FAST_TIPPING
    # Convergence: sum of |alpha_old - alpha_new| over finite entries.
    fit_threshold: float = Field(1e-10, gt=0)
    # Alpha above this value is treated as infinite and the feature is pruned.
    alpha_threshold: float = Field(1e9, gt=0)
    max_iter: int = Field(10_000, ge=1)
    # Fast online only: consecutive rejections before a candidate is dropped.
    max_failures: int = Field(10_000, ge=1)
    seed: Optional[int] = None
