from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, List, Optional, Sequence, Tuple
from warnings import warn

import numpy as np
from loguru import logger
from pydantic import ValidationError

from .config import RVMConfig
from .errors import RVMConfigError
from .features import Feature, FeatureProvider, InterceptProvider, RBFProvider
from .methods import Method, ProgressCallback, get_method
from .run import RVMResults, RVMRun


def _default_providers() -> Tuple[FeatureProvider, ...]:
    return (InterceptProvider(), RBFProvider([1.0], 1.0))


@dataclass(frozen=True)
class RVMRegression:
    """Relevance Vector Machine regression.

    Holds the feature providers and hyperparameters; ``fit`` returns an
    immutable ``RVMRun`` used for prediction.
    """

    providers: Tuple[FeatureProvider, ...] = field(default_factory=_default_providers)
    config: RVMConfig = field(default_factory=RVMConfig)

    def __post_init__(self) -> None:
        providers = tuple(self.providers)
        if not providers:
            raise RVMConfigError("At least one feature provider is required.")
        object.__setattr__(self, "providers", providers)

    # ---- constructor ----
    @staticmethod
    def new(
        providers: Optional[Sequence[FeatureProvider]] = None, **settings: Any
    ) -> "RVMRegression":
        """Build a model from providers and RVMConfig field values.

        ``providers=None`` selects the default intercept plus RBF(gamma=1) set.
        """
        providers = _default_providers() if providers is None else tuple(providers)
        return RVMRegression(providers=providers, config=_make_config(**settings))

    # ---- fluent configuration ----
    def with_providers(self, *providers: FeatureProvider) -> "RVMRegression":
        return replace(self, providers=tuple(providers))

    def configure(self, **settings: Any) -> "RVMRegression":
        merged = {**self.config.model_dump(), **settings}
        return replace(self, config=_make_config(**merged))

    def with_method(self, method: Any) -> "RVMRegression":
        return self.configure(method=method)

    @property
    def method(self) -> Method:
        return self.config.method

    # ---- fitting ----
    def generate_features(self, x: np.ndarray, rng: np.random.Generator) -> List[Feature]:
        """Run every provider in order and concatenate their features."""
        features: List[Feature] = []
        for provider in self.providers:
            features.extend(provider.generate_features(x, rng))
        if not features:
            raise RVMConfigError(
                f"Providers {[str(p) for p in self.providers]} generated no features."
            )
        return features

    def fit(
        self, x: Any, y: Any, *, callback: Optional[ProgressCallback] = None
    ) -> RVMRun:
        """Fit the model and return a frozen run.

        ``callback`` receives a ``ProgressInfo`` once before the first
        iteration and once after every iteration.
        """
        x_arr, y_arr = _prepare_training(x, y)
        rng = np.random.default_rng(self.config.seed)

        features = self.generate_features(x_arr, rng)
        method = self.config.method
        logger.info(
            "fitting {} on {} rows with {} candidate features",
            method.value,
            x_arr.shape[0],
            len(features),
        )

        try:
            fr = get_method(method)(
                features, x_arr, y_arr, config=self.config, rng=rng, callback=callback
            )
        finally:
            # training columns live only for the duration of the fit
            for f in features:
                f.release()

        idx = np.asarray(fr.feature_indexes, dtype=int)
        chosen = [features[int(i)] for i in idx]
        training = list(dict.fromkeys(f.train_index for f in chosen if f.train_index >= 0))
        results = RVMResults(
            method=method.value,
            feature_indexes=idx,
            training_indexes=np.asarray(training, dtype=int),
            relevance_vectors=np.stack([f.prototype for f in chosen], axis=0),
            feature_names=tuple(f.name for f in chosen),
            m=np.asarray(fr.m, dtype=float),
            sigma=np.asarray(fr.sigma, dtype=float),
            alpha=np.asarray(fr.alpha, dtype=float),
            beta=float(fr.beta),
            converged=bool(fr.converged),
            iterations=int(fr.iterations),
            stats={"candidates": len(features)},
        )

        if results.converged:
            logger.info(
                "{} converged after {} iterations with {} relevance vectors",
                method.value,
                results.iterations,
                results.rv_count,
            )
        else:
            logger.warning(
                "{} did not converge within {} iterations",
                method.value,
                results.iterations,
            )

        return RVMRun(
            model=self,
            features=tuple(chosen),
            results=results,
            data={"x": x_arr, "y": y_arr},
        )

    def __str__(self) -> str:
        providers = ",".join(str(p) for p in self.providers)
        return f"RVMRegression{{providers=[{providers}],method={self.config.method.value}}}"


def _make_config(**settings: Any) -> RVMConfig:
    try:
        return RVMConfig(**settings)
    except ValidationError as exc:
        raise RVMConfigError(f"Invalid RVM configuration: {exc}") from exc


def _prepare_training(x: Any, y: Any) -> Tuple[np.ndarray, np.ndarray]:
    """Normalize training inputs to an (n, d) matrix and an (n,) target."""
    x_arr = np.asarray(x, dtype=float)
    y_arr = np.asarray(y, dtype=float)

    if x_arr.ndim == 1:
        x_arr = x_arr.reshape(-1, 1)
    if x_arr.ndim != 2:
        raise RVMConfigError(f"x must be 1D or 2D, got shape {x_arr.shape}.")
    if y_arr.ndim == 2 and 1 in y_arr.shape:
        warn("Flattening 2D target with a single column/row to 1D.", UserWarning)
        y_arr = y_arr.reshape(-1)
    if y_arr.ndim != 1:
        raise RVMConfigError(f"y must be 1D, got shape {y_arr.shape}.")
    if x_arr.shape[0] != y_arr.shape[0]:
        raise RVMConfigError(
            f"x has {x_arr.shape[0]} rows but y has {y_arr.shape[0]} values."
        )
    if y_arr.shape[0] < 2:
        raise RVMConfigError("At least two training rows are required.")
    if not (np.all(np.isfinite(x_arr)) and np.all(np.isfinite(y_arr))):
        raise RVMConfigError("Training data contains non-finite values.")
    return np.ascontiguousarray(x_arr), np.ascontiguousarray(y_arr)
