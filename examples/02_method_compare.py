import time

import numpy as np
from sensible_rvm import InterceptProvider, Method, RBFProvider, RVMRegression

rng = np.random.default_rng(1)
x = rng.uniform(-4, 4, size=(150, 1))
y = np.sinc(x[:, 0]) + rng.normal(0, 0.05, size=150)
x_test = np.linspace(-4, 4, 200)

base = RVMRegression.new(
    [InterceptProvider(), RBFProvider([0.5, 2.0], 0.5)],
    fit_threshold=1e-4,
    max_iter=3000,
    seed=1,
)

for method in Method:
    t0 = time.perf_counter()
    run = base.with_method(method).fit(x, y)
    dt = time.perf_counter() - t0
    rmse = np.sqrt(np.mean((run.predict(x_test).value - np.sinc(x_test)) ** 2))
    print(
        f"{method.value:>24}: rvs={run.results.rv_count:3d} "
        f"converged={run.converged} iterations={run.results.iterations:5d} "
        f"rmse={rmse:.4f} time={dt:.3f}s"
    )
