import numpy as np
from sensible_rvm import RandomRBFProvider, RBFProvider, RVMRegression

rng = np.random.default_rng(2)
x = rng.normal(size=(100, 2))
y = np.exp(-np.sum(x**2, axis=1)) + rng.normal(0, 0.02, size=100)

history = []


def on_progress(info):
    history.append((info.iteration, info.active_indexes.size, info.beta))


model = RVMRegression.new(
    [RBFProvider([1.0], 0.5), RandomRBFProvider([1.0], 0.5)],
    method="fast_online",
    max_failures=20,
    seed=2,
)
run = model.fit(x, y, callback=on_progress)

for it, active, beta in history[:: max(1, len(history) // 10)]:
    print(f"iteration {it:4d}: {active:3d} active features, beta={beta:.4g}")
print(run)
print("prediction at origin:", run.predict([[0.0, 0.0]], quantiles=(0.5,)).value)
