import numpy as np
import matplotlib.pyplot as plt
from sensible_rvm import InterceptProvider, RBFProvider, RVMRegression, enable_logging

enable_logging("INFO")

rng = np.random.default_rng(0)
x = np.sort(rng.uniform(0, 2 * np.pi, size=200))
y = np.sin(x) + rng.normal(0, 0.1, size=x.size)

model = RVMRegression.new(
    [InterceptProvider(), RBFProvider([1.0])],
    method="fast_tipping",
    fit_threshold=1e-6,
    seed=0,
)
run = model.fit(x, y)
print(run)
print(run.summary(digits=4))

xg = np.linspace(0, 2 * np.pi, 400)
pred = run.predict(xg, quantiles=(0.05, 0.95))
print("max 90% band width:", float(np.max(pred.quantile(0.95) - pred.quantile(0.05))))

fig, ax = run.plot(xg=xg)
ax.plot(xg, np.sin(xg), "k:", lw=1, label="true")
ax.legend()
plt.show()
