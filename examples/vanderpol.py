from pathlib import Path
import importlib.util

from solvergen import write_solver

mu = 5.0

model = f"""inline:
    [model]
    label = "vanderpol"

    [states]
    x = 2.0
    y = 0.0

    [params]
    mu = {mu}

    [monitors]
    energy = "0.5 * (x^2 + y^2)"

    [equations]
    x = "y"
    y = "mu * (1 - x^2) * y - x"
"""

out = Path("build") / "vanderpol_solver.py"
prog = write_solver(
    model,
    solver="rk45",
    tspan=[0.0, 50.0],
    dt=0.01,
    downsample_factor=10,
    random_seed="default",
    adaptive_solver_options={"rtol": 1e-8, "atol": 1e-10},
    target=out,
)
print(f"wrote {prog.path} (record: {prog.parameter_path})")

spec = importlib.util.spec_from_file_location("vanderpol_solver", out)
module = importlib.util.module_from_spec(spec)
spec.loader.exec_module(module)
T, x, y, energy = module.solve_ode()
print(f"{T.size} samples, x(end) = {x[-1, 0]:.4f}, max energy = {energy.max():.3f}")
