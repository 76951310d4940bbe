from pathlib import Path

from solvergen import write_solver
from solvergen.compiler.jit.compile import numba_available

# Lorenz system with its right-hand side compiled ahead of time by numba
model = """inline:
    [states]
    u = [1.0, 1.0, 1.0]

    [params]
    sigma = 10.0
    rho = 28.0
    beta = 2.6666666666666665

    [equations]
    u = "np.array([sigma * (u[1] - u[0]), u[0] * (rho - u[2]) - u[1], u[0] * u[1] - beta * u[2]])"
"""

if not numba_available():
    raise SystemExit("numba is required for this example")

prog = write_solver(
    model,
    solver="rk4",
    tspan=[0.0, 20.0],
    dt=0.001,
    downsample_factor=10,
    compile_flag=True,
    solver_type="native_separate",
    target=Path("build") / "lorenz_solver.py",
)
print(f"main program:  {prog.path}")
print(f"odefun unit:   {prog.odefun_path}")
print(f"compiled:      {prog.compiled}")
prog.raise_for_compilation()
