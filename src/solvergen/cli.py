# src/solvergen/cli.py
from __future__ import annotations
from typing import Any, Dict, List, Optional
import argparse
import logging
import sys

from solvergen.errors import SolvergenError
from solvergen.compiler.build import load_model, write_solver
from solvergen.compiler.options import FIXED_STEP_SOLVERS, ADAPTIVE_SOLVERS

__all__ = ["main", "build_parser"]


def _seed(value: str):
    if value in ("shuffle", "default"):
        return value
    try:
        return int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"seed must be 'shuffle', 'default' or an integer, got {value!r}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="solvergen", description="Generate standalone ODE solver programs")
    sub = parser.add_subparsers(dest="command", required=True)

    p_val = sub.add_parser("validate", help="Load and validate a model file")
    p_val.add_argument("model", help="Path to a model TOML file")

    p_write = sub.add_parser("write", help="Write a solver program for a model")
    p_write.add_argument("model", help="Path to a model TOML file")
    p_write.add_argument("-o", "--output", default=None, help="Target .py file (default: stdout)")
    p_write.add_argument(
        "--solver",
        choices=list(FIXED_STEP_SOLVERS + ADAPTIVE_SOLVERS),
        default=None,
        help="Integration method (default: euler)",
    )
    p_write.add_argument("--dt", type=float, default=None, help="Step size (default: 0.01)")
    p_write.add_argument("--tspan", type=float, nargs=2, metavar=("BEGIN", "END"), default=None)
    p_write.add_argument("--downsample-factor", type=int, default=None)
    p_write.add_argument("--seed", type=_seed, default=None, help="'shuffle', 'default' or an integer")
    p_write.add_argument(
        "--separate",
        action="store_true",
        help="Emit the right-hand side as its own compiled unit (needs -o)",
    )
    p_write.add_argument("--no-save-parameters", action="store_true", help="Inline parameter values")
    p_write.add_argument("--no-reduce-functions", action="store_true", help="Keep function handles in monitors")
    compile_group = p_write.add_mutually_exclusive_group()
    compile_group.add_argument("--compile", dest="compile_flag", action="store_true", default=None)
    compile_group.add_argument("--no-compile", dest="compile_flag", action="store_false")
    p_write.add_argument("--quiet", action="store_true", help="Do not narrate generation stages")
    return parser


def _write_options(args: argparse.Namespace) -> Dict[str, Any]:
    opts: Dict[str, Any] = {}
    if args.output is not None:
        opts["target"] = args.output
    if args.solver is not None:
        opts["solver"] = args.solver
    if args.dt is not None:
        opts["dt"] = args.dt
    if args.tspan is not None:
        opts["tspan"] = tuple(args.tspan)
    if args.downsample_factor is not None:
        opts["downsample_factor"] = args.downsample_factor
    if args.seed is not None:
        opts["random_seed"] = args.seed
    if args.separate:
        opts["solver_type"] = "native_separate"
    if args.no_save_parameters:
        opts["save_parameters_flag"] = False
    if args.no_reduce_functions:
        opts["reduce_function_calls_flag"] = False
    if args.compile_flag is not None:
        opts["compile_flag"] = args.compile_flag
    opts["verbose_flag"] = not args.quiet
    return opts


def _cmd_validate(args: argparse.Namespace) -> int:
    spec = load_model(args.model)
    label = f" {spec.label!r}" if spec.label else ""
    print(
        f"Model OK:{label} {len(spec.state_variables)} state variable(s), "
        f"{len(spec.parameters)} parameter(s), {len(spec.monitors)} monitor(s)"
    )
    return 0


def _cmd_write(args: argparse.Namespace) -> int:
    program = write_solver(args.model, **_write_options(args))
    if program.parameter_path is not None:
        print(f"Parameters: {program.parameter_path}", file=sys.stderr)
    if args.output is not None:
        print(f"Wrote {program.path}", file=sys.stderr)
    if program.odefun_path is not None:
        print(f"Wrote {program.odefun_path}", file=sys.stderr)
    if program.compilation is not None:
        if program.compilation.ok:
            print("Compilation: ok", file=sys.stderr)
        else:
            print(f"Compilation: failed\n{program.compilation.error}", file=sys.stderr)
            return 2
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command == "write" and not args.quiet:
        logging.basicConfig(level=logging.INFO, format="%(name)s: %(message)s", stream=sys.stderr)
    try:
        if args.command == "validate":
            return _cmd_validate(args)
        return _cmd_write(args)
    except SolvergenError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
