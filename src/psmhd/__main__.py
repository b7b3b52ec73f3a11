"""
CLI interface for psmhd.

Usage:
    python -m psmhd run <config.yaml> [--output-dir DIR] [--restart N] [--benchmark] [--quiet]
    mpirun -n 4 python -m psmhd run <config.yaml>
    python -m psmhd validate <config.yaml> [--ranks P]
    python -m psmhd template <name> [--n N] > config.yaml
"""

import argparse
import sys
from pathlib import Path

import yaml

from .config import TEMPLATES, SimulationConfig
from .validation import validate_config_dict


def cmd_run(args):
    """Run a simulation from a config file."""
    from .run import run
    from .transform import world_comm

    comm = world_comm()
    rank, size = comm.Get_rank(), comm.Get_size()

    try:
        config = SimulationConfig.from_yaml(args.config)
        output = {}
        if args.output_dir is not None:
            output["output_dir"] = args.output_dir
        if args.benchmark:
            output["benchmark"] = True
        update = {"output": config.output.model_copy(update=output)}
        if args.restart is not None:
            update["restart"] = config.restart.model_copy(update={"stat": args.restart})
        config = config.model_copy(update=update)

        run(config, comm=comm, verbose=not args.quiet)
    except (ValueError, FileNotFoundError) as e:
        print(f"❌ [rank {rank}] {type(e).__name__}: {e}", file=sys.stderr)
        if size > 1:
            comm.Abort(1)
        return 1

    return 0


def cmd_validate(args):
    """Validate parameters from a config file."""
    config_path = Path(args.config)

    if not config_path.exists():
        print(f"❌ Config file not found: {config_path}")
        return 1

    print(f"Validating {config_path}...")
    print("=" * 70)

    with open(config_path) as f:
        config = yaml.safe_load(f)

    result = validate_config_dict(config, size=args.ranks)
    result.print_report()

    print("=" * 70)

    if result.valid:
        print("✓ Configuration is valid")
        return 0
    else:
        print("❌ Configuration has errors (see above)")
        return 1


def cmd_template(args):
    """Print a template configuration as YAML."""
    config = TEMPLATES[args.name]() if args.n is None else TEMPLATES[args.name](n=args.n)
    yaml.safe_dump(config.model_dump(mode="json"), sys.stdout, sort_keys=False)
    return 0


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Pseudo-spectral HD/MHD/Hall-MHD solver",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Write a template and run it on 4 ranks
  python -m psmhd template hd_forced > hd_forced.yaml
  mpirun -n 4 python -m psmhd run hd_forced.yaml

  # Check a config before submitting
  python -m psmhd validate hd_forced.yaml --ranks 16

  # Continue from checkpoint 3 of a previous run
  python -m psmhd run hd_forced.yaml --restart 3
"""
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    parser_run = subparsers.add_parser("run", help="Run a simulation")
    parser_run.add_argument("config", help="Path to YAML config file")
    parser_run.add_argument("--output-dir", help="Override output.output_dir")
    parser_run.add_argument("--restart", type=int, help="Restart from checkpoint N")
    parser_run.add_argument(
        "--benchmark", action="store_true", help="Disable output and time the run"
    )
    parser_run.add_argument("--quiet", action="store_true", help="No progress output")

    parser_validate = subparsers.add_parser(
        "validate",
        help="Validate parameters from a config file"
    )
    parser_validate.add_argument("config", help="Path to YAML config file")
    parser_validate.add_argument(
        "--ranks", type=int, default=1, help="Number of MPI ranks to check against"
    )

    parser_template = subparsers.add_parser("template", help="Print a template config")
    parser_template.add_argument("name", choices=sorted(TEMPLATES), help="Template name")
    parser_template.add_argument("--n", type=int, help="Grid resolution")

    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        return 1

    if args.command == "run":
        return cmd_run(args)
    elif args.command == "validate":
        return cmd_validate(args)
    elif args.command == "template":
        return cmd_template(args)


if __name__ == "__main__":
    sys.exit(main())
