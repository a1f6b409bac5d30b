"""
Command-line interface for Lumen Human.
"""

import argparse
import asyncio
import json
import sys
from importlib.metadata import PackageNotFoundError, version


def main(argv=None):
    try:
        ver = version("lumen-human")
    except PackageNotFoundError:
        ver = "0.0.0"

    parser = argparse.ArgumentParser(
        prog="lumen-human",
        description="Run Lumen Human detection over an image",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Detect with default settings on the CPU backend
  lumen-human photo.jpg

  # Apply overrides from a YAML file and pick a backend
  lumen-human photo.jpg --config config/human.yaml --backend cuda

  # Check version
  lumen-human --version
""",
    )

    parser.add_argument("image", type=str, help="Path to the input image")

    parser.add_argument(
        "--config",
        type=str,
        help="Path to YAML file with configuration overrides",
    )

    parser.add_argument(
        "--backend",
        type=str,
        help="Compute backend (overrides config file setting)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {ver}",
        help="Show program's version number and exit",
    )

    args = parser.parse_args(argv)

    # Lazy import to keep --help and --version fast
    from lumen_human.config import load_config
    from lumen_human.exceptions import HumanError
    from lumen_human.human import Human
    from lumen_human.results import ErrorResult
    from lumen_human.logger import setup_logging

    setup_logging(args.log_level)

    try:
        overrides = load_config(args.config) if args.config else {}
        if args.backend:
            overrides = {**overrides, "backend": args.backend}
        human = Human(overrides)
        result = asyncio.run(human.detect(args.image, {"videoOptimized": False}))
    except HumanError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result.as_dict(), indent=2))
    return 1 if isinstance(result, ErrorResult) else 0


if __name__ == "__main__":
    sys.exit(main())
