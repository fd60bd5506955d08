import argparse
import asyncio
import json
import logging
import sys

from depscope.__version__ import __version__


def parse_args(argv=None):
    parser = argparse.ArgumentParser(
        prog="depscope",
        description="Find the vulnerable part of a project's dependency graph.",
    )
    parser.add_argument("path", nargs="?", default=".", help="project directory to analyse")
    parser.add_argument("--json", action="store_true", help="print the analysis as JSON instead of opening the UI")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging on stderr (with --json)")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    return parser.parse_args(argv)


def run_json(path: str, verbose: bool) -> int:
    from depscope.core.analysis import DependencyAnalyzer
    from depscope.core.config import Settings

    logging.basicConfig(
        stream=sys.stderr,
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s - %(levelname)s - %(message)s",
    )

    try:
        settings = Settings.from_env()
    except ValueError as e:
        logging.error(str(e))
        return 2

    result = asyncio.run(DependencyAnalyzer(settings).analyse_directory(path))
    json.dump(result.to_dict(), sys.stdout, indent=2)
    sys.stdout.write("\n")
    return 1 if result.error and not result.dependencies else 0


def main(argv=None):
    """ Entrypoint when is installed via pip """
    args = parse_args(argv)
    if args.json:
        sys.exit(run_json(args.path, args.verbose))

    from depscope.app import DepscopeApp
    app = DepscopeApp(args.path)
    app.run()


# Development mode
if __name__ == "__main__":
    main()
