#!/usr/bin/env python3
"""
Command line interface for flexifunc source rewriting.

Usage:
    python -m flexifunc.codegen <file> [<file> ...] (-o <dir> | --stdout)
    # Or use the CLI entrypoint:
    flexifunc <file> [<file> ...] (-o <dir> | --stdout)

Every function decorated with `@ff` in the given files is replaced by the
function itself followed by its generated async variant.

Examples:
    # Rewrite a module into generated/
    python -m flexifunc.codegen my_package/client.py -o generated
    flexifunc my_package/client.py -o generated

    # Print the rewritten modules
    flexifunc my_package/client.py my_package/server.py --stdout
"""

import argparse
import logging
import subprocess
import sys
import tempfile
from pathlib import Path

from ..exceptions import FlexiFuncError
from .rewrite import transform_file
from .writer import module_name_for, write_modules

logger = logging.getLogger("flexifunc")


def run_ruff_on_file(file_path: Path) -> None:
    """
    Run ruff check --fix and ruff format on a single file.

    Args:
        file_path: Path to the file to format
    """
    # Run ruff check --fix for autofixes
    subprocess.run(
        ["ruff", "check", "--fix", str(file_path)],
        capture_output=True,
        text=True,
    )

    # Run ruff format
    subprocess.run(
        ["ruff", "format", str(file_path)],
        capture_output=True,
        text=True,
    )


def transform_files(paths: list[Path], *, strict: bool) -> tuple[dict[str, str], list[str]]:
    """
    Transform source files.

    Args:
        paths: Python files to rewrite
        strict: Reject unknown options

    Returns:
        Tuple of (modules, diagnostics). `modules` maps module names to rewritten
        source; `diagnostics` has one line per failure.
    """
    modules: dict[str, str] = {}
    diagnostics: list[str] = []
    for path in paths:
        print(f"  Transforming: {path}", file=sys.stderr)
        try:
            modules[module_name_for(path)] = transform_file(path, strict=strict)
        except FlexiFuncError as exc:
            diagnostics.append(exc.diagnostic(str(path)))
        except OSError as exc:
            diagnostics.append(f"{path}: {exc.strerror or exc}")
    return modules, diagnostics


def main(argv: "list[str] | None" = None) -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Generate async variants for functions decorated with @ff",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Write rewritten modules to a directory
  python -m flexifunc.codegen my_package/client.py -o generated/
  flexifunc my_package/client.py -o generated/

  # Rewrite and format with ruff
  flexifunc my_package/client.py -o generated/ --ruff

  # Print all modules to stdout
  flexifunc my_package/client.py --stdout

  # Ignore unknown @ff options instead of failing
  flexifunc my_package/client.py -o generated/ --lenient
        """,
    )
    parser.add_argument("sources", nargs="+", type=Path, help="Python source files to transform")
    output = parser.add_mutually_exclusive_group(required=True)
    output.add_argument("-o", "--output-dir", type=Path, help="Output directory for rewritten files")
    output.add_argument(
        "--stdout",
        action="store_true",
        help="Print all modules to stdout with file headers instead of writing files",
    )
    parser.add_argument(
        "--ruff",
        action="store_true",
        help="Run ruff to autofix and format the generated files (works with both file output and --stdout)",
    )
    parser.add_argument(
        "--lenient",
        action="store_true",
        help="Warn about unknown @ff options instead of failing",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Log transformation decisions")

    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")

    print(f"Transforming {len(args.sources)} file(s)...", file=sys.stderr)
    modules, diagnostics = transform_files(args.sources, strict=not args.lenient)

    if diagnostics:
        for line in diagnostics:
            print(line, file=sys.stderr)
        print(f"\nError: {len(diagnostics)} file(s) could not be transformed, nothing was written", file=sys.stderr)
        sys.exit(1)

    if args.stdout:
        if args.ruff:
            print("Running ruff to format generated files...", file=sys.stderr)
            # Use a temporary directory to format the code
            with tempfile.TemporaryDirectory() as tmpdir:
                tmppath = Path(tmpdir)
                temp_files = dict(zip(modules, write_modules(tmppath, modules)))
                for module_name in sorted(temp_files):
                    run_ruff_on_file(temp_files[module_name])
                    print(f"  Formatted: {module_name}", file=sys.stderr)
                formatted = {name: path.read_text() for name, path in temp_files.items()}
        else:
            formatted = modules

        for module_name in sorted(formatted):
            module_path = module_name.replace(".", "/") + ".py"
            print(f"# File: {module_path}\n")
            print(formatted[module_name])
            print()  # Blank line between modules
    else:
        written_files = []
        for module_path in write_modules(args.output_dir, modules):
            written_files.append(module_path)
            print(f"  Wrote: {module_path}", file=sys.stderr)

        if args.ruff:
            print("\nRunning ruff to format generated files...", file=sys.stderr)
            for file_path in written_files:
                run_ruff_on_file(file_path)
                print(f"  Formatted: {file_path}", file=sys.stderr)

        print("\nTransformation completed successfully!", file=sys.stderr)


if __name__ == "__main__":
    main()
