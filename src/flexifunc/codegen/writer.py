import logging
import typing
from pathlib import Path

logger = logging.getLogger("flexifunc")

PACKAGE_MARKER = "# Package of modules rewritten by flexifunc\n"


def module_name_for(path: Path) -> str:
    """Dotted module name for a source path (`pkg/mod.py` -> `pkg.mod`)."""
    relative = Path(path.name) if path.is_absolute() else path
    parts = [part for part in relative.with_suffix("").parts if part not in (".", "..")]
    return ".".join(parts)


def module_path(output_dir: Path, module_name: str) -> Path:
    return output_dir.joinpath(*module_name.split(".")).with_suffix(".py")


def write_modules(output_dir: Path, modules: dict[str, str]) -> typing.Iterator[Path]:
    """Write rewritten modules below `output_dir`, yielding each file as it is written.

    Dotted names become nested directories. Every directory created for a
    dotted name gets an `__init__.py` unless it already has one, so the output
    tree imports the same way the sources did.
    """
    packages: set[Path] = set()

    for module_name, code in modules.items():
        target = module_path(output_dir, module_name)
        target.parent.mkdir(parents=True, exist_ok=True)
        packages.update(parent for parent in target.parents if output_dir in parent.parents)

        target.write_text(code)
        logger.debug("Wrote %s to %s", module_name, target)
        yield target

    for package in sorted(packages):
        init_file = package / "__init__.py"
        if not init_file.exists():
            init_file.write_text(PACKAGE_MARKER)
