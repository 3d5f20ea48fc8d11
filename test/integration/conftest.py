"""Pytest configuration for integration tests.

Provides session-scoped fixtures for importing the support modules and for
rewriting them once with the CLI.
"""

import importlib.util
import os
import subprocess
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest

PROJECT_ROOT = Path(__file__).parent.parent.parent
SUPPORT_FILES = Path(__file__).parent.parent / "support_files"


def _cli_env() -> dict[str, str]:
    env = os.environ.copy()
    pythonpath_parts = [str(PROJECT_ROOT / "src")]
    if "PYTHONPATH" in env:
        pythonpath_parts.append(env["PYTHONPATH"])
    env["PYTHONPATH"] = os.pathsep.join(pythonpath_parts)
    env.pop("FLEXIFUNC_STRICT", None)
    return env


def load_module(name: str, path: Path):
    spec = importlib.util.spec_from_file_location(name, path)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    sys.modules[name] = module
    spec.loader.exec_module(module)
    return module


@pytest.fixture
def cli_env():
    """Environment for running the CLI in a subprocess, with the package importable."""
    return _cli_env()


@pytest.fixture(scope="session")
def support_files():
    """Make the support modules importable by name."""
    sys.path.insert(0, str(SUPPORT_FILES))
    yield SUPPORT_FILES
    sys.path.remove(str(SUPPORT_FILES))


@pytest.fixture(scope="session")
def rewritten_inventory(tmp_path_factory):
    """Rewrite inventory_impl.py with the CLI and import the result.

    Returns:
        SimpleNamespace with the imported `module`, the `output_dir` and the
        generated `code`
    """
    output_dir = tmp_path_factory.mktemp("generated")
    result = subprocess.run(
        [sys.executable, "-m", "flexifunc.codegen", str(SUPPORT_FILES / "inventory_impl.py"), "-o", str(output_dir)],
        capture_output=True,
        text=True,
        env=_cli_env(),
    )
    if result.returncode != 0:
        print(f"CLI stdout: {result.stdout}")
        raise RuntimeError(f"Failed to rewrite inventory_impl.py: {result.stderr}")

    generated = output_dir / "inventory_impl.py"
    module = load_module("generated_inventory", generated)
    yield SimpleNamespace(module=module, output_dir=output_dir, code=generated.read_text())
    sys.modules.pop("generated_inventory", None)
