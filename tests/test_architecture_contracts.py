"""Enforce the ports/adapters import boundaries via importlinter.

The contracts live in pyproject.toml under [tool.importlinter.contracts]:
application services reach timestamp authorities, contract stores and
renderers only through ports, and the audit, model and utility layers never
import the application layer.
"""

from __future__ import annotations

import shutil
import subprocess
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent


def test_importlinter_contracts_enforced() -> None:
    """Verify every import contract in pyproject.toml is kept.

    Run manually: lint-imports
    """
    lint_imports = shutil.which("lint-imports")
    if lint_imports is None:
        lint_imports = str(Path(sys.executable).parent / "lint-imports")

    result = subprocess.run(
        [lint_imports],
        capture_output=True,
        text=True,
        cwd=PROJECT_ROOT,
    )

    if result.returncode != 0:
        output = result.stdout + "\n" + result.stderr
        raise AssertionError(f"Import contracts violated.\n\nOutput:\n{output}")

    assert "Contracts:" in result.stdout, (
        f"Unexpected importlinter output. Got: {result.stdout[:500]}"
    )
    assert "2 kept, 0 broken" in result.stdout, result.stdout[:500]
