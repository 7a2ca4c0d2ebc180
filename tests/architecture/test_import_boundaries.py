"""
Import boundary enforcement.

Layering inside media_ingestion, lowest first:
    domain -> mapping (engine, status, vocabulary) -> indexing -> aggregation
    -> mapping.transformers -> identity / loaders -> services

Every subpackage must import cleanly on its own, in a fresh interpreter, so
nothing relies on another package having been imported first.
"""

import ast
import glob
import subprocess
import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]

SUBPACKAGES = [
    "media_kernel",
    "media_config",
    "media_ingestion.domain",
    "media_ingestion.adapters",
    "media_ingestion.mapping",
    "media_ingestion.indexing",
    "media_ingestion.aggregation",
    "media_ingestion.mapping.transformers",
    "media_ingestion.identity",
    "media_ingestion.loaders",
    "media_ingestion.services",
]


def _python_files(root: str) -> list[str]:
    return sorted(glob.glob(str(ROOT / root / "**" / "*.py"), recursive=True))


def _extract_imports(filepath: str) -> list[tuple[int, str]]:
    tree = ast.parse(Path(filepath).read_text(), filename=filepath)
    results: list[tuple[int, str]] = []
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                results.append((node.lineno, alias.name))
        elif isinstance(node, ast.ImportFrom) and node.module:
            results.append((node.lineno, node.module))
    return results


def _violations(root: str, forbidden: str) -> list[str]:
    return [
        f"  {filepath}:{lineno} imports '{module}'"
        for filepath in _python_files(root)
        for lineno, module in _extract_imports(filepath)
        if module == forbidden or module.startswith(f"{forbidden}.")
    ]


class TestFreshImports:
    @pytest.mark.parametrize("module", SUBPACKAGES)
    def test_imports_first_in_fresh_interpreter(self, module):
        result = subprocess.run(
            [sys.executable, "-c", f"import {module}"],
            cwd=ROOT,
            capture_output=True,
            text=True,
        )
        assert result.returncode == 0, result.stderr


class TestLayering:
    @pytest.mark.parametrize(
        "root",
        ["media_ingestion/indexing", "media_ingestion/aggregation", "media_ingestion/domain"],
    )
    def test_lower_layers_do_not_import_transformers(self, root):
        violations = _violations(root, "media_ingestion.mapping.transformers")
        assert not violations, "\n".join(violations)

    def test_mapping_package_does_not_reexport_transformers(self):
        init = str(ROOT / "media_ingestion" / "mapping" / "__init__.py")
        modules = [module for _, module in _extract_imports(init)]
        assert "media_ingestion.mapping.transformers" not in modules

    @pytest.mark.parametrize("root", ["media_kernel", "media_config"])
    def test_infrastructure_does_not_import_services(self, root):
        violations = _violations(root, "media_ingestion.services")
        assert not violations, "\n".join(violations)
