# tests/test_architecture_contracts.py
"""
Architecture contract tests for the assessment packages.

These tests enforce structural invariants that unit tests don't catch:
- Tier violations (the temporal foundation importing assessing code)
- Version consistency (__init__.py vs pyproject.toml)
- Lazy imports in __init__.py (prevent AppRegistryNotReady)
- AUTH_USER_MODEL usage (not direct User imports)
- Plain models outside YearVersionedModel are marked as such
- Test/doc file existence
"""
from __future__ import annotations

import ast
import re
from pathlib import Path
from typing import List, Set

# Package tier classification
TIER_MAP = {
    # Tier 0: Foundation
    "django-temporal-records": 0,
    # Tier 1: Domain
    "django-assessing": 1,
}

ROOT_DIR = Path(__file__).parent.parent
PACKAGES_DIR = ROOT_DIR / "packages"


def get_package_dirs() -> List[Path]:
    """Get all django-* package directories."""
    return sorted([p for p in PACKAGES_DIR.iterdir() if p.is_dir() and p.name.startswith("django-")])


def src_dir(pkg_dir: Path) -> Path:
    return pkg_dir / "src" / pkg_dir.name.replace("-", "_")


def get_imports_from_file(path: Path) -> Set[str]:
    """Extract top-level module names imported by a Python file."""
    tree = ast.parse(path.read_text())

    imports = set()
    for node in ast.walk(tree):
        if isinstance(node, ast.Import):
            for alias in node.names:
                imports.add(alias.name.split('.')[0])
        elif isinstance(node, ast.ImportFrom):
            if node.module and node.level == 0:
                imports.add(node.module.split('.')[0])
    return imports


def test_every_package_is_classified():
    unknown = [p.name for p in get_package_dirs() if p.name not in TIER_MAP]

    assert not unknown, f"Packages missing from TIER_MAP: {', '.join(unknown)}"


# -----------------------------
# 1) Tier violation detection
# -----------------------------

def test_no_tier_violations():
    """
    Lower-tier packages cannot import from higher-tier packages.

    django-temporal-records knows nothing about assessments; the year lock
    reaches it only through the YearLockGate protocol.
    """
    violations = []

    for pkg_dir in get_package_dirs():
        pkg_name = pkg_dir.name
        pkg_tier = TIER_MAP.get(pkg_name)
        if pkg_tier is None or not src_dir(pkg_dir).exists():
            continue

        for py_file in src_dir(pkg_dir).rglob("*.py"):
            for imp in get_imports_from_file(py_file):
                dep_pkg = imp.replace("_", "-")
                dep_tier = TIER_MAP.get(dep_pkg)
                if dep_tier is not None and dep_tier > pkg_tier:
                    violations.append(
                        f"{pkg_name} (tier {pkg_tier}) imports {dep_pkg} (tier {dep_tier}) "
                        f"in {py_file.relative_to(PACKAGES_DIR)}"
                    )

    assert not violations, (
        "Tier violations detected (lower tiers cannot import higher tiers):\n"
        + "\n".join(violations)
    )


# -----------------------------
# 2) Version consistency
# -----------------------------

def test_version_consistency():
    """Every package __version__ matches the distribution version."""
    match = re.search(r'^version\s*=\s*["\']([^"\']+)["\']', (ROOT_DIR / "pyproject.toml").read_text(), re.MULTILINE)
    assert match, "pyproject.toml has no version"
    expected = match.group(1)

    mismatches = []
    for pkg_dir in get_package_dirs():
        init_text = (src_dir(pkg_dir) / "__init__.py").read_text()
        found = re.search(r'__version__\s*=\s*["\']([^"\']+)["\']', init_text)
        if not found:
            mismatches.append(f"{pkg_dir.name}: __init__.py missing __version__")
        elif found.group(1) != expected:
            mismatches.append(f"{pkg_dir.name}: pyproject.toml={expected}, __init__.py={found.group(1)}")

    assert not mismatches, "Version mismatches detected:\n" + "\n".join(mismatches)


# -----------------------------
# 3) AUTH_USER_MODEL usage
# -----------------------------

def test_uses_auth_user_model_not_direct_import():
    """
    Actor fields (created_by, recalculated_by, ...) must reference
    settings.AUTH_USER_MODEL so swapped user models keep working.
    """
    violations = []

    for pkg_dir in get_package_dirs():
        for py_file in src_dir(pkg_dir).rglob("*.py"):
            source = py_file.read_text()
            if re.search(r'from django\.contrib\.auth\.models import.*\bUser\b', source):
                violations.append(
                    f"{pkg_dir.name}/{py_file.name}: imports User directly. "
                    "Use settings.AUTH_USER_MODEL instead."
                )

    assert not violations, (
        "Direct User imports detected (breaks swappable user model):\n"
        + "\n".join(violations)
    )


# -----------------------------
# 4) Lazy imports in __init__.py
# -----------------------------

def test_init_uses_lazy_imports():
    """
    __init__.py must not import models eagerly.

    Exports are resolved through module-level __getattr__ so importing the
    package before django.setup() does not raise AppRegistryNotReady.
    """
    problems = []

    for pkg_dir in get_package_dirs():
        source = (src_dir(pkg_dir) / "__init__.py").read_text()
        if re.search(r'^from \.', source, re.MULTILINE):
            problems.append(f"{pkg_dir.name}/__init__.py: eager relative import")
        if '__getattr__' not in source:
            problems.append(f"{pkg_dir.name}/__init__.py: no lazy __getattr__")

    assert not problems, "Eager imports in __init__.py:\n" + "\n".join(problems)


# -----------------------------
# 5) Plain model markers
# -----------------------------

def test_plain_models_are_marked():
    """
    Concrete models inherit YearVersionedModel unless they carry
    '# PRIMITIVES: allow-plain-model' (year registry, job state).
    """
    violations = []

    for pkg_dir in get_package_dirs():
        models_py = src_dir(pkg_dir) / "models.py"
        if not models_py.exists():
            continue

        source = models_py.read_text()
        lines = source.split('\n')
        for node in ast.parse(source).body:
            if not isinstance(node, ast.ClassDef):
                continue
            base_names = {
                base.attr if isinstance(base, ast.Attribute) else getattr(base, 'id', '')
                for base in node.bases
            }
            if base_names != {"Model"}:
                continue
            is_abstract = any(
                isinstance(stmt, ast.ClassDef) and stmt.name == "Meta"
                and "abstract = True" in ast.get_source_segment(source, stmt)
                for stmt in node.body
            )
            if is_abstract:
                continue
            preceding = '\n'.join(lines[max(0, node.lineno - 4):node.lineno])
            if "allow-plain-model" not in preceding:
                violations.append(f"{pkg_dir.name}/{node.name}: plain models.Model without marker")

    assert not violations, (
        "Models should inherit YearVersionedModel:\n" + "\n".join(violations)
    )


# -----------------------------
# 6) Test file existence
# -----------------------------

def test_packages_have_tests():
    """All packages should have test files."""
    missing = []

    for pkg_dir in get_package_dirs():
        tests_dir = pkg_dir / "tests"
        if not list(tests_dir.glob("test_*.py")):
            missing.append(f"{pkg_dir.name}: no test_*.py files in tests/")

    assert not missing, "Packages missing tests:\n" + "\n".join(missing)


# -----------------------------
# 7) README existence
# -----------------------------

def test_packages_have_readme():
    """All packages should have README.md."""
    missing = [p.name for p in get_package_dirs() if not (p / "README.md").exists()]

    assert not missing, f"Packages missing README.md: {', '.join(missing)}"
