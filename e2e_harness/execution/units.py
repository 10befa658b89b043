"""
Suite loading for test units.

Reads declarative suite files from the test directory and applies the
``only`` and ``--grep`` filters before scheduling.

A suite file looks like::

    describe: Example Test Suite
    tests:
      - name: should load the practice test login page
        steps:
          - goto: /
          - expect_title: Practice Test Login
          - expect_visible: "#username"
"""

import json
import re
from pathlib import Path
from typing import List, Optional, Union

import yaml
from pydantic import ValidationError

from ..core.exceptions import ConfigError
from ..core.logging_config import get_logger
from .models import TestUnit

logger = get_logger(__name__)

SUITE_PATTERNS = ("*.spec.yaml", "*.spec.yml", "*.spec.json")


def discover_suite_files(test_dir: Union[str, Path]) -> List[Path]:
    """Find suite files under a directory in sorted path order."""
    test_dir = Path(test_dir)
    if not test_dir.is_dir():
        raise ConfigError(
            f"Test directory does not exist: {test_dir}",
            source=str(test_dir),
        )
    files = set()
    for pattern in SUITE_PATTERNS:
        files.update(p for p in test_dir.rglob(pattern) if p.is_file())
    return sorted(files)


def _read_suite_document(path: Path):
    try:
        text = path.read_text(encoding="utf-8")
        if path.suffix.lower() == ".json":
            return json.loads(text)
        return yaml.safe_load(text)
    except (OSError, json.JSONDecodeError, yaml.YAMLError) as e:
        raise ConfigError(f"Failed to read suite file {path}: {e}", source=str(path)) from e


def load_suite_file(path: Union[str, Path], root: Optional[Path] = None) -> List[TestUnit]:
    """
    Load the test units declared in one suite file.

    Raises:
        ConfigError: If the file is malformed
    """
    path = Path(path)
    document = _read_suite_document(path)
    display = str(path.relative_to(root)) if root else path.name

    if isinstance(document, list):
        document = {"tests": document}
    if not isinstance(document, dict) or not isinstance(document.get("tests"), list):
        raise ConfigError(
            f"Suite file {display} must define a 'tests' list",
            source=str(path),
        )

    suite = document.get("describe")
    units = []
    violations = []
    for index, entry in enumerate(document["tests"]):
        if not isinstance(entry, dict):
            violations.append(f"tests[{index}]: expected a mapping")
            continue
        try:
            units.append(TestUnit(suite=suite, file=display, **entry))
        except (ValidationError, TypeError) as e:
            violations.append(f"tests[{index}]: {e}")

    if violations:
        raise ConfigError(
            f"Invalid suite file {display}: " + "; ".join(violations),
            source=str(path),
            violations=violations,
        )

    titles = [u.title for u in units]
    duplicates = sorted({t for t in titles if titles.count(t) > 1})
    if duplicates:
        raise ConfigError(
            f"Duplicate test titles in {display}: {duplicates}",
            source=str(path),
            violations=[f"duplicate title '{t}'" for t in duplicates],
        )
    return units


def load_suites(test_dir: Union[str, Path]) -> List[TestUnit]:
    """Load all test units from the test directory, in file then declaration order."""
    test_dir = Path(test_dir)
    units: List[TestUnit] = []
    for path in discover_suite_files(test_dir):
        loaded = load_suite_file(path, root=test_dir)
        logger.debug(
            f"Loaded {len(loaded)} test unit(s) from {path.name}",
            extra={"metadata": {"file": str(path), "count": len(loaded)}},
        )
        units.extend(loaded)

    titles = [u.title for u in units]
    duplicates = sorted({t for t in titles if titles.count(t) > 1})
    if duplicates:
        raise ConfigError(
            f"Duplicate test titles across suites: {duplicates}",
            source=str(test_dir),
            violations=[f"duplicate title '{t}'" for t in duplicates],
        )
    return units


def filter_units(
    units: List[TestUnit],
    grep: Optional[str] = None,
    forbid_only: bool = False,
) -> List[TestUnit]:
    """
    Apply the focus and grep filters.

    Args:
        units: Loaded test units
        grep: Regular expression searched in each unit's full title
        forbid_only: Reject focused units instead of narrowing to them

    Raises:
        ConfigError: If focused units are forbidden or the pattern is invalid
    """
    focused = [u for u in units if u.only]
    if focused:
        if forbid_only:
            raise ConfigError(
                "Focused tests are not allowed: " + ", ".join(u.title for u in focused),
                violations=[f"'only' set on {u.title} ({u.file})" for u in focused],
            )
        units = focused

    if grep:
        try:
            pattern = re.compile(grep)
        except re.error as e:
            raise ConfigError(f"Invalid grep pattern '{grep}': {e}") from e
        units = [u for u in units if pattern.search(u.title)]

    return units
