"""Extraction of technical-context fields from a feature's ``plan.md``.

Plans carry their technical choices as bold-labelled lines::

    **Language/Version**: Python 3.12
    **Primary Dependencies**: FastAPI

Placeholders left in by the plan template are treated as if the field were
absent.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Dict, Iterable, Optional

from .models import PlanFields

logger = logging.getLogger("speckit.plan_fields")

LANGUAGE_LABEL = "Language/Version"
DEPENDENCIES_LABEL = "Primary Dependencies"
STORAGE_LABEL = "Storage"
PROJECT_TYPE_LABEL = "Project Type"

PLAN_LABELS = (LANGUAGE_LABEL, DEPENDENCIES_LABEL, STORAGE_LABEL, PROJECT_TYPE_LABEL)

# Values meaning "not decided yet"; compared after trimming.
SENTINEL_VALUES = frozenset(
    {
        "NEEDS CLARIFICATION",
        "[NEEDS CLARIFICATION]",
        "需要澄清",
        "N/A",
    }
)


def is_sentinel(value: Optional[str]) -> bool:
    return value is not None and value.strip() in SENTINEL_VALUES


def normalize_value(value: Optional[str]) -> Optional[str]:
    """Trim ``value`` and map empty or placeholder text to ``None``."""
    if value is None:
        return None
    cleaned = value.strip()
    if not cleaned or cleaned in SENTINEL_VALUES:
        return None
    return cleaned


def _label_pattern(label: str) -> re.Pattern[str]:
    return re.compile(rf"^\*\*{re.escape(label)}\*\*: (?P<value>.*)$")


def extract_from_lines(lines: Iterable[str], label: str) -> Optional[str]:
    """Return the first value recorded for ``label`` in ``lines``."""
    pattern = _label_pattern(label)
    for line in lines:
        match = pattern.match(line.rstrip("\r\n"))
        if match:
            return normalize_value(match.group("value"))
    return None


def extract_plan_field(plan_path: Path | str, label: str) -> Optional[str]:
    """Return the value of ``**<label>**: <value>`` in the plan, if recorded.

    A missing plan yields ``None``; callers that require the plan check for
    it before extracting.
    """
    path = Path(plan_path)
    if not path.is_file():
        logger.debug(f"Plan file {path} not found; '{label}' treated as absent")
        return None
    return extract_from_lines(path.read_text(encoding="utf-8").splitlines(), label)


def parse_plan_data(plan_path: Path | str) -> PlanFields:
    """Read the plan once and extract every recognized field."""
    path = Path(plan_path)
    if not path.is_file():
        logger.warning(f"Plan file not found: {path}")
        return PlanFields()

    lines = path.read_text(encoding="utf-8").splitlines()
    values: Dict[str, Optional[str]] = {label: extract_from_lines(lines, label) for label in PLAN_LABELS}
    fields = PlanFields(
        language=values[LANGUAGE_LABEL],
        dependencies=values[DEPENDENCIES_LABEL],
        storage=values[STORAGE_LABEL],
        project_type=values[PROJECT_TYPE_LABEL],
    )

    if fields.language:
        logger.info(f"Found language: {fields.language}")
    else:
        logger.warning("No language information found in plan")
    if fields.dependencies:
        logger.info(f"Found framework: {fields.dependencies}")
    if fields.storage:
        logger.info(f"Found database: {fields.storage}")
    if fields.project_type:
        logger.info(f"Found project type: {fields.project_type}")

    return fields
