"""
steps_format.py – Text ↔ XML conversion for the Microsoft.VSTS.TCM.Steps field.

CSV cells carry steps as one step per line, optionally numbered, with the
expected result after a ``|``:

    1. Open app|App launches
    2. Tap login|Login form is shown

The ``|`` is the action / expected delimiter, so it cannot appear inside
either part.
"""

from __future__ import annotations

import logging
import re
import xml.etree.ElementTree as ET
from typing import Optional
from xml.sax.saxutils import escape

from models import TestStep

logger = logging.getLogger("testcase-import")

DEFAULT_EXPECTED_RESULT = "Verify step completes successfully"
STEP_DELIMITER = "|"

_NUMBERED_STEP = re.compile(r"^(\d+)\.\s*(.+?)(?:\|(.*))?$")
_XML_ENTITIES = {"'": "&apos;", '"': "&quot;"}


def escape_xml(text: str) -> str:
    """Entity-escape ``< > & ' "``."""
    return escape(text, _XML_ENTITIES)


def parse_step_lines(text: str) -> list[TestStep]:
    """Split a steps cell into TestStep objects, one per non-empty line."""
    steps: list[TestStep] = []
    for raw in text.replace("\r\n", "\n").split("\n"):
        line = raw.strip()
        if not line:
            continue
        match = _NUMBERED_STEP.match(line)
        if match:
            action = match.group(2).strip()
            expected = (match.group(3) or "").strip()
        else:
            action, _, expected = line.partition(STEP_DELIMITER)
            action, expected = action.strip(), expected.strip()
        steps.append(
            TestStep(action=action, expected_result=expected or DEFAULT_EXPECTED_RESULT)
        )
    return steps


def steps_to_xml(steps: list[TestStep]) -> str:
    """Build the XML blob that ADO stores in Microsoft.VSTS.TCM.Steps."""
    parts = [f'<steps id="0" last="{len(steps)}">']
    for idx, step in enumerate(steps, start=1):
        parts.append(
            f'<step id="{idx}" type="ActionStep">'
            f'<parameterizedString isformatted="true">{escape_xml(step.action)}</parameterizedString>'
            f'<parameterizedString isformatted="true">{escape_xml(step.expected_result)}</parameterizedString>'
            "</step>"
        )
    parts.append("</steps>")
    return "".join(parts)


def convert_steps_to_xml(text: str) -> str:
    return steps_to_xml(parse_step_lines(text))


def parse_steps_xml(value: Optional[str]) -> list[TestStep]:
    """Decoder for :func:`steps_to_xml`; ``steps_to_xml(parse_steps_xml(x)) == x``.

    Unreadable XML yields no steps.
    """
    if not value:
        return []
    try:
        root = ET.fromstring(value)
    except ET.ParseError as exc:
        logger.warning("Ignoring unreadable steps XML: %s", exc)
        return []

    steps: list[TestStep] = []
    for element in root.iter("step"):
        action, expected = ([s.text or "" for s in element.iter("parameterizedString")] + ["", ""])[:2]
        steps.append(TestStep(action=action, expected_result=expected))
    return steps
