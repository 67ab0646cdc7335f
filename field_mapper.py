"""
field_mapper.py – Match arbitrary CSV headers to work-item field reference names.

Every header is scored against every field (display name, reference-name
tail and the alias table below).  The best candidate at or above
``ACCEPT_THRESHOLD`` wins, otherwise the header is reported as unmapped.
Nothing here talks to the network, so the same headers and catalog
always give the same suggestion.
"""

from __future__ import annotations

import difflib
import logging
import re
from typing import Iterable, Mapping, Optional

from csv_parser import TITLE_HEADER_PATTERN
from field_catalog import (
    AREA_PATH_FIELD,
    AUTOMATION_STATUS_FIELD,
    DESCRIPTION_FIELD,
    ID_FIELD,
    ITERATION_PATH_FIELD,
    PRIORITY_FIELD,
    STEPS_FIELD,
    TAGS_FIELD,
    TITLE_FIELD,
)
from models import (
    FieldDefinition,
    MappingCandidate,
    MappingSuggestion,
    MappingSuggestionResult,
)

logger = logging.getLogger("testcase-import")

ACCEPT_THRESHOLD = 70
AMBIGUITY_MARGIN = 5
AMBIGUOUS_APPLY_THRESHOLD = 90
FALLBACK_TITLE_CONFIDENCE = 60
FUZZY_MIN_RATIO = 0.85
MIN_CONTAINMENT_LENGTH = 3
MAX_CANDIDATES = 5

# normalised header → reference name
FIELD_ALIASES: dict[str, str] = {
    "id": ID_FIELD,
    "testcaseid": ID_FIELD,
    "caseid": ID_FIELD,
    "tcid": ID_FIELD,
    "testid": ID_FIELD,
    "workitemid": ID_FIELD,
    "title": TITLE_FIELD,
    "name": TITLE_FIELD,
    "testcasetitle": TITLE_FIELD,
    "testcasename": TITLE_FIELD,
    "testname": TITLE_FIELD,
    "summary": TITLE_FIELD,
    "steps": STEPS_FIELD,
    "teststeps": STEPS_FIELD,
    "procedure": STEPS_FIELD,
    "instructions": STEPS_FIELD,
    "priority": PRIORITY_FIELD,
    "pri": PRIORITY_FIELD,
    "importance": PRIORITY_FIELD,
    "criticality": PRIORITY_FIELD,
    "areapath": AREA_PATH_FIELD,
    "area": AREA_PATH_FIELD,
    "component": AREA_PATH_FIELD,
    "module": AREA_PATH_FIELD,
    "iterationpath": ITERATION_PATH_FIELD,
    "iteration": ITERATION_PATH_FIELD,
    "sprint": ITERATION_PATH_FIELD,
    "description": DESCRIPTION_FIELD,
    "desc": DESCRIPTION_FIELD,
    "details": DESCRIPTION_FIELD,
    "objective": DESCRIPTION_FIELD,
    "tags": TAGS_FIELD,
    "tag": TAGS_FIELD,
    "labels": TAGS_FIELD,
    "keywords": TAGS_FIELD,
    "automationstatus": AUTOMATION_STATUS_FIELD,
    "automation": AUTOMATION_STATUS_FIELD,
    "automated": AUTOMATION_STATUS_FIELD,
}


def normalize_name(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "", value.lower())


def singularize(value: str) -> str:
    if value.endswith("ies"):
        return value[:-3] + "y"
    if value.endswith("s"):
        return value[:-1]
    return value


def _similarity(a: str, b: str) -> float:
    """Return 0.0–1.0 similarity using SequenceMatcher (Ratcliff/Obershelp)."""
    return difflib.SequenceMatcher(None, a, b).ratio()


def _contains(a: str, b: str) -> bool:
    if min(len(a), len(b)) < MIN_CONTAINMENT_LENGTH:
        return False
    return a in b or b in a


def score_header(header: str, field: FieldDefinition) -> int:
    """Score 0–100 for how well *header* names *field*."""
    norm = normalize_name(header)
    if not norm:
        return 0
    singular = singularize(norm)
    name = normalize_name(field.name)
    tail = normalize_name(field.reference_name.rsplit(".", 1)[-1])

    scores = [0]
    if norm == name:
        scores.append(100)
    if norm == tail:
        scores.append(95)
    if singular in (name, tail, singularize(name), singularize(tail)):
        scores.append(90)
    if _contains(norm, name):
        scores.append(80)
    if _contains(norm, tail):
        scores.append(78)
    ratio = max(_similarity(norm, name), _similarity(norm, tail))
    if ratio >= FUZZY_MIN_RATIO:
        scores.append(round(ratio * 80))
    return max(scores)


def _alias_match(header: str) -> tuple[Optional[str], int, str]:
    norm = normalize_name(header)
    if norm in FIELD_ALIASES:
        return FIELD_ALIASES[norm], 100, "Direct synonym match"
    singular = singularize(norm)
    if singular != norm and singular in FIELD_ALIASES:
        return FIELD_ALIASES[singular], 95, "Singular synonym match"
    return None, 0, ""


def suggest_header(header: str, fields: list[FieldDefinition]) -> MappingSuggestion:
    """Pick the best-scoring field for one header."""
    alias_ref, alias_score, alias_reason = _alias_match(header)
    if alias_ref:
        return MappingSuggestion(
            header=header,
            suggested_reference_name=alias_ref,
            confidence=alias_score,
            reason=alias_reason,
        )

    candidates: list[MappingCandidate] = []
    seen: set[str] = set()
    for f in fields:
        if f.reference_name in seen:
            continue
        seen.add(f.reference_name)
        score = score_header(header, f)
        if score > 0:
            candidates.append(MappingCandidate(f.reference_name, f.name, score))

    # stable: ties keep catalog order
    candidates.sort(key=lambda c: -c.score)
    if not candidates or candidates[0].score < ACCEPT_THRESHOLD:
        return MappingSuggestion(header=header, reason="No confident match found")

    best = candidates[0]
    close = [c for c in candidates if best.score - c.score <= AMBIGUITY_MARGIN][:MAX_CANDIDATES]
    if len(close) > 1:
        return MappingSuggestion(
            header=header,
            suggested_reference_name=best.reference_name,
            confidence=best.score,
            reason="Multiple close matches",
            candidates=close,
        )
    return MappingSuggestion(
        header=header,
        suggested_reference_name=best.reference_name,
        confidence=best.score,
        reason="Best heuristic match",
    )


def suggest_field_mapping(
    headers: Iterable[str],
    fields: Iterable[FieldDefinition],
) -> MappingSuggestionResult:
    """Advisory header → reference-name mapping for a whole file."""
    headers = list(headers)
    fields = list(fields)
    result = MappingSuggestionResult(headers=list(headers))

    for header in headers:
        if not normalize_name(header):
            continue
        suggestion = suggest_header(header, fields)
        result.suggestions.append(suggestion)
        ref = suggestion.suggested_reference_name
        if ref is None:
            continue
        if suggestion.candidates and suggestion.confidence < AMBIGUOUS_APPLY_THRESHOLD:
            continue
        result.suggested_mapping[header] = ref

    if not any(ref.lower() == TITLE_FIELD.lower() for ref in result.suggested_mapping.values()):
        # skip headers already mapped to another field
        title_like = next(
            (
                h for h in headers
                if h not in result.suggested_mapping and TITLE_HEADER_PATTERN.search(h)
            ),
            None,
        )
        if title_like is not None:
            result.suggestions.append(
                MappingSuggestion(
                    header=title_like,
                    suggested_reference_name=TITLE_FIELD,
                    confidence=FALLBACK_TITLE_CONFIDENCE,
                    reason="Fallback title heuristic",
                )
            )
            result.suggested_mapping[title_like] = TITLE_FIELD

    result.unmapped_headers = [
        h for h in headers if h not in result.suggested_mapping
    ]
    return result


def resolve_automatic_mapping(
    headers: Iterable[str],
    fields: Iterable[FieldDefinition],
) -> dict[str, str]:
    """Mapping used by an import that was not given one explicitly.

    Each reference name keeps only its highest-confidence header, so two
    columns never feed the same field.
    """
    suggestion = suggest_field_mapping(headers, fields)
    confidence: dict[str, int] = {}
    for s in suggestion.suggestions:
        if s.suggested_reference_name:
            confidence[s.header] = s.confidence

    owner: dict[str, str] = {}
    for header in suggestion.headers:
        ref = suggestion.suggested_mapping.get(header)
        if ref is None:
            continue
        current = owner.get(ref.lower())
        if current is None or confidence.get(header, 0) > confidence.get(current, 0):
            owner[ref.lower()] = header

    kept = set(owner.values())
    return {
        h: ref for h, ref in suggestion.suggested_mapping.items() if h in kept
    }


def explicit_mapping(
    headers: Iterable[str],
    mapping: Mapping[str, str],
) -> tuple[dict[str, str], list[str]]:
    """Use a caller-supplied mapping verbatim; report headers not in the file."""
    present = set(headers)
    warnings = [
        f"Mapped header '{h}' is not present in the file" for h in mapping if h not in present
    ]
    return dict(mapping), warnings
