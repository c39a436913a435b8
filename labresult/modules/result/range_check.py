"""
Classify an entered value against a parameter's reference range.

Reference ranges are free text typed by the lab, so only a handful of shapes
are understood:

    "4 - 10"            inclusive numeric interval, bounds in any order
    "< 5", "<= 5"       upper limit ("≤" accepted)
    "> 40", ">= 40"     lower limit ("≥" accepted)
    "-"                 nothing expected, negative markers or 0 are in range
    "NEGATIF: < 1; POSITIF: > 1"
    "Negatif"           textual, compared case-insensitively

Anything else (sex specific, age conditioned, multi-line) is indeterminate.
Commas are accepted as decimal separators.
"""

import re

from loguru import logger

from labresult.modules.result.schema import RangeStatus

NEGATIVE_MARKERS = {
    "0 negatif",
    "0 négatif",
    "negatif",
    "négatif",
    "neant",
    "néant",
    "0",
}

_NUMBER_PREFIX = re.compile(r"^\s*[-+]?(\d+(\.\d*)?|\.\d+)")
_AGE_CONDITION = re.compile(r"^(<|>|<=|>=)\s*\d+\s*(y|a|ans?)", re.IGNORECASE)
_LABEL_CONDITION = re.compile(r"^([a-zA-Z\s][a-zA-Z\s\d]*):\s*(.*)$")
_SEGMENT = re.compile(r"^(.+?):\s*(.*)$")


def parse_number(text: str) -> float | None:
    """Leading number of `text`, like a lenient parseFloat. None if absent."""
    match = _NUMBER_PREFIX.match(text.replace(",", "."))
    if not match:
        return None
    return float(match.group(0))


def check_single_range(value: float, range_line: str) -> RangeStatus:
    cleaned = range_line.strip()
    limit: float | None
    if cleaned.startswith("<="):
        limit = parse_number(cleaned[2:])
        if limit is not None:
            return _status(value <= limit)
    elif cleaned.startswith("≤"):
        limit = parse_number(cleaned[1:])
        if limit is not None:
            return _status(value <= limit)
    elif cleaned.startswith(">="):
        limit = parse_number(cleaned[2:])
        if limit is not None:
            return _status(value >= limit)
    elif cleaned.startswith("≥"):
        limit = parse_number(cleaned[1:])
        if limit is not None:
            return _status(value >= limit)
    elif cleaned.startswith("<"):
        limit = parse_number(cleaned[1:])
        if limit is not None:
            return _status(value < limit)
    elif cleaned.startswith(">"):
        limit = parse_number(cleaned[1:])
        if limit is not None:
            return _status(value > limit)
    elif "-" in cleaned:
        parts = [parse_number(part) for part in cleaned.split("-")]
        if len(parts) == 2 and None not in parts:
            lower, upper = min(parts), max(parts)
            return _status(lower <= value <= upper)
    return RangeStatus.INDETERMINATE


def check_value_range_status(
    value: str | None,
    reference_range: str | None,
) -> RangeStatus:
    if value is None or reference_range is None or not reference_range.strip():
        return RangeStatus.INDETERMINATE

    cleaned_range = reference_range.strip()
    value_lc = value.strip().lower()

    if cleaned_range == "-":
        if value_lc in NEGATIVE_MARKERS:
            return RangeStatus.IN_RANGE
        if parse_number(value) is not None:
            return RangeStatus.OUT_OF_RANGE

    numeric_value = parse_number(value)

    if "homme" in cleaned_range.lower():
        return RangeStatus.INDETERMINATE
    if _AGE_CONDITION.match(cleaned_range):
        return RangeStatus.INDETERMINATE
    is_multi_segment = ":" in cleaned_range and ";" in cleaned_range
    if _LABEL_CONDITION.match(cleaned_range) and not is_multi_segment:
        return RangeStatus.INDETERMINATE

    range_lc = cleaned_range.lower()
    if "negatif:" in range_lc and "positif:" in range_lc and ";" in cleaned_range:
        return _check_negatif_positif(value_lc, numeric_value, cleaned_range)

    if numeric_value is None:
        looks_textual = parse_number(cleaned_range[0]) is None and not any(
            op in cleaned_range for op in ("<", ">", "-")
        )
        if looks_textual:
            return _status(value_lc == range_lc)
        return RangeStatus.INDETERMINATE

    return check_single_range(numeric_value, cleaned_range)


def _check_negatif_positif(
    value_lc: str,
    numeric_value: float | None,
    cleaned_range: str,
) -> RangeStatus:
    negatif_range = None
    positif_range = None
    for segment in (s.strip() for s in cleaned_range.split(";")):
        if not segment:
            continue
        match = _SEGMENT.match(segment)
        if not match:
            return RangeStatus.INDETERMINATE
        label = match.group(1).strip().lower()
        if label == "negatif":
            negatif_range = match.group(2).strip()
        elif label == "positif":
            positif_range = match.group(2).strip()

    if not negatif_range or not positif_range:
        logger.warning(f"Incomplete NEGATIF/POSITIF reference range: {cleaned_range}")
        return RangeStatus.INDETERMINATE

    if value_lc == "negatif":
        return RangeStatus.IN_RANGE
    if value_lc == "positif":
        return RangeStatus.OUT_OF_RANGE
    if numeric_value is None:
        return RangeStatus.INDETERMINATE
    if check_single_range(numeric_value, negatif_range) == RangeStatus.IN_RANGE:
        return RangeStatus.IN_RANGE
    # meeting the POSITIF criterion means the value is abnormal
    if check_single_range(numeric_value, positif_range) == RangeStatus.IN_RANGE:
        return RangeStatus.OUT_OF_RANGE
    return RangeStatus.INDETERMINATE


def _status(in_range: bool) -> RangeStatus:
    return RangeStatus.IN_RANGE if in_range else RangeStatus.OUT_OF_RANGE
