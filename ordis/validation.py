"""Parse model output and check it against the schema.

Only two things make a response unusable: content that is not a JSON object,
and an object without a "data" object. Everything else (missing required
fields, wrong types, out-of-range values) is reported as a field issue and
the response is still returned.
"""

import json
import logging
import math
import re
from datetime import date
from typing import Any

from .errors import ErrorKind, ParseError
from .models import ExtractionIssue, ValidatedResponse
from .schema import FieldSpec, FieldType, Schema

logger = logging.getLogger(__name__)

_THINK_BLOCK = re.compile(r"<think>.*?</think>", re.DOTALL)
_CODE_FENCE = re.compile(r"^```(?:json)?\s*\n?(.*?)\n?```$", re.DOTALL)
_ISO_DATE = re.compile(r"^\d{4}-\d{2}-\d{2}$")

_JSON_TYPE_NAMES = {
    str: "string",
    int: "number",
    float: "number",
    bool: "boolean",
    list: "array",
    dict: "object",
    type(None): "null",
}


def parse_response(raw_content: str, schema: Schema) -> ValidatedResponse:
    """Parse the model's message content into a ValidatedResponse.

    Raises ParseError when the content is not a JSON object or has no
    "data" object.

    Fields that carry an issue are reported with confidence 0, overriding
    whatever the model claimed for them.
    """
    parsed = try_parse_json(raw_content)
    if parsed is None:
        logger.warning("Could not parse JSON from model response: %s", (raw_content or "")[:200])
        raise ParseError("Failed to parse model response as JSON")

    payload = parsed.get("data")
    if not isinstance(payload, dict):
        logger.warning("Model response has no 'data' object: %s", (raw_content or "")[:200])
        raise ParseError("Failed to parse model response: missing 'data' object")

    data: dict[str, Any] = {}
    issues: list[ExtractionIssue] = []
    flagged: set[str] = set()

    for name, spec in schema.items():
        value = payload.get(name)
        if value is None:
            if spec.required:
                data[name] = None
                issues.append(ExtractionIssue(
                    field=name,
                    message=f"Required field '{name}' is missing",
                    code=ErrorKind.MISSING_FIELD,
                ))
                flagged.add(name)
            continue

        data[name] = value
        field_issues = check_value(name, spec, value)
        if field_issues:
            issues.extend(field_issues)
            flagged.add(name)

    ignored = [key for key in payload if key not in schema.fields]
    if ignored:
        logger.debug("Ignoring %d unknown field(s) from model: %s", len(ignored), ", ".join(ignored))

    reported = parsed.get("confidenceByField")
    if not isinstance(reported, dict):
        reported = {}

    confidence_by_field: dict[str, float] = {}
    for name, _spec in schema.items():
        if name in flagged:
            confidence_by_field[name] = 0.0
        elif name in reported:
            value = clamp_confidence(reported[name])
            if value is not None:
                confidence_by_field[name] = value

    overall = clamp_confidence(parsed.get("confidence"))

    return ValidatedResponse(
        data=data,
        confidence=overall if overall is not None else 0.0,
        confidence_by_field=confidence_by_field,
        issues=issues,
    )


def try_parse_json(raw: str | None) -> dict | None:
    """Try to read a JSON object from the model output.

    Handles: direct JSON, surrounding whitespace, a single markdown code
    fence, and <think>...</think> reasoning blocks.
    """
    if not raw:
        return None

    cleaned = _THINK_BLOCK.sub("", raw).strip()

    match = _CODE_FENCE.match(cleaned)
    if match:
        cleaned = match.group(1).strip()

    try:
        result = json.loads(cleaned)
    except ValueError:
        # JSONDecodeError, or an integer literal over the int digit limit
        return None
    return result if isinstance(result, dict) else None


def check_value(name: str, spec: FieldSpec, value: Any) -> list[ExtractionIssue]:
    """Return the issues found for one field value (empty when valid)."""
    if not _matches_type(spec.type, value):
        return [ExtractionIssue(
            field=name,
            message=f"Expected {spec.type.value}, got {_json_type(value)}",
            code=ErrorKind.TYPE_MISMATCH,
        )]

    problem = _value_problem(spec, value)
    if problem:
        return [ExtractionIssue(field=name, message=problem, code=ErrorKind.INVALID_VALUE)]

    issues: list[ExtractionIssue] = []
    if spec.type is FieldType.ARRAY and spec.items is not None:
        for i, item in enumerate(value):
            issues.extend(check_value(f"{name}[{i}]", spec.items, item))
    return issues


def clamp_confidence(value: Any) -> float | None:
    """Clamp a self-reported confidence to [0, 100]; None if not a number."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return float(min(100.0, max(0.0, value)))


def _matches_type(field_type: FieldType, value: Any) -> bool:
    if field_type in (FieldType.STRING, FieldType.DATE, FieldType.ENUM):
        return isinstance(value, str)
    if field_type is FieldType.NUMBER:
        return isinstance(value, (int, float)) and not isinstance(value, bool)
    if field_type is FieldType.BOOLEAN:
        return isinstance(value, bool)
    if field_type is FieldType.ARRAY:
        return isinstance(value, list)
    return isinstance(value, dict)


def _value_problem(spec: FieldSpec, value: Any) -> str | None:
    if spec.type is FieldType.ENUM and value not in (spec.enum or ()):
        return f"'{value}' is not one of: {', '.join(spec.enum or ())}"

    if spec.type is FieldType.DATE and not _is_iso_date(value):
        return f"'{value}' is not a YYYY-MM-DD date"

    if spec.type is FieldType.NUMBER:
        if isinstance(value, float) and not math.isfinite(value):
            return f"{value} is not a finite number"
        if spec.min is not None and value < spec.min:
            return f"{value} is below the minimum {spec.min}"
        if spec.max is not None and value > spec.max:
            return f"{value} is above the maximum {spec.max}"

    if spec.type is FieldType.STRING and spec.pattern is not None:
        if re.fullmatch(spec.pattern, value) is None:
            return f"'{value}' does not match pattern {spec.pattern}"

    return None


def _is_iso_date(value: str) -> bool:
    if not _ISO_DATE.match(value):
        return False
    try:
        date.fromisoformat(value)
    except ValueError:
        return False
    return True


def _json_type(value: Any) -> str:
    return _JSON_TYPE_NAMES.get(type(value), type(value).__name__)
