"""
Failure classification for generation backends.
Turns a GenerationFailure into a retry verdict: wait an explicit or default delay, or stop.

Provider error bodies come in several shapes: a JSON object, a JSON string, text with
an embedded JSON object, or a JSON object whose error.message is itself an escaped
JSON document (Gemini SDK style). parse_diagnostic normalises them into
StructuredDiagnostic / UnstructuredDiagnostic before any pattern matching.
"""
import json
import logging
import math
import re
from dataclasses import dataclass
from typing import Any, Iterator

from miniapp_assets.services.image_generation.base import GenerationFailure

logger = logging.getLogger(__name__)

DEFAULT_RETRY_DELAY_SECONDS = 60

RETRY_INFO_TYPE = "google.rpc.RetryInfo"
QUOTA_FAILURE_TYPE = "google.rpc.QuotaFailure"

RATE_LIMIT_PATTERN = re.compile(
    r"\b429\b|too many requests|rate[ _-]?limit|resource[ _]exhausted",
    re.IGNORECASE,
)
# tolerates quotes escaped once or twice by string-wrapped error bodies
RETRY_DELAY_TEXT_PATTERN = re.compile(r"retryDelay\\*[\"']?\s*:\s*\\*[\"'](\d+(?:\.\d+)?)s\\*[\"']")
DURATION_PATTERN = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*s?\s*$")
EMBEDDED_JSON_PATTERN = re.compile(r"\{[\s\S]*\}")


# ----- Verdicts -----


@dataclass(frozen=True)
class Stop:
    reason: str


@dataclass(frozen=True)
class RetryAfter:
    seconds: int


RetryVerdict = Stop | RetryAfter


# ----- Parsed diagnostics -----


@dataclass(frozen=True)
class StructuredDiagnostic:
    tree: Any
    text: str


@dataclass(frozen=True)
class UnstructuredDiagnostic:
    text: str


ParsedDiagnostic = StructuredDiagnostic | UnstructuredDiagnostic


@dataclass(frozen=True)
class QuotaViolation:
    quota_id: str | None
    quota_metric: str | None = None
    model: str | None = None


def _loads_object(text: str) -> Any | None:
    """json.loads, falling back to the first {...} span; None when neither parses."""
    try:
        return json.loads(text)
    except ValueError:
        pass
    match = EMBEDDED_JSON_PATTERN.search(text)
    if not match:
        return None
    try:
        return json.loads(match.group(0))
    except ValueError:
        return None


def _unwrap_inner_message(tree: Any) -> Any:
    """Replace error.message with its parsed content when it is a JSON document (one level)."""
    if not isinstance(tree, dict):
        return tree
    error = tree.get("error")
    if not isinstance(error, dict):
        return tree
    message = error.get("message")
    if not isinstance(message, str) or "{" not in message:
        return tree
    inner = _loads_object(message)
    if inner is None:
        # escaped newlines / quotes left over from double encoding
        cleaned = message.replace("\\n", "").replace("\\", "")
        inner = _loads_object(cleaned)
    if not isinstance(inner, (dict, list)):
        return tree
    unwrapped = dict(tree)
    unwrapped["error"] = {**error, "message": inner}
    return unwrapped


def parse_diagnostic(raw: Any) -> ParsedDiagnostic:
    """Parse a failure diagnostic into a tagged variant. Never raises."""
    if raw is None:
        return UnstructuredDiagnostic(text="")
    if isinstance(raw, (bytes, bytearray)):
        raw = bytes(raw).decode("utf-8", errors="replace")
    if isinstance(raw, (dict, list)):
        tree = raw
        try:
            text = json.dumps(raw, ensure_ascii=False, default=str)
        except (TypeError, ValueError):
            text = str(raw)
    else:
        text = str(raw)
        tree = _loads_object(text)
        if not isinstance(tree, (dict, list)):
            return UnstructuredDiagnostic(text=text)
    return StructuredDiagnostic(tree=_unwrap_inner_message(tree), text=text)


def _walk(node: Any) -> Iterator[dict]:
    if isinstance(node, dict):
        yield node
        for value in node.values():
            yield from _walk(value)
    elif isinstance(node, list):
        for item in node:
            yield from _walk(item)


def _is_type(record: dict, type_name: str) -> bool:
    value = record.get("@type")
    return isinstance(value, str) and value.endswith(type_name)


def _duration_seconds(value: Any) -> int | None:
    """'30s', '1.5s', '30', 30, {'seconds': 30, 'nanos': ...} -> whole seconds, rounded up."""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        seconds = float(value)
    elif isinstance(value, str):
        match = DURATION_PATTERN.match(value)
        if not match:
            return None
        seconds = float(match.group(1))
    elif isinstance(value, dict) and "seconds" in value:
        try:
            seconds = float(value["seconds"]) + float(value.get("nanos", 0)) / 1e9
        except (TypeError, ValueError):
            return None
    else:
        return None
    if seconds < 0:
        return None
    return int(math.ceil(seconds))


def find_retry_delay(tree: Any) -> int | None:
    """Explicit delay from a RetryInfo record, or a Retry-After value attached by the adapter."""
    for record in _walk(tree):
        if _is_type(record, RETRY_INFO_TYPE) and "retryDelay" in record:
            seconds = _duration_seconds(record["retryDelay"])
            if seconds is not None:
                return seconds
    if isinstance(tree, dict) and "retry_after" in tree:
        return _duration_seconds(tree["retry_after"])
    return None


def find_quota_violations(tree: Any) -> list[QuotaViolation]:
    violations: list[QuotaViolation] = []
    for record in _walk(tree):
        if not _is_type(record, QUOTA_FAILURE_TYPE):
            continue
        for item in record.get("violations") or []:
            if not isinstance(item, dict):
                continue
            dimensions = item.get("quotaDimensions") or {}
            violations.append(QuotaViolation(
                quota_id=item.get("quotaId"),
                quota_metric=item.get("quotaMetric"),
                model=dimensions.get("model") if isinstance(dimensions, dict) else None,
            ))
    return violations


def _has_rate_limit_code(tree: Any) -> bool:
    for record in _walk(tree):
        if record.get("code") == 429 or record.get("status") == "RESOURCE_EXHAUSTED":
            return True
    return False


def log_quota_violations(violations: list[QuotaViolation]) -> None:
    for index, v in enumerate(violations, start=1):
        logger.warning(
            "Quota violation %d: %s (metric=%s, model=%s)",
            index, v.quota_id, v.quota_metric, v.model,
            extra={"quota_id": v.quota_id, "quota_metric": v.quota_metric, "quota_model": v.model},
        )


def _classify(failure: GenerationFailure, default_delay_seconds: int) -> RetryVerdict:
    if failure.is_transport_error:
        return RetryAfter(default_delay_seconds)

    parsed = parse_diagnostic(failure.diagnostic if failure.diagnostic is not None else failure.message)

    if isinstance(parsed, StructuredDiagnostic):
        violations = find_quota_violations(parsed.tree)
        if violations:
            log_quota_violations(violations)
        delay = find_retry_delay(parsed.tree)
        if delay is not None:
            return RetryAfter(delay)
        rate_limited = _has_rate_limit_code(parsed.tree)
    else:
        rate_limited = False

    # inner JSON that could not be parsed still carries the delay as text
    match = RETRY_DELAY_TEXT_PATTERN.search(parsed.text)
    if match:
        return RetryAfter(int(math.ceil(float(match.group(1)))))

    if (
        rate_limited
        or failure.http_status == 429
        or RATE_LIMIT_PATTERN.search(parsed.text)
        or RATE_LIMIT_PATTERN.search(failure.message or "")
    ):
        return RetryAfter(default_delay_seconds)

    return Stop(failure.message or parsed.text or "unknown failure")


def classify_failure(
    failure: GenerationFailure,
    default_delay_seconds: int = DEFAULT_RETRY_DELAY_SECONDS,
) -> RetryVerdict:
    """
    Classify a failed call. Pure apart from logging quota details; never raises.
    Any internal error falls back to RetryAfter(default_delay_seconds).
    """
    try:
        return _classify(failure, default_delay_seconds)
    except Exception:
        logger.exception("Could not classify failure, using default retry delay")
        return RetryAfter(default_delay_seconds)


class ErrorClassifier:
    """classify_failure bound to a configured default delay."""

    def __init__(self, default_delay_seconds: int = DEFAULT_RETRY_DELAY_SECONDS) -> None:
        self.default_delay_seconds = default_delay_seconds

    def classify(self, failure: GenerationFailure) -> RetryVerdict:
        return classify_failure(failure, self.default_delay_seconds)

    __call__ = classify
