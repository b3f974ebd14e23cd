"""Input sanitizer for conversational assistant requests.

Produces a cleaned copy of an assistant request body. The original body is
left untouched so the scanner and the audit trail see exactly what the caller
sent.

Free-text fields have markup, script schemes, inline event handlers and
template expressions stripped, then are truncated. ``careContext`` is reduced
to an allow-list of fields; anything else is dropped and reported. Content
nested deeper than ``max_depth`` is cut from the copy and reported as dropped.
"""

import re
from typing import Any

from aumos_tenant_trust.core.entities import SanitizationReport
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)

TRUNCATION_MARKER = "... [truncated]"

CARE_CONTEXT_FIELD = "careContext"
CARE_CONTEXT_ALLOWED_FIELDS: tuple[str, ...] = (
    "currentCareNeeds",
    "recentAssessments",
    "medicationChanges",
    "familyConcerns",
    "complianceRequirements",
)

_SCRIPT_BLOCK = re.compile(r"<script\b[^>]*>.*?</script\s*>", re.IGNORECASE | re.DOTALL)
_MARKUP_TAG = re.compile(r"<[^>]*>")
_JAVASCRIPT_SCHEME = re.compile(r"javascript:", re.IGNORECASE)
_EVENT_HANDLER = re.compile(r"\bon\w+\s*=", re.IGNORECASE)
_TEMPLATE_EXPRESSION = re.compile(r"\{\{.*?\}\}|\$\{.*?\}", re.DOTALL)


def clean_text(value: str) -> str:
    """Strip markup and executable constructs from one free-text value."""
    cleaned = _SCRIPT_BLOCK.sub("", value)
    cleaned = _MARKUP_TAG.sub("", cleaned)
    cleaned = _JAVASCRIPT_SCHEME.sub("", cleaned)
    cleaned = _EVENT_HANDLER.sub("", cleaned)
    cleaned = _TEMPLATE_EXPRESSION.sub("", cleaned)
    return cleaned.strip()


def bounded_copy(value: Any, depth_budget: int) -> tuple[Any, bool]:
    """Copy a JSON-like value, replacing containers beyond the budget with None.

    Returns:
        Tuple of (copy, whether anything was cut).
    """
    if not isinstance(value, dict | list | tuple):
        return value, False
    if depth_budget <= 0:
        return None, True
    cut = False
    if isinstance(value, dict):
        copied: dict[Any, Any] = {}
        for key, child in value.items():
            copied[key], child_cut = bounded_copy(child, depth_budget - 1)
            cut = cut or child_cut
        return copied, cut
    items = []
    for child in value:
        item, child_cut = bounded_copy(child, depth_budget - 1)
        items.append(item)
        cut = cut or child_cut
    return items, cut


def clean_nested(value: Any) -> Any:
    """Apply ``clean_text`` to every string inside a JSON-like value."""
    if isinstance(value, str):
        return clean_text(value)
    if isinstance(value, dict):
        return {key: clean_nested(child) for key, child in value.items()}
    if isinstance(value, list):
        return [clean_nested(child) for child in value]
    return value


class InputSanitizer:
    """Builds a sanitized copy of an assistant request body.

    Args:
        free_text_fields: Top-level fields treated as free text.
        max_text_length: Characters kept before the truncation marker.
        max_list_items: Items kept per care-context list.
        max_depth: Nesting depth kept in the copy, counting the body itself.
    """

    def __init__(
        self,
        free_text_fields: tuple[str, ...] = ("message",),
        max_text_length: int = 10_000,
        max_list_items: int = 10,
        max_depth: int = 10,
    ) -> None:
        self._free_text_fields = free_text_fields
        self._max_text_length = max_text_length
        self._max_list_items = max_list_items
        self._max_depth = max_depth

    def sanitize(self, body: dict[str, Any]) -> tuple[dict[str, Any], SanitizationReport]:
        """Return a sanitized copy of ``body`` and a report of the changes.

        Args:
            body: Parsed assistant request body. Not modified.

        Returns:
            Tuple of (sanitized body, SanitizationReport).
        """
        sanitized: dict[str, Any] = {}
        modified: list[str] = []
        truncated: list[str] = []
        dropped: list[str] = []

        for key, value in body.items():
            sanitized[key], cut = bounded_copy(value, self._max_depth - 1)
            if cut:
                dropped.append(key)

        for field in self._free_text_fields:
            value = sanitized.get(field)
            if not isinstance(value, str):
                continue
            cleaned = clean_text(value)
            if len(cleaned) > self._max_text_length:
                cleaned = cleaned[: self._max_text_length] + TRUNCATION_MARKER
                truncated.append(field)
            if cleaned != value:
                modified.append(field)
            sanitized[field] = cleaned

        if CARE_CONTEXT_FIELD in sanitized:
            context, context_dropped, context_modified = self._sanitize_care_context(
                sanitized[CARE_CONTEXT_FIELD]
            )
            sanitized[CARE_CONTEXT_FIELD] = context
            dropped.extend(context_dropped)
            modified.extend(context_modified)

        report = SanitizationReport(
            dropped_fields=tuple(dropped),
            truncated_fields=tuple(truncated),
            modified_fields=tuple(modified),
        )
        if dropped or truncated or modified:
            logger.info(
                "Assistant input sanitized",
                dropped_fields=dropped,
                truncated_fields=truncated,
                modified_fields=modified,
            )
        return sanitized, report

    def _sanitize_care_context(
        self, context: Any
    ) -> tuple[dict[str, Any], list[str], list[str]]:
        if not isinstance(context, dict):
            return {}, [CARE_CONTEXT_FIELD], []

        cleaned: dict[str, Any] = {}
        dropped: list[str] = []
        modified: list[str] = []
        for key, value in context.items():
            path = f"{CARE_CONTEXT_FIELD}.{key}"
            if key not in CARE_CONTEXT_ALLOWED_FIELDS:
                dropped.append(path)
                continue
            if isinstance(value, list):
                items = [clean_text(item) for item in value if isinstance(item, str)]
                items = items[: self._max_list_items]
                if items != value:
                    modified.append(path)
                cleaned[key] = items
            else:
                # The copy is already depth-bounded, so recursion here is shallow.
                text = clean_nested(value)
                if text != value:
                    modified.append(path)
                cleaned[key] = text
        return cleaned, dropped, modified
