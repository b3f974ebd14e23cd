"""Threat pattern scanner for conversational assistant input.

Screens a request body for prompt injection, data extraction, cross-tenant
references and malicious markup before it reaches the assistant, and checks
structural bounds (serialized size, nesting depth).

Categories are evaluated in a fixed order. The first matching pattern in a
category yields one violation for that category; a CRITICAL match ends
category evaluation. Structural checks always run. Scanning never mutates
the body it is given.
"""

import json
import re
from dataclasses import dataclass
from typing import Any

from aumos_tenant_trust.core.entities import ScanResult, SecurityViolation
from aumos_tenant_trust.core.models import Severity, ViolationType
from aumos_tenant_trust.observability import get_logger

logger = get_logger(__name__)

MAX_BODY_BYTES = 50_000
MAX_NESTING_DEPTH = 10


@dataclass(frozen=True)
class ThreatCategory:
    """An ordered group of case-insensitive content rules sharing a verdict."""

    name: str
    violation_type: ViolationType
    severity: Severity
    description: str
    patterns: tuple[re.Pattern[str], ...]
    tenant_agents_only: bool = False


def _compile(*patterns: str) -> tuple[re.Pattern[str], ...]:
    return tuple(re.compile(p, re.IGNORECASE) for p in patterns)


PROMPT_INJECTION = ThreatCategory(
    name="prompt_injection",
    violation_type=ViolationType.PROMPT_INJECTION,
    severity=Severity.CRITICAL,
    description="Potential prompt injection attempt detected",
    patterns=_compile(
        r"ignore\s+(all\s+)?previous\s+instructions",
        r"forget\s+everything",
        r"you\s+are\s+now",
        r"system\s+prompt",
        r"\\n\\n\s*assistant:",
        r"\\n\\n\s*human:",
        r"<\|.*?\|>",
        r"\[INST\]",
        r"\[/INST\]",
        r"@@@",
        r"###\s*NEW\s+ROLE",
    ),
)

DATA_EXTRACTION = ThreatCategory(
    name="data_extraction",
    violation_type=ViolationType.DATA_EXTRACTION,
    severity=Severity.HIGH,
    description="Potential data extraction attempt detected",
    patterns=_compile(
        r"show\s+me\s+all",
        r"list\s+all\s+users",
        r"database\s+schema",
        r"table\s+structure",
        r"admin\s+credentials",
        r"password",
        r"api\s+key",
        r"secret",
        r"\btoken\b",
        r"dump\s+data",
        r"export\s+all",
    ),
)

CROSS_TENANT_REFERENCE = ThreatCategory(
    name="cross_tenant_reference",
    violation_type=ViolationType.CROSS_TENANT_ATTEMPT,
    severity=Severity.CRITICAL,
    description="Potential cross-tenant access attempt detected",
    patterns=_compile(
        r"other\s+tenant",
        r"different\s+organi[sz]ation",
        r"another\s+care\s+home",
        r"switch\s+tenant",
        r"tenant\s*[:=]\s*[^}]+",
    ),
    tenant_agents_only=True,
)

MALICIOUS_MARKUP = ThreatCategory(
    name="malicious_markup",
    violation_type=ViolationType.MALICIOUS_CONTENT,
    severity=Severity.HIGH,
    description="Potentially malicious content detected",
    patterns=_compile(
        r"<script",
        r"javascript:",
        r"\bon\w+\s*=",
        r"eval\s*\(",
        r"function\s*\(",
        r"\{\{.*?\}\}",
        r"\$\{.*?\}",
        r"<%.*?%>",
    ),
)

DEFAULT_CATEGORIES: tuple[ThreatCategory, ...] = (
    PROMPT_INJECTION,
    DATA_EXTRACTION,
    CROSS_TENANT_REFERENCE,
    MALICIOUS_MARKUP,
)


def serialize_body(body: Any) -> str:
    """Serialize a request body the way it is scanned and measured."""
    return json.dumps(body, ensure_ascii=False, separators=(",", ":"), default=str)


def nesting_depth(value: Any, limit: int | None = None) -> int:
    """Nesting depth of a JSON-like value; scalars are 0, ``{"a": 1}`` is 1.

    Walks the value with an explicit stack. When ``limit`` is given the walk
    stops as soon as the depth exceeds it and ``limit + 1`` is returned.
    """
    deepest = 0
    stack: list[tuple[Any, int]] = [(value, 0)]
    while stack:
        current, depth = stack.pop()
        if isinstance(current, dict):
            children = current.values()
        elif isinstance(current, list | tuple):
            children = current
        else:
            continue
        depth += 1
        if depth > deepest:
            deepest = depth
            if limit is not None and deepest > limit:
                return deepest
        stack.extend((child, depth) for child in children)
    return deepest


class ThreatPatternScanner:
    """Rule-based classifier for adversarial assistant input.

    Args:
        categories: Ordered threat categories to evaluate.
        block_severity: Findings at or above this severity block the request.
        max_body_bytes: Serialized size bound (UTF-8 bytes).
        max_depth: Nesting depth bound.
        block_structural: Whether structural findings block the request.
    """

    def __init__(
        self,
        categories: tuple[ThreatCategory, ...] = DEFAULT_CATEGORIES,
        block_severity: Severity = Severity.CRITICAL,
        max_body_bytes: int = MAX_BODY_BYTES,
        max_depth: int = MAX_NESTING_DEPTH,
        block_structural: bool = False,
    ) -> None:
        self._categories = categories
        self._block_severity = block_severity
        self._max_body_bytes = max_body_bytes
        self._max_depth = max_depth
        self._block_structural = block_structural

    def scan(self, body: Any, tenant_agent: bool = True) -> ScanResult:
        """Scan a request body.

        Args:
            body: Parsed JSON request body. Not modified.
            tenant_agent: Whether the body targets a tenant-scoped assistant;
                cross-tenant rules apply only to tenant agents.

        Returns:
            ScanResult with every finding in evaluation order.
        """
        violations: list[SecurityViolation] = []
        try:
            serialized = serialize_body(body)
        except (RecursionError, ValueError) as exc:
            logger.warning("Assistant input could not be serialized", error=type(exc).__name__)
            # Content that cannot be scanned is never let through.
            violations.append(
                SecurityViolation(
                    type=ViolationType.MALICIOUS_CONTENT,
                    severity=Severity.MEDIUM,
                    description="Request body could not be serialized for scanning",
                    evidence=f"Serialization error: {type(exc).__name__}",
                    blocked=True,
                    structural=True,
                )
            )
            return ScanResult(violations=tuple(violations))

        for category in self._categories:
            if category.tenant_agents_only and not tenant_agent:
                continue
            violation = self._match_category(category, serialized)
            if violation is None:
                continue
            violations.append(violation)
            if category.severity is Severity.CRITICAL:
                break

        violations.extend(self._check_structure(body, serialized))

        if violations:
            logger.info(
                "Assistant input findings",
                count=len(violations),
                types=[v.type.value for v in violations],
                blocked=any(v.blocked for v in violations),
            )
        return ScanResult(violations=tuple(violations))

    def _match_category(
        self, category: ThreatCategory, content: str
    ) -> SecurityViolation | None:
        for pattern in category.patterns:
            if pattern.search(content):
                return SecurityViolation(
                    type=category.violation_type,
                    severity=category.severity,
                    description=category.description,
                    evidence=f"Pattern matched: {category.name}:{pattern.pattern}",
                    blocked=category.severity.rank >= self._block_severity.rank,
                )
        return None

    def _check_structure(self, body: Any, serialized: str) -> list[SecurityViolation]:
        violations: list[SecurityViolation] = []
        size = len(serialized.encode("utf-8"))
        if size > self._max_body_bytes:
            violations.append(
                SecurityViolation(
                    type=ViolationType.MALICIOUS_CONTENT,
                    severity=Severity.MEDIUM,
                    description="Request size exceeds maximum allowed",
                    evidence=f"Request size: {size} bytes",
                    blocked=self._block_structural,
                    structural=True,
                )
            )
        if nesting_depth(body, limit=self._max_depth) > self._max_depth:
            violations.append(
                SecurityViolation(
                    type=ViolationType.MALICIOUS_CONTENT,
                    severity=Severity.MEDIUM,
                    description="Request structure too deeply nested",
                    evidence=f"Nesting depth exceeds {self._max_depth}",
                    blocked=self._block_structural,
                    structural=True,
                )
            )
        return violations
