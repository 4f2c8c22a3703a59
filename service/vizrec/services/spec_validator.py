from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from .chart_kinds import RULES, Arity, FieldSpec, KindRule, canonical_field_name, parse_chart_kind
from .column_matcher import ColumnIndex, resolve
from .mapping_migration import has_legacy_fields, migrate_legacy_mapping
from .models import IssueKind, RawRecommendation, ValidationIssue, ValidationOutcome

logger = logging.getLogger(__name__)

_TRUE = {"true", "yes", "1"}
_FALSE = {"false", "no", "0"}


class _FieldError(ValueError):
    """A literal field value that no coercion can repair."""


def _ensure(condition: bool, message: str) -> None:
    if not condition:
        raise _FieldError(message)


def _is_absent(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    if isinstance(value, (list, tuple)):
        return all(_is_absent(item) for item in value)
    return False


@dataclass
class _FieldResult:
    value: Any = None
    unresolved: Any = None
    missing: List[Tuple[str, Tuple[str, ...]]] = field(default_factory=list)
    notes: List[ValidationIssue] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing


def _column_text(spec: FieldSpec, value: Any) -> str:
    _ensure(not isinstance(value, (dict, bool)), f"'{spec.name}' must reference a column")
    return value.strip() if isinstance(value, str) else str(value)


def _resolve_column(spec: FieldSpec, value: Any, index: ColumnIndex) -> _FieldResult:
    result = _FieldResult()
    if isinstance(value, (list, tuple)):
        present = [item for item in value if not _is_absent(item)]
        if len(present) > 1:
            result.notes.append(
                ValidationIssue(IssueKind.arity, f"'{spec.name}' takes one column; kept the first of {len(present)}", spec.name)
            )
        value = present[0]
    text = _column_text(spec, value)
    match = resolve(text, index)
    if match.resolved:
        result.value = match.match
    else:
        result.value = text
        result.unresolved = text
        result.missing.append((text, match.suggestions))
    return result


def _resolve_columns(spec: FieldSpec, value: Any, index: ColumnIndex) -> _FieldResult:
    result = _FieldResult()
    items = list(value) if isinstance(value, (list, tuple)) else [value]
    resolved: List[str] = []
    unresolved: List[str] = []
    for item in items:
        if _is_absent(item):
            continue
        text = _column_text(spec, item)
        match = resolve(text, index)
        target = match.match if match.resolved else text
        if target in resolved:
            continue
        resolved.append(target)
        if not match.resolved:
            unresolved.append(text)
            result.missing.append((text, match.suggestions))
    result.value = resolved
    result.unresolved = unresolved or None
    return result


def _coerce_enum(spec: FieldSpec, value: Any) -> str:
    _ensure(isinstance(value, str), f"'{spec.name}' must be one of {list(spec.vocabulary)}")
    key = value.strip().lower()
    key = (spec.synonyms or {}).get(key, key)
    _ensure(key in spec.vocabulary, f"'{spec.name}' value '{value}' is not one of {list(spec.vocabulary)}")
    return key


def _coerce_int(spec: FieldSpec, value: Any) -> int:
    _ensure(not isinstance(value, bool), f"'{spec.name}' must be an integer")
    if isinstance(value, str):
        text = value.strip()
        digits = text[1:] if text.startswith("-") else text
        _ensure(digits.isascii() and digits.isdecimal(), f"'{spec.name}' must be an integer, got '{value}'")
        try:
            number = int(text)
        except ValueError as exc:
            raise _FieldError(f"'{spec.name}' must be an integer, got '{value}'") from exc
    elif isinstance(value, float):
        _ensure(value.is_integer(), f"'{spec.name}' must be an integer, got {value}")
        number = int(value)
    else:
        _ensure(isinstance(value, int), f"'{spec.name}' must be an integer")
        number = value
    if spec.bounds:
        low, high = spec.bounds
        _ensure(low <= number <= high, f"'{spec.name}' must be within [{low}, {high}], got {number}")
    return number


def _coerce_bool(spec: FieldSpec, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    _ensure(text in _TRUE or text in _FALSE, f"'{spec.name}' must be a boolean, got '{value}'")
    return text in _TRUE


def _coerce_text(spec: FieldSpec, value: Any) -> str:
    _ensure(isinstance(value, (str, int, float)) and not isinstance(value, bool), f"'{spec.name}' must be text")
    return str(value).strip()


_LITERAL_COERCERS = {
    Arity.enum: _coerce_enum,
    Arity.int: _coerce_int,
    Arity.bool: _coerce_bool,
    Arity.text: _coerce_text,
}


def _resolve_field(spec: FieldSpec, value: Any, index: ColumnIndex) -> _FieldResult:
    if spec.arity is Arity.column:
        return _resolve_column(spec, value, index)
    if spec.arity is Arity.columns:
        return _resolve_columns(spec, value, index)
    return _FieldResult(value=_LITERAL_COERCERS[spec.arity](spec, value))


def _unresolved_issue(kind: IssueKind, name: str, text: str, suggestions: Tuple[str, ...]) -> ValidationIssue:
    message = f"'{name}' references unknown column '{text}'"
    if suggestions:
        message += f"; did you mean {', '.join(repr(s) for s in suggestions)}?"
    return ValidationIssue(kind, message, name, suggestions)


class _Checker:
    """Accumulates issues and the normalized mapping for one recommendation."""

    def __init__(self, outcome: ValidationOutcome, rule: KindRule, index: ColumnIndex) -> None:
        self.outcome = outcome
        self.rule = rule
        self.index = index
        self.specs = rule.fields()

    def block(self, message: str, name: str | None = None, suggestions: Tuple[str, ...] = ()) -> None:
        self.outcome.blocking_issues.append(ValidationIssue(IssueKind.structural, message, name, suggestions))

    def advise(self, issue: ValidationIssue) -> None:
        self.outcome.advisory_issues.append(issue)

    def canonicalize(self, mapping: Mapping[str, Any]) -> Dict[str, Any]:
        fields: Dict[str, Any] = {}
        for key, value in mapping.items():
            name = canonical_field_name(self.rule.kind, str(key))
            if name not in self.specs:
                self.advise(ValidationIssue(IssueKind.unknown_field, f"field '{key}' is not used by {self.rule.kind.value} charts", str(key)))
                continue
            if name in fields:
                self.advise(ValidationIssue(IssueKind.unknown_field, f"field '{key}' repeats '{name}'; kept the first", str(key)))
                continue
            if _is_absent(value):
                continue
            fields[name] = value
        return fields

    def evaluate(self, name: str, value: Any) -> Optional[_FieldResult]:
        try:
            return _resolve_field(self.specs[name], value, self.index)
        except _FieldError as exc:
            self.block(str(exc), name)
            return None

    def accept(self, name: str, result: _FieldResult, strict: bool) -> None:
        for note in result.notes:
            self.advise(note)
        for text, suggestions in result.missing:
            if strict:
                self.outcome.blocking_issues.append(_unresolved_issue(IssueKind.structural, name, text, suggestions))
            else:
                self.advise(_unresolved_issue(IssueKind.column_unresolved, name, text, suggestions))
        self.outcome.normalized_mapping[name] = result.value
        if result.unresolved is not None:
            self.outcome.unresolved[name] = result.unresolved

    def check_required(self, fields: Dict[str, Any]) -> None:
        for group in self.rule.required:
            present = [spec.name for spec in group if spec.name in fields]
            if not present:
                names = " or ".join(f"'{spec.name}'" for spec in group)
                self.block(f"{self.rule.kind.value} chart is missing required field {names}", group[0].name)
                continue
            results = {name: self.evaluate(name, fields[name]) for name in present}
            satisfied = any(result is not None and result.complete for result in results.values())
            for name, result in results.items():
                if result is not None:
                    self.accept(name, result, strict=not satisfied)

    def check_optional(self, fields: Dict[str, Any]) -> None:
        for spec in self.rule.optional:
            if spec.name not in fields:
                continue
            result = self.evaluate(spec.name, fields[spec.name])
            if result is not None:
                self.accept(spec.name, result, strict=False)


def _coerce_payload(item: Any) -> Optional[RawRecommendation]:
    if isinstance(item, RawRecommendation):
        return item
    if isinstance(item, Mapping):
        return RawRecommendation.from_payload(item)
    return None


def validate_recommendation(item: Any, index: ColumnIndex, log: logging.Logger | None = None) -> ValidationOutcome:
    """Check one raw recommendation against its chart kind's rule and the column index.

    Never raises on model output: every problem becomes a blocking or an
    advisory issue on the returned outcome.
    """

    log = log or logger
    raw = _coerce_payload(item)
    if raw is None:
        outcome = ValidationOutcome(recommendation=RawRecommendation(chart_kind=None))
        outcome.blocking_issues.append(ValidationIssue(IssueKind.structural, "recommendation must be an object"))
        _log_outcome(outcome, log)
        return outcome

    outcome = ValidationOutcome(recommendation=raw)
    kind = parse_chart_kind(raw.chart_kind)
    if kind is None:
        outcome.blocking_issues.append(
            ValidationIssue(IssueKind.structural, f"unsupported chart kind {raw.chart_kind!r}", "chartKind")
        )
        _log_outcome(outcome, log)
        return outcome
    outcome.chart_kind = kind

    mapping = raw.field_mapping
    if mapping is None and has_legacy_fields(raw.legacy):
        mapping = migrate_legacy_mapping(kind, raw.legacy)
        outcome.advisory_issues.append(
            ValidationIssue(IssueKind.migrated, "field mapping derived from legacy xAxis/yAxis/dataKey fields")
        )
    if mapping is None:
        mapping = {}
    if not isinstance(mapping, Mapping):
        outcome.blocking_issues.append(ValidationIssue(IssueKind.structural, "fieldMapping must be an object", "fieldMapping"))
        _log_outcome(outcome, log)
        return outcome

    checker = _Checker(outcome, RULES[kind], index)
    fields = checker.canonicalize(mapping)
    checker.check_required(fields)
    checker.check_optional(fields)
    _log_outcome(outcome, log)
    return outcome


def validate_all(items: Iterable[Any], index: ColumnIndex, log: logging.Logger | None = None) -> List[ValidationOutcome]:
    return [validate_recommendation(item, index, log) for item in items]


def _log_outcome(outcome: ValidationOutcome, log: logging.Logger) -> None:
    title = outcome.recommendation.title
    if outcome.blocking_issues:
        log.info(
            "Dropping recommendation %r: %s",
            title,
            "; ".join(issue.message for issue in outcome.blocking_issues),
        )
        return
    for issue in outcome.advisory_issues:
        log.debug("Recommendation %r: %s", title, issue.message)
