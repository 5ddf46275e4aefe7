"""Declarative rule-based validation for build records.

A rule is a pure function ``rule(record) -> str | None``: it returns a
human-readable failure message, or ``None`` when the record is fine.
Rules never perform I/O and never raise on malformed input. Every rule
in a list runs against the same candidate, so error order follows rule
order.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping, Sequence
from typing import Any

Rule = Callable[[Mapping[str, Any]], "str | None"]


class ValidationError(RuntimeError):
    """Raised when a candidate record violates one or more rules."""

    def __init__(self, errors: Sequence[str]) -> None:
        self.errors = list(errors)
        super().__init__("; ".join(self.errors))


def require_keys(keys: Iterable[str]) -> Rule:
    """Build a rule failing when any of *keys* is absent from the record.

    Only presence is checked; a key mapped to ``None`` is present.
    """
    required = tuple(keys)

    def _rule(record: Mapping[str, Any]) -> str | None:
        missing = [k for k in required if k not in record]
        if missing:
            return f"missing required keys: {', '.join(missing)}"
        return None

    return _rule


def validate(rules: Sequence[Rule], record: Any) -> list[str]:
    """Return every failure message for *record*, in rule order."""
    if not isinstance(record, Mapping):
        return [f"record must be a mapping, got {type(record).__name__}"]
    errors: list[str] = []
    for rule in rules:
        message = rule(record)
        if message:
            errors.append(message)
    return errors


def is_valid(rules: Sequence[Rule], record: Any) -> bool:
    return not validate(rules, record)


def enforce(rules: Sequence[Rule], record: Any) -> None:
    """Raise ``ValidationError`` carrying all failures, if there are any."""
    errors = validate(rules, record)
    if errors:
        raise ValidationError(errors)


class ValidationEngine:
    """An ordered, open rule list bound to the validate/enforce entry points.

    Parameters
    ----------
    rules:
        Initial rules. More can be appended with ``add_rule`` or dropped
        with ``remove_rule`` without touching the engine.
    """

    def __init__(self, rules: Iterable[Rule] = ()) -> None:
        self._rules: list[Rule] = list(rules)

    @property
    def rules(self) -> tuple[Rule, ...]:
        return tuple(self._rules)

    def add_rule(self, rule: Rule) -> None:
        self._rules.append(rule)

    def remove_rule(self, rule: Rule) -> None:
        self._rules.remove(rule)

    def validate(self, record: Any) -> list[str]:
        return validate(self._rules, record)

    def is_valid(self, record: Any) -> bool:
        return is_valid(self._rules, record)

    def enforce(self, record: Any) -> None:
        enforce(self._rules, record)
