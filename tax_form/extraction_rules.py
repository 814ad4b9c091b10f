"""
Project: Renta Assistant
File: extraction_rules.py

Validating rule table for conversational field extraction.

Each rule looks at the newest (user message, assistant message) pair and
proposes zero or more ExtractionCandidates for the fields it declares. The
table is the only place extraction coverage is defined; adding coverage means
adding a rule here, never sprinkling string checks through the pipeline.

Methods & Classes
- class ExtractionRule: name, fields, apply(user_message, assistant_message) -> list[ExtractionCandidate]
- class IdentificationRule: DNI-shaped token (8 digits + 1 letter) in the user message
- class FullNameRule: split the user message into first/last name when the
  assistant just asked for the full name
- DEFAULT_RULES: ordered default table
- class RuleTable(rules): validates names/fields, iterates rules in order
- default_rule_table() -> RuleTable

Dependencies
- Internal: form_schema (closed field set), form_state.ExtractionCandidate
- Stdlib: logging, re, typing
"""

from __future__ import annotations

import logging
import re
from typing import Iterator, List, Sequence, Tuple

from tax_form.form_schema import is_known_field
from tax_form.form_state import ExtractionCandidate

LOGGER = logging.getLogger("renta.rules")

FULL_NAME_TRIGGER = "nombre completo"


class ExtractionRule:
    name: str = "base"
    fields: Tuple[str, ...] = ()

    def apply(self, user_message: str, assistant_message: str) -> List[ExtractionCandidate]:
        raise NotImplementedError

    def _candidate(self, field: str, value: str) -> ExtractionCandidate:
        return ExtractionCandidate(field=field, value=value, rule=self.name)


class IdentificationRule(ExtractionRule):
    """First DNI-shaped token anywhere in the user message (not split per word)."""

    name = "identification"
    fields = ("identification",)
    pattern = re.compile(r"\d{8}[a-z]", re.IGNORECASE | re.ASCII)

    def apply(self, user_message: str, assistant_message: str) -> List[ExtractionCandidate]:
        m = self.pattern.search(user_message or "")
        if not m:
            return []
        return [self._candidate("identification", m.group(0))]


class FullNameRule(ExtractionRule):
    """
    When the assistant's message asks for the full name, the user's reply is
    read as "<first> <last...>": first token is the first name, the rest the
    surnames joined by single spaces.
    """

    name = "full_name"
    fields = ("firstName", "lastName")
    trigger = FULL_NAME_TRIGGER

    def apply(self, user_message: str, assistant_message: str) -> List[ExtractionCandidate]:
        if self.trigger not in (assistant_message or "").casefold():
            return []
        tokens = (user_message or "").split()
        if len(tokens) < 2:
            return []
        return [
            self._candidate("firstName", tokens[0]),
            self._candidate("lastName", " ".join(tokens[1:])),
        ]


DEFAULT_RULES: Tuple[ExtractionRule, ...] = (
    IdentificationRule(),
    FullNameRule(),
)


class RuleTable:
    def __init__(self, rules: Sequence[ExtractionRule]):
        self._rules = tuple(rules)
        self._validate()

    def _validate(self) -> None:
        names = [r.name for r in self._rules]
        dupes = sorted({n for n in names if names.count(n) > 1})
        unknown = sorted({f for r in self._rules for f in r.fields if not is_known_field(f)})
        if dupes or unknown:
            LOGGER.error("rule_table_invalid", extra={"duplicates": dupes, "unknown_fields": unknown})
            raise RuntimeError(f"Extraction rule table invalid. duplicates={dupes} unknown_fields={unknown}")
        LOGGER.debug("rule_table_validated", extra={"rules": names})

    def __iter__(self) -> Iterator[ExtractionRule]:
        return iter(self._rules)

    def __len__(self) -> int:
        return len(self._rules)

    @property
    def names(self) -> List[str]:
        return [r.name for r in self._rules]


def default_rule_table() -> RuleTable:
    return RuleTable(DEFAULT_RULES)
