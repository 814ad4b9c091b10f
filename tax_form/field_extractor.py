"""
Field extractor: run the rule table over the newest (user, assistant) pair.

Best-effort and pattern-based. Pure: the same pair always yields the same
candidates, in rule-table order. An empty result is the normal "no match"
outcome; callers skip the merge when nothing comes back.
"""

from __future__ import annotations

from typing import List, Optional

from tax_form.extraction_rules import RuleTable, default_rule_table
from tax_form.form_state import ExtractionCandidate

_DEFAULT_TABLE: Optional[RuleTable] = None


def _default_table() -> RuleTable:
    global _DEFAULT_TABLE
    if _DEFAULT_TABLE is None:
        _DEFAULT_TABLE = default_rule_table()
    return _DEFAULT_TABLE


def extract(
    user_message: str,
    assistant_message: str,
    *,
    rules: Optional[RuleTable] = None,
) -> List[ExtractionCandidate]:
    table = rules if rules is not None else _default_table()
    out: List[ExtractionCandidate] = []
    for rule in table:
        out.extend(rule.apply(user_message, assistant_message))
    return out
