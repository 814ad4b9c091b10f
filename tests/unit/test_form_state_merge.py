# tests/unit/test_form_state_merge.py
"""
Form record merge + provenance unit tests.

What is tested
--------------
- last-write-wins per field, across concatenated candidate lists.
- merge never mutates its input; merge(r, []) == r.
- protect_manual skips fields last written on the review surface.
- provenance keeps exactly one row per field (the latest writer).
- review-surface edits: unknown names, amount validation, clearing.
- the record rejects unknown names and empty values.

File dependencies
-----------------
- tax_form.form_state (system under test)
"""

import pytest
from pydantic import ValidationError

from tax_form.error_handler import FormValidationError, UnknownFieldError
from tax_form.form_state import (
    ExtractionCandidate,
    FormRecord,
    apply_manual_edits,
    diff,
    merge,
)


def _c(field: str, value: str, rule: str = "test") -> ExtractionCandidate:
    return ExtractionCandidate(field=field, value=value, rule=rule)


def test_merge_empty_candidates_is_identity():
    r = merge(FormRecord(), [_c("city", "Sevilla")])
    assert merge(r, []) == r


def test_merge_does_not_mutate_input():
    r = FormRecord(fields={"firstName": "Ana"})
    r2 = merge(r, [_c("firstName", "Lucía"), _c("lastName", "Pérez")])
    assert r.fields == {"firstName": "Ana"}
    assert r.provenance == []
    assert r2.fields == {"firstName": "Lucía", "lastName": "Pérez"}


def test_last_candidate_wins_across_concatenated_lists():
    a = [_c("identification", "12345678Z"), _c("city", "Cádiz")]
    b = [_c("identification", "87654321X")]
    r = merge(FormRecord(), a + b)
    assert r.fields["identification"] == "87654321X"
    assert r.fields["city"] == "Cádiz"
    # same result as merging the lists one after the other
    assert merge(merge(FormRecord(), a), b).fields == r.fields


def test_one_provenance_row_per_field_latest_writer():
    r = merge(FormRecord(), [_c("firstName", "Ana", "full_name")], sequence=3, timestamp="T1")
    r = merge(r, [_c("firstName", "Eva", "full_name")], sequence=5, timestamp="T2")
    rows = [p for p in r.provenance if p.field == "firstName"]
    assert len(rows) == 1
    assert rows[0].value == "Eva"
    assert rows[0].source == "extractor:full_name"
    assert rows[0].sequence == 5
    assert rows[0].timestamp == "T2"


def test_last_write_overwrites_manual_edit_by_default():
    r = apply_manual_edits(FormRecord(), {"firstName": "Ana María"})
    r2 = merge(r, [_c("firstName", "Ana")])
    assert r2.fields["firstName"] == "Ana"
    assert r2.manual_fields() == set()


def test_protect_manual_skips_manually_written_fields():
    r = apply_manual_edits(FormRecord(), {"firstName": "Ana María"})
    r2 = merge(r, [_c("firstName", "Ana"), _c("lastName", "López")], policy="protect_manual")
    assert r2.fields["firstName"] == "Ana María"
    assert r2.fields["lastName"] == "López"
    assert r2.manual_fields() == {"firstName"}


def test_manual_edit_unknown_field_applies_nothing():
    r = FormRecord(fields={"city": "Sevilla"})
    with pytest.raises(UnknownFieldError) as ei:
        apply_manual_edits(r, {"city": "Málaga", "shoeSize": "42"})
    assert "shoeSize" in str(ei.value)
    assert r.fields == {"city": "Sevilla"}


def test_manual_edit_amount_validation():
    with pytest.raises(FormValidationError):
        apply_manual_edits(FormRecord(), {"employmentIncome": "mucho"})
    r = apply_manual_edits(FormRecord(), {"employmentIncome": "23500,50", "otherIncome": " 120 "})
    assert r.fields == {"employmentIncome": "23500,50", "otherIncome": "120"}


def test_manual_edit_empty_value_clears_field_and_provenance():
    r = apply_manual_edits(FormRecord(), {"city": "Sevilla", "province": "Sevilla"})
    r2 = apply_manual_edits(r, {"city": ""})
    assert "city" not in r2.fields
    assert [p.field for p in r2.provenance] == ["province"]


def test_record_rejects_unknown_and_empty_fields():
    with pytest.raises(ValidationError):
        FormRecord(fields={"nope": "x"})
    with pytest.raises(ValidationError):
        FormRecord(fields={"city": ""})
    with pytest.raises(ValidationError):
        ExtractionCandidate(field="nope", value="x")


def test_diff_lists_changed_fields_only():
    before = FormRecord(fields={"city": "Sevilla", "firstName": "Ana"})
    after = FormRecord(fields={"city": "Sevilla", "firstName": "Eva", "lastName": "Gil"})
    assert diff(before, after) == {"firstName": ("Ana", "Eva"), "lastName": (None, "Gil")}
