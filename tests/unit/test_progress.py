import pytest

from tax_form.form_schema import ORDERED_FIELD_NAMES
from tax_form.form_state import FormRecord
from tax_form.progress import missing_fields, snapshot


def _record(n: int) -> FormRecord:
    return FormRecord(fields={name: "x" for name in ORDERED_FIELD_NAMES[:n]})


@pytest.mark.parametrize(
    "n,pct,status",
    [
        (0, 0, "not-started"),
        (4, 40, "in-progress"),
        (10, 100, "completed"),
        (15, 100, "completed"),
    ],
)
def test_snapshot_scenarios(n, pct, status):
    s = snapshot(_record(n))
    assert s.percent_complete == pct
    assert s.status == status


def test_progress_is_monotone_and_capped():
    last = -1
    for n in range(len(ORDERED_FIELD_NAMES) + 1):
        pct = snapshot(_record(n)).percent_complete
        assert last <= pct <= 100
        last = pct


def test_missing_fields_by_section_in_schema_order():
    r = FormRecord(fields={"firstName": "Ana", "employmentIncome": "100"})
    left = missing_fields(r)
    assert list(left) == ["identification", "income", "deductions"]
    assert left["identification"] == ["identification", "lastName", "address", "postalCode", "city", "province"]
    assert "employmentIncome" not in left["income"]


def test_missing_fields_drops_complete_sections():
    r = FormRecord(fields={name: "1" for name in ORDERED_FIELD_NAMES[:7]})
    assert "identification" not in missing_fields(r)
