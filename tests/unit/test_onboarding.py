import pytest
from pydantic import ValidationError

from tax_form.error_handler import FormValidationError
from tax_form.onboarding import SubjectProfile, complete_onboarding


def test_onboarding_requires_names():
    with pytest.raises(FormValidationError) as ei:
        complete_onboarding("Ana", "  ")
    assert ei.value.details["fields"] == ["last_name"]


def test_onboarding_normalizes_fields():
    p = complete_onboarding(" Ana ", "Pérez", "12345678z", previously_filed=True)
    assert (p.first_name, p.last_name, p.identification) == ("Ana", "Pérez", "12345678Z")
    assert p.previously_filed is True
    assert p.onboarding_completed is True


def test_blank_identification_is_none():
    assert complete_onboarding("Ana", "Pérez", "   ").identification is None


def test_profile_rejects_unknown_keys():
    with pytest.raises(ValidationError):
        SubjectProfile(first_name="Ana", last_name="Pérez", nickname="A")
