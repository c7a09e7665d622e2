import re

import pytest

from roster_app.models import PLACEHOLDER_PREFIX, StaffMember, User, UserRole, db
from roster_app.models.staff import generate_placeholder_external_id, is_real_external_id
from roster_app.utils.units import ResolvedUnit, UnresolvedUnit


def test_placeholder_external_id_format():
    value = generate_placeholder_external_id()

    assert value.startswith(PLACEHOLDER_PREFIX)
    assert re.fullmatch(r"TMP-\d+-\d{6}", value)
    assert is_real_external_id(value) is False


@pytest.mark.parametrize(
    "value,expected",
    [("1111", True), ("  22 ", True), ("", False), (None, False), ("tmp-1-000001", False)],
)
def test_is_real_external_id(value, expected):
    assert is_real_external_id(value) is expected


def test_name_key_follows_name(app):
    record = StaffMember(external_id="1", name="  Ahmad   FAUZI ")
    assert record.name_key == "ahmadfauzi"

    record.name = "Budi"
    assert record.name_key == "budi"


def test_assign_unit_tracks_resolution(school_a):
    record = StaffMember(external_id="1", name="Citra")

    record.assign_unit(ResolvedUnit(organization_id=school_a.id, name=school_a.name))
    assert record.unit_ref == ResolvedUnit(organization_id=school_a.id, name="School A")
    assert record.unit_key == "schoola"

    record.assign_unit(UnresolvedUnit(name="MI Baru"))
    assert record.organization_id is None
    assert record.unit_ref == UnresolvedUnit(name="MI Baru")


def test_to_dict_exposes_unit_and_attributes(school_a, staff_factory):
    record = staff_factory("Dewi", unit=school_a, external_id="4444", subject="IPA", is_certified=True)

    payload = record.to_dict()

    assert payload["has_real_external_id"] is True
    assert payload["unit"] == {"organization_id": school_a.id, "name": "School A", "resolved": True}
    assert payload["attributes"]["subject"] == "IPA"
    assert payload["attributes"]["is_certified"] is True
    assert payload["created_at"] is not None


def test_api_token_roundtrip(admin_user):
    token = admin_user.issue_api_token()
    db.session.commit()

    assert admin_user.api_token_digest != token
    assert User.find_by_api_token(token) == admin_user
    assert User.find_by_api_token("") is None

    admin_user.revoke_api_token()
    db.session.commit()
    assert User.find_by_api_token(token) is None


def test_inactive_user_token_is_ignored(operator_user):
    token = operator_user.issue_api_token()
    operator_user.is_active = False
    db.session.commit()

    assert User.find_by_api_token(token) is None


def test_home_unit(operator_user, admin_user):
    assert operator_user.home_unit == ResolvedUnit(organization_id=operator_user.organization_id, name="School A")
    assert admin_user.home_unit is None

    admin_user.home_unit_name = " MI Lama "
    assert admin_user.home_unit == UnresolvedUnit(name="MI Lama")


def test_user_role_coerce():
    assert UserRole.coerce("Administrator") is UserRole.ADMINISTRATOR
    assert UserRole.coerce(UserRole.OPERATOR) is UserRole.OPERATOR
    with pytest.raises(ValueError):
        UserRole.coerce("superuser")
