from __future__ import annotations

import pytest

from roster_app.services.staff_query_service import StaffFilters, StaffQueryService


@pytest.fixture
def roster(school_a, school_b, staff_factory):
    return {
        "ahmad": staff_factory("Ahmad Fauzi", unit=school_a, external_id="1111", is_certified=True),
        "budi": staff_factory("Budi Santoso", unit=school_a),
        "citra": staff_factory("Citra Dewi", unit=school_a, is_active=False),
        "dewi": staff_factory("Dewi Lestari", unit=school_b, is_certified=True),
    }


def _names(result):
    return [item.name for item in result.items]


def test_administrator_sees_every_active_record(admin_caller, roster):
    result = StaffQueryService().list_staff(admin_caller, StaffFilters())

    assert result.total == 3
    assert _names(result) == ["Ahmad Fauzi", "Budi Santoso", "Dewi Lestari"]


def test_inactive_records_on_request(admin_caller, roster):
    result = StaffQueryService().list_staff(admin_caller, StaffFilters(include_inactive=True))
    assert result.total == 4


def test_operator_is_pinned_to_home_unit(operator_caller, roster):
    result = StaffQueryService().list_staff(operator_caller, StaffFilters(unit="School B"))

    assert _names(result) == ["Ahmad Fauzi", "Budi Santoso"]


def test_filters_by_unit_search_and_certification(admin_caller, roster):
    service = StaffQueryService()

    assert _names(service.list_staff(admin_caller, StaffFilters(unit="School B"))) == ["Dewi Lestari"]
    assert _names(service.list_staff(admin_caller, StaffFilters(search="fauzi"))) == ["Ahmad Fauzi"]
    assert _names(service.list_staff(admin_caller, StaffFilters(search="dewi", include_inactive=True))) == [
        "Citra Dewi",
        "Dewi Lestari",
    ]
    assert _names(service.list_staff(admin_caller, StaffFilters(is_certified=True))) == [
        "Ahmad Fauzi",
        "Dewi Lestari",
    ]


def test_pagination(admin_caller, roster):
    result = StaffQueryService().list_staff(admin_caller, StaffFilters(page=2, per_page=2))

    assert result.total == 3
    assert result.total_pages == 2
    assert _names(result) == ["Dewi Lestari"]
    assert result.as_dict()["items"][0]["unit"]["name"] == "School B"


def test_empty_result(admin_caller, app):
    result = StaffQueryService().list_staff(admin_caller)
    assert result.total == 0
    assert result.total_pages == 0


def test_get_staff_respects_scope(admin_caller, operator_caller, roster):
    service = StaffQueryService()

    assert service.get_staff(admin_caller, roster["dewi"].id).name == "Dewi Lestari"
    assert service.get_staff(operator_caller, roster["dewi"].id) is None
    assert service.get_staff(operator_caller, roster["budi"].id).name == "Budi Santoso"
    assert service.get_staff(admin_caller, 999999) is None


def test_filter_coercion():
    filters = StaffFilters.coerce(
        unit=" School A ",
        search="  ",
        include_inactive="yes",
        is_certified="false",
        page="3",
        per_page="1000",
        max_per_page=200,
    )

    assert filters == StaffFilters(
        unit="School A", search=None, include_inactive=True, is_certified=False, page=3, per_page=200
    )


@pytest.mark.parametrize("kwargs", [{"page": "abc"}, {"per_page": "-1"}, {"is_certified": "maybe"}])
def test_filter_coercion_rejects_bad_input(kwargs):
    with pytest.raises(ValueError):
        StaffFilters.coerce(**kwargs)


def test_filters_by_district(admin_caller, school_a, staff_factory):
    staff_factory("Eka", unit=school_a, district="Kota")
    staff_factory("Fajar", unit=school_a, district="Kabupaten")
    service = StaffQueryService()

    assert _names(service.list_staff(admin_caller, StaffFilters.coerce(district=" kota "))) == ["Eka"]
    assert service.list_staff(admin_caller, StaffFilters.coerce(district="all")).total == 2


def test_operator_listing_ignores_same_named_organization(twin_schools, south_operator_caller, staff_factory):
    north, south = twin_schools
    staff_factory("Gita", unit=north)
    staff_factory("Hana", unit=south)

    assert _names(StaffQueryService().list_staff(south_operator_caller)) == ["Hana"]
