from __future__ import annotations

from unittest.mock import patch

import pytest

from roster_app.importer.pipeline import batch as batch_module
from roster_app.importer.pipeline.batch import ImportBatchTooLarge, import_staff, run_staff_import
from roster_app.models import ImportRun, ImportRunStatus, Organization, StaffMember, User, UserRole, db
from roster_app.utils.errors import Forbidden, StoreError, Unauthenticated
from roster_app.utils.permissions import caller_from_user
from roster_app.utils.units import UnresolvedUnit


def _active(unit_key: str | None = None):
    query = StaffMember.query.filter_by(is_active=True)
    if unit_key is not None:
        query = query.filter_by(unit_key=unit_key)
    return query


def test_ahmad_imported_twice_yields_one_certified_record(admin_token, school_a):
    rows = [{"name": "Ahmad", "externalId": "", "unit": "School A", "certified": "yes"}]

    first = import_staff(rows, caller_token=admin_token)
    second = import_staff(rows, caller_token=admin_token)

    assert first.created_count == 1
    assert second.created_count == 0
    assert second.updated_count == 1
    record = StaffMember.query.one()
    assert record.is_certified is True
    assert record.organization_id == school_a.id


def test_reimport_is_idempotent(admin_caller, school_a):
    rows = [
        {"nuptk": "1111", "nama": "Siti Aminah", "unit kerja": "School A", "mapel": "Fiqih"},
        {"nuptk": "2222", "nama": "Budi Santoso", "unit kerja": "School A", "mapel": "IPA"},
        {"nama": "Citra", "unit kerja": "School A"},
    ]

    first = run_staff_import(rows, caller=admin_caller)
    snapshot = {r.id: (r.external_id, r.name, r.subject) for r in StaffMember.query.all()}
    second = run_staff_import(rows, caller=admin_caller)

    assert (first.created_count, first.updated_count) == (3, 0)
    assert (second.created_count, second.updated_count) == (0, 3)
    assert second.errors == []
    assert {r.id: (r.external_id, r.name, r.subject) for r in StaffMember.query.all()} == snapshot


def test_identifier_wins_over_name(admin_caller, school_a, staff_factory):
    record = staff_factory("Siti Aminah", unit=school_a, external_id="1111")

    result = run_staff_import([{"nuptk": "1111", "name": "Siti Rahmawati", "unit": "School A"}], caller=admin_caller)

    assert result.updated_count == 1
    assert StaffMember.query.count() == 1
    db.session.refresh(record)
    assert record.name == "Siti Rahmawati"


def test_fuzzy_fallback_across_batches(admin_caller, school_a):
    run_staff_import([{"name": "Dewi Lestari", "unit": "School A"}], caller=admin_caller)
    result = run_staff_import([{"name": "dewi  lestari", "unit": "school a", "subject": "IPS"}], caller=admin_caller)

    assert result.created_count == 0
    assert result.updated_count == 1
    record = StaffMember.query.one()
    assert record.subject == "IPS"


def test_same_person_twice_in_one_batch_is_created_once(admin_caller, school_a):
    rows = [
        {"name": "Eka Putri", "unit": "School A"},
        {"name": "EKA PUTRI", "unit": "School A", "phone": "0812"},
    ]

    result = run_staff_import(rows, caller=admin_caller)

    assert (result.created_count, result.updated_count) == (1, 1)
    assert StaffMember.query.one().phone_number == "0812"


def test_operator_rows_are_pinned_to_home_unit(operator_caller, school_a, school_b):
    rows = [
        {"name": "Fajar", "unit": "School B"},
        {"name": "Gita", "unit": "Somewhere Else"},
        {"name": "Hana"},
    ]

    result = run_staff_import(rows, caller=operator_caller, unit_override="School B")

    assert result.created_count == 3
    assert result.errors == []
    assert {r.organization_id for r in StaffMember.query.all()} == {school_a.id}


def test_operator_cannot_patch_foreign_record_by_identifier(operator_caller, school_a, school_b, staff_factory):
    foreign = staff_factory("Indra", unit=school_b, external_id="9999", subject="IPS")

    result = run_staff_import(
        [{"nuptk": "9999", "name": "Indra", "subject": "Changed"}, {"name": "Joko"}],
        caller=operator_caller,
    )

    assert result.failed_count == 1
    assert result.created_count == 1
    assert result.errors[0].startswith("Row 1 (Indra): ")
    assert "outside your unit" in result.errors[0]
    db.session.refresh(foreign)
    assert foreign.subject == "IPS"
    assert foreign.organization_id == school_b.id


def test_full_sync_deactivates_only_unseen_records_of_touched_unit(admin_caller, school_a, school_b, staff_factory):
    staff_factory("Ahmad", unit=school_a, external_id="1111")
    staff_factory("Budi", unit=school_a, external_id="2222")
    dropped = staff_factory("Citra", unit=school_a, external_id="3333")
    untouched = staff_factory("Dewi", unit=school_b, external_id="4444")

    result = run_staff_import(
        [
            {"nuptk": "1111", "name": "Ahmad", "unit": "School A"},
            {"nuptk": "2222", "name": "Budi", "unit": "School A"},
        ],
        caller=admin_caller,
        full_sync=True,
    )

    assert result.updated_count == 2
    assert result.deactivated_count == 1
    assert {r.external_id for r in _active("schoola")} == {"1111", "2222"}
    db.session.refresh(dropped)
    db.session.refresh(untouched)
    assert dropped.is_active is False
    assert untouched.is_active is True


def test_full_sync_keeps_rows_matched_by_fuzzy_fallback(admin_caller, school_a, staff_factory):
    legacy = staff_factory("Eka", unit=school_a)

    result = run_staff_import([{"name": "Eka", "unit": "School A"}], caller=admin_caller, full_sync=True)

    assert result.deactivated_count == 0
    db.session.refresh(legacy)
    assert legacy.is_active is True


def test_without_full_sync_nothing_is_deactivated(admin_caller, school_a, staff_factory):
    staff_factory("Fajar", unit=school_a, external_id="5555")

    result = run_staff_import([{"name": "Gita", "unit": "School A"}], caller=admin_caller)

    assert result.deactivated_count == 0
    assert _active().count() == 2


def test_full_sync_with_only_invalid_rows_sweeps_nothing(admin_caller, school_a, staff_factory):
    staff_factory("Hana", unit=school_a)

    result = run_staff_import([{"unit": "School A"}], caller=admin_caller, full_sync=True)

    assert result.skipped_count == 1
    assert result.deactivated_count == 0
    assert _active().count() == 1


def test_malformed_rows_are_skipped_and_the_rest_imported(admin_caller, school_a):
    rows = [{"name": f"Staff {i}", "unit": "School A"} for i in range(10)]
    rows[2] = {"unit": "School A", "nuptk": "7777"}
    rows[5] = {"nama": "Tanpa Unit"}
    rows[7] = "not a row"

    result = run_staff_import(rows, caller=admin_caller)

    assert result.created_count == 7
    assert result.skipped_count == 3
    assert result.errors[0] == "Row 3 (Unknown): missing name"
    assert result.errors[1] == "Row 6 (Tanpa Unit): missing unit"
    assert result.errors[2].startswith("Row 8 (Unknown): ")
    assert result.status is ImportRunStatus.PARTIALLY_FAILED


def test_unit_override_applies_to_administrator_rows(admin_caller, school_a, school_b):
    result = run_staff_import([{"name": "Indra", "unit": "School A"}], caller=admin_caller, unit_override="School B")

    assert result.created_count == 1
    assert StaffMember.query.one().organization_id == school_b.id


def test_unknown_unit_is_stored_as_unresolved(admin_caller):
    run_staff_import([{"name": "Joko", "unit": "MI Baru"}], caller=admin_caller)

    record = StaffMember.query.one()
    assert record.organization_id is None
    assert record.unit_ref == UnresolvedUnit(name="MI Baru")


def test_invalid_token_aborts_before_any_row(school_a):
    with pytest.raises(Unauthenticated):
        import_staff([{"name": "Ahmad", "unit": "School A"}], caller_token="bogus")

    assert StaffMember.query.count() == 0
    assert ImportRun.query.count() == 0


def test_operator_without_home_unit_aborts_batch(app):
    user = User(username="orphan", role=UserRole.OPERATOR, is_active=True)
    db.session.add(user)
    db.session.commit()

    with pytest.raises(Forbidden):
        run_staff_import([{"name": "Ahmad", "unit": "School A"}], caller=caller_from_user(user))

    assert StaffMember.query.count() == 0
    assert ImportRun.query.count() == 0


def test_batch_over_row_limit_is_rejected(app, admin_caller):
    app.config["STAFF_IMPORT_MAX_ROWS"] = 2

    with pytest.raises(ImportBatchTooLarge) as excinfo:
        run_staff_import([{"name": str(i)} for i in range(3)], caller=admin_caller)

    assert isinstance(excinfo.value, ValueError)
    assert ImportRun.query.count() == 0


def test_store_error_is_recorded_per_row(admin_caller, school_a):
    real_upsert = batch_module.upsert_staff_member

    def flaky_upsert(session, draft, **kwargs):
        if draft.name == "Broken":
            raise StoreError("could not save staff record (OperationalError)")
        return real_upsert(session, draft, **kwargs)

    with patch.object(batch_module, "upsert_staff_member", side_effect=flaky_upsert):
        result = run_staff_import(
            [{"name": "Broken", "unit": "School A"}, {"name": "Fine", "unit": "School A"}],
            caller=admin_caller,
        )

    assert result.created_count == 1
    assert result.failed_count == 1
    assert result.errors == ["Row 1 (Broken): could not save staff record (OperationalError)"]


def test_import_run_ledger_is_written(admin_caller, admin_user, school_a):
    result = run_staff_import(
        [{"name": "Kiki", "unit": "School A"}, {"unit": "School A"}],
        caller=admin_caller,
        full_sync=True,
    )

    run = db.session.get(ImportRun, result.run_id)
    assert run.status is ImportRunStatus.PARTIALLY_FAILED
    assert run.full_sync is True
    assert run.row_count == 2
    assert run.triggered_by_user_id == admin_user.id
    assert run.counts_json["created_count"] == 1
    assert run.counts_json["skipped_count"] == 1
    assert "missing name" in run.error_summary
    assert run.finished_at is not None


def test_unexpected_failure_marks_run_failed(admin_caller, school_a):
    with patch.object(batch_module.CandidateIndex, "build", side_effect=RuntimeError("boom")):
        with pytest.raises(RuntimeError):
            run_staff_import([{"name": "Lala", "unit": "School A"}], caller=admin_caller)

    run = ImportRun.query.one()
    assert run.status is ImportRunStatus.FAILED


def test_new_organization_resolves_after_invalidation(app, admin_caller):
    from roster_app.importer.pipeline.unit_directory import invalidate_unit_directory

    run_staff_import([{"name": "Mira", "unit": "School A"}], caller=admin_caller)
    assert StaffMember.query.one().organization_id is None

    org = Organization(name="School A", slug="school-a")
    db.session.add(org)
    db.session.commit()
    invalidate_unit_directory(app)

    result = run_staff_import([{"name": "Mira", "unit": "School A"}], caller=admin_caller)

    assert result.updated_count == 1
    assert StaffMember.query.one().organization_id == org.id


def test_as_dict_uses_snake_case_keys(admin_caller, school_a):
    payload = run_staff_import([{"name": "Nina", "unit": "School A"}], caller=admin_caller).as_dict()

    assert payload["created_count"] == 1
    assert set(payload) == {
        "created_count",
        "updated_count",
        "skipped_count",
        "failed_count",
        "deactivated_count",
        "deactivation_failures",
        "errors",
        "run_id",
    }


def test_full_sync_leaves_same_named_organization_alone(twin_schools, south_operator_caller, staff_factory):
    north, south = twin_schools
    neighbour = staff_factory("Siti", unit=north, external_id="9001")
    legacy = staff_factory("Tono", unit=UnresolvedUnit(name="MI Maarif"))

    result = run_staff_import([{"name": "Budi", "nuptk": "1234"}], caller=south_operator_caller, full_sync=True)

    assert result.created_count == 1
    assert result.deactivated_count == 0
    db.session.refresh(neighbour)
    db.session.refresh(legacy)
    assert neighbour.is_active is True
    assert legacy.is_active is True
    assert StaffMember.query.filter_by(external_id="1234").one().organization_id == south.id


def test_operator_name_match_stays_inside_own_organization(twin_schools, south_operator_caller, staff_factory):
    north, south = twin_schools
    neighbour = staff_factory("Ahmad", unit=north)

    result = run_staff_import([{"name": "Ahmad"}], caller=south_operator_caller)

    assert result.created_count == 1
    assert result.errors == []
    assert StaffMember.query.filter_by(organization_id=south.id).one().name == "Ahmad"
    db.session.refresh(neighbour)
    assert neighbour.organization_id == north.id


def test_full_sync_keeps_rows_that_failed_to_save(admin_caller, school_a, staff_factory):
    kept = staff_factory("Citra", unit=school_a, external_id="3333")
    real_upsert = batch_module.upsert_staff_member

    def flaky_upsert(session, draft, **kwargs):
        if draft.name == "Citra":
            raise StoreError("could not save staff record (OperationalError)")
        return real_upsert(session, draft, **kwargs)

    with patch.object(batch_module, "upsert_staff_member", side_effect=flaky_upsert):
        result = run_staff_import(
            [
                {"nuptk": "3333", "name": "Citra", "unit": "School A"},
                {"nuptk": "4444", "name": "Dodi", "unit": "School A"},
            ],
            caller=admin_caller,
            full_sync=True,
        )

    assert result.failed_count == 1
    assert result.deactivated_count == 0
    db.session.refresh(kept)
    assert kept.is_active is True
