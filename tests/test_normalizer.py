import pytest

from config.field_aliases import DEFAULT_PROFILE
from roster_app.importer.pipeline.normalize import RawRow, StaffDraft, normalize_row
from roster_app.utils.errors import ValidationSkip


def test_labels_are_matched_after_normalization():
    draft = normalize_row(
        {
            "NUPTK": "1234 5678 9012 3456",
            "Nama Lengkap": "  Siti Aminah ",
            "Unit_Kerja": "MI Ma'arif 01",
            "Tgl. Lahir": "07/03/1985",
            "Status Kepegawaian": "Guru Tetap Yayasan",
        },
        row_number=4,
        profile=DEFAULT_PROFILE,
    )

    assert isinstance(draft, StaffDraft)
    assert draft.row_number == 4
    assert draft.external_id == "1234567890123456"
    assert draft.has_real_external_id
    assert draft.name == "Siti Aminah"
    assert draft.declared_unit == "MI Ma'arif 01"
    assert draft.attributes == {"birth_date": "1985-03-07", "employment_status": "GTY"}


def test_missing_name_raises_validation_skip():
    with pytest.raises(ValidationSkip) as excinfo:
        normalize_row({"nuptk": "123", "unit": "School A"}, row_number=9, profile=DEFAULT_PROFILE)

    assert excinfo.value.row_number == 9
    assert "missing name" in str(excinfo.value)


@pytest.mark.parametrize("external_id", ["", "-", None, "   "])
def test_blank_identifier_gets_placeholder(external_id):
    draft = normalize_row(
        {"name": "Ahmad", "externalId": external_id, "unit": "School A"},
        row_number=1,
        profile=DEFAULT_PROFILE,
    )

    assert draft.external_id.startswith("TMP-")
    assert not draft.has_real_external_id


def test_numeric_identifier_loses_float_suffix():
    draft = normalize_row({"name": "Budi", "nuptk": 3201765432100012.0}, row_number=1, profile=DEFAULT_PROFILE)
    assert draft.external_id == "3201765432100012"


def test_absent_and_blank_attributes_are_left_out():
    draft = normalize_row(
        {"name": "Budi", "phone": "", "email": "-", "certified": "yes"},
        row_number=1,
        profile=DEFAULT_PROFILE,
    )

    assert draft.attributes == {"is_certified": True}


def test_malformed_values_never_fail_the_row():
    draft = normalize_row(
        {"name": "Budi", "birth date": "around 1980", "pdpkpnu": "belum", "start date": "TMT 2010"},
        row_number=1,
        profile=DEFAULT_PROFILE,
    )

    assert draft.attributes["birth_date"] == "around 1980"
    assert draft.attributes["training_completed"] is False
    assert draft.attributes["start_date"] == "TMT 2010"


def test_alias_priority_prefers_earlier_alias():
    draft = normalize_row(
        {"name": "Budi", "sekolah": "Second Choice", "unit kerja": "First Choice"},
        row_number=1,
        profile=DEFAULT_PROFILE,
    )
    assert draft.declared_unit == "First Choice"


def test_raw_row_keeps_first_non_blank_value_for_colliding_labels():
    raw = RawRow({"Unit Kerja": "", "unit_kerja": "School A", "UNIT KERJA": "School B"})
    assert raw.first(["unit kerja"]) == "School A"
    assert len(raw) == 1


def test_non_mapping_row_is_rejected():
    with pytest.raises(TypeError):
        normalize_row(["Ahmad", "School A"], row_number=1, profile=DEFAULT_PROFILE)
