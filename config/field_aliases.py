"""
Column-label alias profile for the staff importer.

Spreadsheet exports arrive with inconsistent headers ("NUPTK", "Nomor Induk
Ma'arif", "nama lengkap", "Unit Kerja", ...). The normalizer consults this
profile to map each canonical staff field to the labels it may arrive under.
Labels are compared after lower-casing and dropping every non-alphanumeric
character, so ``"Tgl. Lahir"`` and ``"tgl lahir"`` are the same label.

Operators can extend or replace the built-in aliases by pointing the
``IMPORTER_FIELD_ALIASES_PATH`` environment variable at a JSON or YAML file::

    key: district-office
    fields:
      - field_name: external_id
        aliases: ["no pegawai"]
      - field_name: unit
        aliases: ["madrasah"]
        replace: true
"""

from __future__ import annotations

import json
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Mapping, MutableMapping, Sequence

import yaml


@dataclass(frozen=True)
class FieldAlias:
    """
    Alias list for one canonical field.

    Attributes:
        field_name: Canonical attribute name on ``StaffMember`` (or one of the
            identity slots ``external_id``, ``name``, ``unit``).
        aliases: Labels in priority order; the first non-blank value wins.
        kind: How the normalizer coerces the raw value.
    """

    field_name: str
    aliases: Sequence[str]
    kind: str = "text"


@dataclass(frozen=True)
class FieldAliasProfile:
    key: str
    label: str
    fields: Sequence[FieldAlias]

    def find(self, field_name: str) -> FieldAlias | None:
        for field_alias in self.fields:
            if field_alias.field_name == field_name:
                return field_alias
        return None

    @property
    def attribute_fields(self) -> tuple[FieldAlias, ...]:
        return tuple(item for item in self.fields if item.field_name not in IDENTITY_FIELD_NAMES)


IDENTITY_FIELD_NAMES = ("external_id", "name", "unit")

DEFAULT_FIELDS: tuple[FieldAlias, ...] = (
    FieldAlias(
        "external_id",
        (
            "externalId",
            "external_id",
            "nuptk",
            "pegid",
            "peg id",
            "nomor induk ma'arif",
            "nomor induk",
            "niy",
            "n.i.y",
            "employee id",
        ),
    ),
    FieldAlias("name", ("name", "nama", "nama lengkap", "nama guru", "full name")),
    FieldAlias(
        "unit",
        (
            "unit",
            "unit kerja",
            "satminkal",
            "tempat tugas",
            "lembaga",
            "nama madrasah",
            "sekolah",
            "school",
        ),
    ),
    FieldAlias("nip", ("nip",)),
    FieldAlias("gender", ("gender", "jenis kelamin", "jk", "l/p")),
    FieldAlias("birth_place", ("birth place", "tempat lahir", "tmp lahir")),
    FieldAlias("birth_date", ("birth date", "tanggal lahir", "tgl lahir", "tgl. lahir"), kind="date"),
    FieldAlias(
        "education_level",
        ("education", "education level", "pendidikan terakhir", "pendidikan", "ijazah terakhir"),
    ),
    FieldAlias("subject", ("subject", "mapel", "mata pelajaran", "jabatan")),
    FieldAlias(
        "employment_status",
        ("employment status", "status", "status kepegawaian", "status guru"),
        kind="status",
    ),
    FieldAlias(
        "start_date",
        ("start date", "tmt", "tanggal mulai tugas", "mulai tugas", "tgl masuk", "tmt guru"),
        kind="date",
    ),
    FieldAlias("district", ("district", "kecamatan", "kec", "distrik", "wilayah")),
    FieldAlias("phone_number", ("phone", "phone number", "no hp", "nomor hp", "no wa", "telepon")),
    FieldAlias("email", ("email", "e-mail")),
    FieldAlias(
        "is_certified",
        (
            "certified",
            "is certified",
            "sertifikasi",
            "sertifikat",
            "status sertifikasi",
            "sudah sertifikasi",
            "ket sertifikasi",
        ),
        kind="boolean",
    ),
    FieldAlias(
        "training_completed",
        (
            "training completed",
            "pdpkpnu",
            "pkpnu",
            "diklat",
            "status pdpkpnu",
            "ket pdpkpnu",
            "keterangan pdpkpnu",
            "sertifikat pdpkpnu",
            "lulus pdpkpnu",
        ),
        kind="boolean",
    ),
)

DEFAULT_PROFILE = FieldAliasProfile(
    key="default",
    label="Default staff spreadsheet headers",
    fields=DEFAULT_FIELDS,
)


class FieldAliasConfigError(RuntimeError):
    """Raised when an alias override cannot be parsed."""


def _load_override(path: Path) -> MutableMapping[str, object]:
    if not path.exists():
        raise FieldAliasConfigError(f"Field alias override file {path} does not exist.")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:  # pragma: no cover - filesystem failure
        raise FieldAliasConfigError(f"Unable to read field alias override file {path}: {exc}") from exc

    try:
        if path.suffix.lower() in {".yaml", ".yml"}:
            data = yaml.safe_load(text)
        else:
            data = json.loads(text)
    except (yaml.YAMLError, json.JSONDecodeError) as exc:
        raise FieldAliasConfigError(f"Field alias override file {path} is not valid: {exc}") from exc

    if not isinstance(data, Mapping):
        raise FieldAliasConfigError("Field alias override must be a JSON/YAML object.")
    return dict(data)


def _coerce_aliases(field_name: str, value: object) -> tuple[str, ...]:
    if isinstance(value, Sequence) and not isinstance(value, (str, bytes)):
        aliases = tuple(str(item).strip() for item in value if str(item).strip())
        if aliases:
            return aliases
    raise FieldAliasConfigError(f"Field {field_name} requires a non-empty aliases list.")


def _apply_override(base: FieldAliasProfile, raw: Mapping[str, object]) -> FieldAliasProfile:
    raw_fields = raw.get("fields") or ()
    if not isinstance(raw_fields, Sequence) or isinstance(raw_fields, (str, bytes)):
        raise FieldAliasConfigError("fields must be a sequence.")

    merged = {item.field_name: item for item in base.fields}
    for entry in raw_fields:
        if not isinstance(entry, Mapping):
            raise FieldAliasConfigError("Each field override must be an object.")
        name = str(entry.get("field_name") or "").strip()
        if name not in merged:
            raise FieldAliasConfigError(f"Unknown staff field '{name}' in alias override.")
        aliases = _coerce_aliases(name, entry.get("aliases"))
        current = merged[name]
        if entry.get("replace"):
            merged[name] = replace(current, aliases=aliases)
        else:
            # Override aliases take priority over the built-in ones.
            combined = list(aliases) + [alias for alias in current.aliases if alias not in aliases]
            merged[name] = replace(current, aliases=tuple(combined))

    key = str(raw.get("key") or base.key).strip() or base.key
    label = str(raw.get("label") or base.label).strip() or base.label
    return FieldAliasProfile(
        key=key,
        label=label,
        fields=tuple(merged[item.field_name] for item in base.fields),
    )


def load_profile(env: Mapping[str, str] | None = None) -> FieldAliasProfile:
    """
    Load the active alias profile.

    When ``IMPORTER_FIELD_ALIASES_PATH`` is set, its JSON/YAML content is
    merged over the built-in defaults; otherwise the defaults are returned.
    """

    env_map = env or {}
    override_path = env_map.get("IMPORTER_FIELD_ALIASES_PATH")
    if not override_path:
        return DEFAULT_PROFILE
    return _apply_override(DEFAULT_PROFILE, _load_override(Path(override_path)))


__all__ = [
    "DEFAULT_PROFILE",
    "FieldAlias",
    "FieldAliasConfigError",
    "FieldAliasProfile",
    "IDENTITY_FIELD_NAMES",
    "load_profile",
]
