"""
Turn raw spreadsheet rows into strict staff drafts.

``RawRow`` is the only place where untyped cell values live; everything
downstream of ``normalize_row`` works with ``StaffDraft``.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import Any, Iterable, Mapping

from config.field_aliases import FieldAliasProfile, load_profile
from roster_app.models.staff import generate_placeholder_external_id, is_real_external_id
from roster_app.utils.errors import ValidationSkip
from roster_app.utils.units import normalize_key

from .values import COERCERS, coerce_text, is_blank


@lru_cache(maxsize=1)
def get_active_alias_profile() -> FieldAliasProfile:
    """
    Load and cache the alias profile for importer runs.
    """

    return load_profile(dict(os.environ))


class RawRow:
    """
    A field bag keyed by whatever labels the spreadsheet happened to use.

    Labels are indexed by their normalized form, so ``"Unit Kerja"``,
    ``"unitKerja"`` and ``"UNIT_KERJA"`` all answer to the alias ``unit kerja``.
    When two labels collapse to the same key, the first non-blank value wins.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Mapping[str, Any]) -> None:
        indexed: dict[str, Any] = {}
        for label, value in values.items():
            key = normalize_key(label)
            if not key:
                continue
            if key not in indexed or (is_blank(indexed[key]) and not is_blank(value)):
                indexed[key] = value
        self._values = indexed

    @classmethod
    def coerce(cls, row: "RawRow | Mapping[str, Any]") -> "RawRow":
        if isinstance(row, RawRow):
            return row
        if not isinstance(row, Mapping):
            raise TypeError(f"Expected a mapping of column labels to values, got {type(row).__name__}.")
        return cls(row)

    def first(self, aliases: Iterable[str]) -> Any:
        """Return the first non-blank value among ``aliases``, in order."""
        for alias in aliases:
            value = self._values.get(normalize_key(alias))
            if not is_blank(value):
                return value
        return None

    def __len__(self) -> int:
        return len(self._values)


@dataclass(frozen=True)
class StaffDraft:
    """
    Canonical staff record candidate built from one row.

    ``attributes`` only contains the fields present in the row, so patching
    an existing record leaves every other field untouched.
    """

    row_number: int
    external_id: str
    name: str
    declared_unit: str | None = None
    attributes: Mapping[str, Any] = field(default_factory=dict)

    @property
    def has_real_external_id(self) -> bool:
        return is_real_external_id(self.external_id)


def _coerce_external_id(value: Any) -> str | None:
    text = coerce_text(value)
    if text is None:
        return None
    # Identifiers pasted with spaces ("1234 5678 ...") are the same identifier
    return text.replace(" ", "")


def normalize_row(
    row: RawRow | Mapping[str, Any],
    *,
    row_number: int,
    profile: FieldAliasProfile | None = None,
) -> StaffDraft:
    """
    Build a ``StaffDraft`` from one raw row.

    Raises ``ValidationSkip`` when the row carries no name. Malformed values in
    any other field never fail the row.
    """

    profile = profile or get_active_alias_profile()
    raw = RawRow.coerce(row)

    name = coerce_text(raw.first(profile.find("name").aliases))
    if not name:
        raise ValidationSkip("missing name", row_number=row_number)

    external_id = _coerce_external_id(raw.first(profile.find("external_id").aliases))
    if not external_id:
        external_id = generate_placeholder_external_id()

    declared_unit = coerce_text(raw.first(profile.find("unit").aliases))

    attributes: dict[str, Any] = {}
    for field_alias in profile.attribute_fields:
        value = COERCERS[field_alias.kind](raw.first(field_alias.aliases))
        if value is not None:
            attributes[field_alias.field_name] = value

    return StaffDraft(
        row_number=row_number,
        external_id=external_id,
        name=name,
        declared_unit=declared_unit,
        attributes=attributes,
    )
