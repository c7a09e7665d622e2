"""
Unit references and match-key normalization.

A staff record's unit is either a reference to a known ``Organization`` or a
legacy free-text name that never resolved. Both shapes flow through the same
tagged union so callers only ever ask ``unit_display_name`` for the effective
unit instead of comparing ids in one place and strings in another.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Union


def normalize_key(value: object) -> str:
    """Lower-case ``value`` and keep only alphanumeric characters."""

    if value is None:
        return ""
    return "".join(ch for ch in str(value).lower() if ch.isalnum())


@dataclass(frozen=True)
class ResolvedUnit:
    organization_id: int
    name: str


@dataclass(frozen=True)
class UnresolvedUnit:
    name: str


UnitRef = Union[ResolvedUnit, UnresolvedUnit]


def unit_display_name(unit: UnitRef) -> str:
    """Return the effective unit name for either shape of reference."""

    if isinstance(unit, ResolvedUnit):
        return unit.name
    if isinstance(unit, UnresolvedUnit):
        return unit.name
    raise TypeError(f"Unsupported unit reference: {unit!r}")


def unit_key(unit: UnitRef) -> str:
    return normalize_key(unit_display_name(unit))


def same_unit(left: UnitRef, right: UnitRef) -> bool:
    """
    Compare two unit references.

    Resolved references compare by organization id; anything else falls back
    to the normalized unit name.
    """

    if isinstance(left, ResolvedUnit) and isinstance(right, ResolvedUnit):
        return left.organization_id == right.organization_id
    return unit_key(left) == unit_key(right)


def legacy_unit_identity(name: object) -> str:
    return f"name:{normalize_key(name)}"


def unit_identity(unit: UnitRef) -> str:
    """
    Key naming one unit for matching, sweeping and grouping.

    Organization names are not unique, so a resolved unit is keyed by its
    organization id. An unresolved unit has nothing but its normalized name.
    """

    if isinstance(unit, ResolvedUnit):
        return f"org:{unit.organization_id}"
    if isinstance(unit, UnresolvedUnit):
        return legacy_unit_identity(unit.name)
    raise TypeError(f"Unsupported unit reference: {unit!r}")
