# roster_app/utils/permissions.py
"""
Access scope guard for staff imports and queries.

Administrators may write anywhere. Operators are pinned to their home unit:
any unit named by the batch is ignored in favour of the home unit, and a
record stored under another unit can never be patched by them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

from roster_app.models import StaffMember, User, UserRole
from roster_app.utils.errors import Forbidden, Unauthenticated
from roster_app.utils.units import ResolvedUnit, UnitRef, UnresolvedUnit, normalize_key, same_unit, unit_display_name


@dataclass(frozen=True)
class CallerIdentity:
    """Authenticated caller, fixed for the duration of one operation."""

    user_id: Optional[int]
    username: str
    role: UserRole
    home_unit: Optional[UnitRef] = None

    @property
    def is_administrator(self) -> bool:
        return self.role is UserRole.ADMINISTRATOR


def _unknown_role(role) -> ValueError:
    return ValueError(f"Unhandled caller role: {role!r}")


def caller_from_user(user) -> CallerIdentity:
    """Build a caller identity from an authenticated ``User``."""
    if user is None or not getattr(user, "is_authenticated", False) or not user.is_active:
        raise Unauthenticated()
    return CallerIdentity(
        user_id=user.id,
        username=user.username,
        role=UserRole.coerce(user.role),
        home_unit=user.home_unit,
    )


def resolve_caller(token: Optional[str]) -> CallerIdentity:
    """Resolve a bearer token to a caller identity or raise ``Unauthenticated``."""
    token = (token or "").strip()
    if not token:
        raise Unauthenticated("Missing API token.")
    user = User.find_by_api_token(token)
    if user is None:
        raise Unauthenticated("Invalid or revoked API token.")
    return caller_from_user(user)


def require_home_unit(caller: CallerIdentity) -> Optional[UnitRef]:
    """
    Return the operator's home unit, or None for administrators.

    An operator without a usable home unit cannot import anything, so this
    raises a batch-level ``Forbidden``.
    """
    if caller.role is UserRole.ADMINISTRATOR:
        return None
    if caller.role is UserRole.OPERATOR:
        home = caller.home_unit
        if home is None or not unit_display_name(home).strip():
            raise Forbidden(f"Operator '{caller.username}' has no home unit configured.")
        return home
    raise _unknown_role(caller.role)


def effective_unit(
    caller: CallerIdentity,
    *,
    batch_unit: Optional[str] = None,
    row_unit: Optional[str] = None,
    resolve: Callable[[str], UnitRef] = UnresolvedUnit,
) -> Optional[UnitRef]:
    """
    Decide which unit a row is written under.

    Administrators get the batch override when present, else the unit the row
    declares. Operators always get their home unit; whatever the row or the
    batch says is discarded. ``resolve`` turns a unit name into a reference.
    """
    if caller.role is UserRole.ADMINISTRATOR:
        name = (batch_unit or "").strip() or (row_unit or "").strip()
        return resolve(name) if name else None
    if caller.role is UserRole.OPERATOR:
        home = require_home_unit(caller)
        if isinstance(home, ResolvedUnit):
            return home
        return resolve(unit_display_name(home))
    raise _unknown_role(caller.role)


def ensure_can_write(caller: CallerIdentity, record: StaffMember) -> None:
    """Raise ``Forbidden`` when an operator targets a record outside their unit."""
    if caller.role is UserRole.ADMINISTRATOR:
        return
    if caller.role is UserRole.OPERATOR:
        home = require_home_unit(caller)
        if not same_unit(home, record.unit_ref):
            raise Forbidden(
                f"Record '{record.name}' belongs to unit '{record.unit_name}', "
                f"outside your unit '{unit_display_name(home)}'."
            )
        return
    raise _unknown_role(caller.role)


def ensure_administrator(caller: CallerIdentity) -> None:
    if caller.role is not UserRole.ADMINISTRATOR:
        raise Forbidden("Administrator role required.")


def scope_staff_query(caller: CallerIdentity, query, *, unit: Optional[str] = None):
    """Restrict a ``StaffMember`` query to what the caller may see."""
    if caller.role is UserRole.ADMINISTRATOR:
        if unit and unit.strip():
            return query.filter(StaffMember.unit_key == normalize_key(unit))
        return query
    if caller.role is UserRole.OPERATOR:
        # Operators never see other units, whatever filter they ask for
        return query.filter(StaffMember.unit_clause(require_home_unit(caller)))
    raise _unknown_role(caller.role)
