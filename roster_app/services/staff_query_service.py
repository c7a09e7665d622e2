"""
Read path for staff records.

Every query passes through the access scope guard first, so an operator's
listing is always pinned to their home unit whatever filters they send.
"""

from __future__ import annotations

from dataclasses import dataclass

from sqlalchemy import func
from sqlalchemy.orm import Session

from roster_app.models import StaffMember, db
from roster_app.utils.permissions import CallerIdentity, scope_staff_query
from roster_app.utils.units import normalize_key

DEFAULT_PAGE = 1
DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 500


@dataclass(frozen=True)
class StaffFilters:
    """Canonical set of filter options applied to staff listings."""

    unit: str | None = None
    search: str | None = None
    district: str | None = None
    include_inactive: bool = False
    is_certified: bool | None = None
    page: int = DEFAULT_PAGE
    per_page: int = DEFAULT_PAGE_SIZE

    @classmethod
    def coerce(
        cls,
        *,
        unit: str | None = None,
        search: str | None = None,
        district: str | None = None,
        include_inactive: str | bool | None = None,
        is_certified: str | bool | None = None,
        page: int | str | None = None,
        per_page: int | str | None = None,
        default_per_page: int = DEFAULT_PAGE_SIZE,
        max_per_page: int = MAX_PAGE_SIZE,
    ) -> "StaffFilters":
        """
        Coerce mixed user input (query-string values) into ``StaffFilters``.

        Raises ``ValueError`` for non-numeric pagination or unrecognised
        boolean values.
        """

        resolved_unit = unit.strip() if isinstance(unit, str) and unit.strip() else None
        resolved_search = search.strip() if isinstance(search, str) and search.strip() else None
        resolved_district = district.strip() if isinstance(district, str) and district.strip() else None
        if resolved_district and resolved_district.lower() == "all":
            resolved_district = None
        return cls(
            unit=resolved_unit,
            search=resolved_search,
            district=resolved_district,
            include_inactive=bool(_coerce_bool(include_inactive, default=False)),
            is_certified=_coerce_bool(is_certified, default=None),
            page=_coerce_positive_int(page, fallback=DEFAULT_PAGE),
            per_page=min(_coerce_positive_int(per_page, fallback=default_per_page), max_per_page),
        )


@dataclass(slots=True)
class StaffListResult:
    items: list[StaffMember]
    total: int
    page: int
    per_page: int
    total_pages: int

    def as_dict(self) -> dict:
        return {
            "items": [item.to_dict() for item in self.items],
            "total": self.total,
            "page": self.page,
            "per_page": self.per_page,
            "total_pages": self.total_pages,
        }


class StaffQueryService:
    """Paginated, scope-aware staff lookups."""

    def __init__(self, session: Session | None = None) -> None:
        self._session = session

    @property
    def session(self) -> Session:
        return self._session or db.session

    def _scoped_query(self, caller: CallerIdentity, *, unit: str | None = None):
        return scope_staff_query(caller, self.session.query(StaffMember), unit=unit)

    def list_staff(self, caller: CallerIdentity, filters: StaffFilters | None = None) -> StaffListResult:
        filters = filters or StaffFilters()
        query = self._scoped_query(caller, unit=filters.unit)
        if not filters.include_inactive:
            query = query.filter(StaffMember.is_active.is_(True))
        if filters.district:
            query = query.filter(func.lower(StaffMember.district) == filters.district.lower())
        if filters.is_certified is not None:
            query = query.filter(StaffMember.is_certified.is_(filters.is_certified))
        if filters.search:
            needle = normalize_key(filters.search)
            if needle:
                query = query.filter(StaffMember.name_key.contains(needle, autoescape=True))

        total = query.count()
        if total == 0:
            return StaffListResult(items=[], total=0, page=filters.page, per_page=filters.per_page, total_pages=0)

        items = (
            query.order_by(StaffMember.name_key.asc(), StaffMember.id.asc())
            .offset((filters.page - 1) * filters.per_page)
            .limit(filters.per_page)
            .all()
        )
        total_pages = (total + filters.per_page - 1) // filters.per_page
        return StaffListResult(
            items=items, total=total, page=filters.page, per_page=filters.per_page, total_pages=total_pages
        )

    def get_staff(self, caller: CallerIdentity, staff_id: int) -> StaffMember | None:
        """Return the record, or None when it is missing or outside the caller's scope."""
        return self._scoped_query(caller).filter(StaffMember.id == staff_id).one_or_none()


def _coerce_positive_int(candidate: int | str | None, *, fallback: int) -> int:
    if candidate in (None, ""):
        return fallback
    if isinstance(candidate, int):
        return max(1, candidate)
    if isinstance(candidate, str) and candidate.strip().isdigit():
        return max(1, int(candidate.strip()))
    raise ValueError(f"Expected positive integer for pagination, received '{candidate}'.")


def _coerce_bool(candidate: str | bool | None, *, default: bool | None) -> bool | None:
    if candidate is None or candidate == "":
        return default
    if isinstance(candidate, bool):
        return candidate
    normalized = str(candidate).strip().lower()
    if normalized in ("1", "true", "yes", "y", "on"):
        return True
    if normalized in ("0", "false", "no", "n", "off"):
        return False
    raise ValueError(f"Expected boolean value, received '{candidate}'.")
