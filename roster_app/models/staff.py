# roster_app/models/staff.py

import random
import time

from sqlalchemy import Index, and_, or_
from sqlalchemy.orm import validates

from roster_app.utils.units import ResolvedUnit, UnresolvedUnit, normalize_key, unit_display_name, unit_identity

from .base import BaseModel, db

PLACEHOLDER_PREFIX = "TMP-"

# Attribute columns an import may overwrite, in display order
ATTRIBUTE_FIELDS = (
    "nip",
    "gender",
    "birth_place",
    "birth_date",
    "education_level",
    "subject",
    "employment_status",
    "start_date",
    "district",
    "phone_number",
    "email",
    "is_certified",
    "training_completed",
)


def generate_placeholder_external_id():
    """Temporary identifier for rows that arrive without one."""
    return f"{PLACEHOLDER_PREFIX}{int(time.time() * 1000)}-{random.randint(0, 999999):06d}"


def is_real_external_id(value):
    text = (value or "").strip()
    return bool(text) and not text.upper().startswith(PLACEHOLDER_PREFIX)


class StaffMember(BaseModel):
    """One employee at one organizational unit."""

    __tablename__ = "staff_members"

    id = db.Column(db.Integer, primary_key=True)
    external_id = db.Column(db.String(64), nullable=False, index=True)
    name = db.Column(db.String(200), nullable=False)
    name_key = db.Column(db.String(200), nullable=False, index=True)

    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)
    unit_name = db.Column(db.String(200), nullable=False, default="")
    unit_key = db.Column(db.String(200), nullable=False, default="", index=True)

    nip = db.Column(db.String(50), nullable=True)
    gender = db.Column(db.String(20), nullable=True)
    birth_place = db.Column(db.String(100), nullable=True)
    birth_date = db.Column(db.String(50), nullable=True)  # ISO date or the source text when unparseable
    education_level = db.Column(db.String(100), nullable=True)
    subject = db.Column(db.String(100), nullable=True)
    employment_status = db.Column(db.String(50), nullable=True)
    start_date = db.Column(db.String(50), nullable=True)
    district = db.Column(db.String(100), nullable=True)
    phone_number = db.Column(db.String(30), nullable=True)
    email = db.Column(db.String(255), nullable=True)
    is_certified = db.Column(db.Boolean, nullable=True)
    training_completed = db.Column(db.Boolean, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)
    is_generated = db.Column(db.Boolean, default=False, nullable=False)

    organization = db.relationship("Organization", back_populates="staff_members")

    __table_args__ = (Index("idx_staff_identity", "name_key", "unit_key"),)

    def __repr__(self):
        return f"<StaffMember {self.name} ({self.external_id})>"

    @validates("name")
    def _sync_name_key(self, key, value):
        self.name_key = normalize_key(value)
        return value

    @property
    def unit_ref(self):
        if self.organization_id is not None:
            return ResolvedUnit(organization_id=self.organization_id, name=self.unit_name)
        return UnresolvedUnit(name=self.unit_name or "")

    @property
    def unit_identity(self):
        return unit_identity(self.unit_ref)

    @property
    def has_real_external_id(self):
        return is_real_external_id(self.external_id)

    def assign_unit(self, unit):
        """Point the record at ``unit`` and refresh the unit match key."""
        if isinstance(unit, ResolvedUnit):
            self.organization_id = unit.organization_id
        else:
            self.organization_id = None
        self.unit_name = unit_display_name(unit)
        self.unit_key = normalize_key(self.unit_name)

    @classmethod
    def unit_clause(cls, unit, *, include_legacy=True):
        """
        SQL filter selecting the records stored under ``unit``.

        A resolved unit matches its organization id. With ``include_legacy`` it
        also picks up unresolved records carrying the same normalized name;
        records bound to another organization never match by name.
        """
        legacy = and_(cls.organization_id.is_(None), cls.unit_key == normalize_key(unit_display_name(unit)))
        if isinstance(unit, ResolvedUnit):
            if include_legacy:
                return or_(cls.organization_id == unit.organization_id, legacy)
            return cls.organization_id == unit.organization_id
        return legacy

    def to_dict(self):
        payload = {
            "id": self.id,
            "external_id": self.external_id,
            "has_real_external_id": self.has_real_external_id,
            "name": self.name,
            "unit": {
                "organization_id": self.organization_id,
                "name": self.unit_name,
                "resolved": self.organization_id is not None,
            },
            "is_active": self.is_active,
            "is_generated": self.is_generated,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }
        payload["attributes"] = {field: getattr(self, field) for field in ATTRIBUTE_FIELDS}
        return payload
