# roster_app/models/user.py

import hashlib
import secrets

from flask import current_app
from flask_login import UserMixin
from sqlalchemy import Enum
from sqlalchemy.exc import SQLAlchemyError

from roster_app.utils.units import ResolvedUnit, UnresolvedUnit

from .base import BaseModel, db
from .role import UserRole


def digest_api_token(token):
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class User(UserMixin, BaseModel):
    """Account that submits imports: an administrator or a unit operator."""

    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(80), unique=True, nullable=False, index=True)
    email = db.Column(db.String(255), unique=True, nullable=True)
    role = db.Column(
        Enum(UserRole, name="user_role_enum"),
        default=UserRole.OPERATOR,
        nullable=False,
        index=True,
    )
    organization_id = db.Column(db.Integer, db.ForeignKey("organizations.id"), nullable=True, index=True)
    # Legacy accounts carry their unit as free text only
    home_unit_name = db.Column(db.String(200), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    api_token_digest = db.Column(db.String(64), unique=True, nullable=True, index=True)

    organization = db.relationship("Organization", back_populates="users")

    def __repr__(self):
        return f"<User {self.username}>"

    @property
    def is_administrator(self):
        return self.role == UserRole.ADMINISTRATOR

    @property
    def home_unit(self):
        """Home unit as a unit reference, or None when none is configured."""
        if self.organization is not None:
            return ResolvedUnit(organization_id=self.organization.id, name=self.organization.name)
        name = (self.home_unit_name or "").strip()
        if name:
            return UnresolvedUnit(name=name)
        return None

    def issue_api_token(self):
        """Mint a bearer token; only its digest is persisted."""
        token = secrets.token_urlsafe(32)
        self.api_token_digest = digest_api_token(token)
        return token

    def revoke_api_token(self):
        self.api_token_digest = None

    @staticmethod
    def find_by_api_token(token):
        """Find the active user owning ``token`` with error handling"""
        if not token:
            return None
        try:
            return User.query.filter_by(api_token_digest=digest_api_token(token), is_active=True).first()
        except SQLAlchemyError as e:
            current_app.logger.error(f"Database error resolving API token: {str(e)}")
            return None
