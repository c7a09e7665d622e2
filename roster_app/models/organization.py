# roster_app/models/organization.py

from .base import BaseModel, db


class Organization(BaseModel):
    """Organizational unit (school, madrasah, office) that employs staff."""

    __tablename__ = "organizations"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(200), nullable=False, index=True)
    slug = db.Column(db.String(100), unique=True, nullable=False, index=True)
    external_code = db.Column(db.String(50), unique=True, nullable=True)  # national registry number
    district = db.Column(db.String(100), nullable=True)
    is_active = db.Column(db.Boolean, default=True, nullable=False, index=True)

    staff_members = db.relationship("StaffMember", back_populates="organization")
    users = db.relationship("User", back_populates="organization")

    def __repr__(self):
        return f"<Organization {self.name}>"

