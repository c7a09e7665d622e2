# roster_app/models/role.py

import enum


class UserRole(str, enum.Enum):
    """Closed set of caller roles understood by the access scope guard."""

    ADMINISTRATOR = "administrator"
    OPERATOR = "operator"

    @classmethod
    def coerce(cls, value):
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as exc:
            raise ValueError(f"Unknown user role: {value!r}") from exc
