from __future__ import annotations

from ..extensions import db
from ..time_utils import to_utc_z, utcnow


class SchemaVersion(db.Model):
    """One row per applied schema migration."""
    __tablename__ = "schema_version"

    version = db.Column(db.Integer, primary_key=True, autoincrement=False)
    description = db.Column(db.String(255), nullable=False)
    applied_at = db.Column(db.DateTime, nullable=False, default=utcnow)

    def __repr__(self) -> str:
        return f"<SchemaVersion version={self.version} description={self.description!r}>"

    def to_dict(self) -> dict:
        return {
            "version": self.version,
            "description": self.description,
            "applied_at": to_utc_z(self.applied_at),
        }
