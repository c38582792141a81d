"""
Audit and soft delete mixins.

Every row in the role/permission tables records who created it, who touched
it last, and whether it is still live. Deleting a record marks it instead of
removing it, so the audit trail of a deleted role survives.

Usage:
    class MyModel(AuditMixin, SoftDeleteMixin, db.Model):
        __table_args__ = (
            SoftDeleteMixin.live_unique_index("uq_my_model_name", "name"),
        )

    # Soft delete
    obj.soft_delete(operator="alice")
    db.session.commit()

    # Query only live records
    MyModel.query_active().all()

    # Include deleted
    MyModel.query.all()
"""

from datetime import datetime, timezone

from portal.models import db


def _utcnow():
    return datetime.now(timezone.utc)


class AuditMixin:
    """Creator/modifier bookkeeping shared by every role/permission table."""

    created_by = db.Column(db.String(64), nullable=False, default="")
    created_at = db.Column(db.DateTime, default=_utcnow, nullable=False)
    last_modified_by = db.Column(db.String(64), nullable=True, default="")
    last_modified_at = db.Column(
        db.DateTime, default=_utcnow, onupdate=_utcnow, nullable=True,
    )

    def stamp(self, operator):
        """Attribute a new row to ``operator`` as both creator and modifier."""
        self.created_by = operator
        self.last_modified_by = operator


class SoftDeleteMixin:
    """Mixin that adds soft delete support to any SQLAlchemy model."""

    is_deleted = db.Column(db.Boolean, nullable=False, default=False)
    deleted_at = db.Column(db.DateTime, nullable=True, default=None, index=True)

    def soft_delete(self, operator=None):
        """Mark this record as deleted."""
        self.is_deleted = True
        self.deleted_at = _utcnow()
        if operator is not None:
            self.last_modified_by = operator

    @classmethod
    def query_active(cls):
        """Return a query that excludes soft-deleted records."""
        return cls.query.filter(cls.is_deleted.is_(False))

    @classmethod
    def query_deleted(cls):
        """Return only soft-deleted records."""
        return cls.query.filter(cls.is_deleted.is_(True))

    @classmethod
    def soft_delete_values(cls, operator):
        """Column values for a bulk ``UPDATE`` that soft-deletes rows."""
        return {
            "is_deleted": True,
            "deleted_at": _utcnow(),
            "last_modified_by": operator,
            "last_modified_at": _utcnow(),
        }

    @staticmethod
    def live_unique_index(name, *cols):
        """Unique index over ``cols`` that only covers live rows.

        Soft-deleted rows keep their key values, so a plain unique
        constraint would stop a deleted role name from ever being reused.
        """
        return db.Index(
            name,
            *cols,
            unique=True,
            sqlite_where=db.text("is_deleted = 0"),
            postgresql_where=db.text("is_deleted = false"),
        )
