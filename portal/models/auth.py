"""
Auth Models: permissions, roles, role_permissions, user_roles, users.

Roles and permissions are keyed by natural strings (role name, permission
type + target id) whose uniqueness only holds among live rows; see
``SoftDeleteMixin.live_unique_index``. Users are referenced from
``user_roles`` by their external string id, not by a foreign key, because
the portal can sit in front of an external user directory.
"""

from portal.models import db
from portal.models.soft_delete import AuditMixin, SoftDeleteMixin


# ═══════════════════════════════════════════════════════════════
# 1. PERMISSIONS
# ═══════════════════════════════════════════════════════════════
class Permission(AuditMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "permissions"

    id = db.Column(db.Integer, primary_key=True)
    permission_type = db.Column(db.String(32), nullable=False)  # e.g. "ModifyNamespace"
    target_id = db.Column(db.String(256), nullable=False)  # e.g. "someApp+application"

    __table_args__ = (
        SoftDeleteMixin.live_unique_index(
            "uq_permission_type_target", "permission_type", "target_id",
        ),
        db.Index("ix_permissions_target_id", "target_id"),
    )

    # Relationships
    role_permissions = db.relationship("RolePermission", back_populates="permission", lazy="dynamic")

    def __repr__(self):
        return f"<Permission id={self.id} {self.permission_type}:{self.target_id}>"


# ═══════════════════════════════════════════════════════════════
# 2. ROLES
# ═══════════════════════════════════════════════════════════════
class Role(AuditMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "roles"

    id = db.Column(db.Integer, primary_key=True)
    role_name = db.Column(db.String(256), nullable=False)  # e.g. "Master+someApp"

    __table_args__ = (
        SoftDeleteMixin.live_unique_index("uq_role_name", "role_name"),
    )

    # Relationships
    role_permissions = db.relationship("RolePermission", back_populates="role", lazy="dynamic")
    user_roles = db.relationship("UserRole", back_populates="role", lazy="dynamic")

    def __repr__(self):
        return f"<Role id={self.id} {self.role_name}>"

    def to_dict(self, include_permissions=False):
        d = {
            "id": self.id,
            "role_name": self.role_name,
            "created_by": self.created_by,
            "last_modified_by": self.last_modified_by,
        }
        if include_permissions:
            d["permission_ids"] = sorted(
                rp.permission_id
                for rp in self.role_permissions.filter_by(is_deleted=False).all()
            )
        return d


# ═══════════════════════════════════════════════════════════════
# 3. ROLE_PERMISSIONS (Junction table)
# ═══════════════════════════════════════════════════════════════
class RolePermission(AuditMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "role_permissions"

    id = db.Column(db.Integer, primary_key=True)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False)
    permission_id = db.Column(db.Integer, db.ForeignKey("permissions.id"), nullable=False)

    __table_args__ = (
        SoftDeleteMixin.live_unique_index("uq_role_permission", "role_id", "permission_id"),
        db.Index("ix_role_permissions_permission_id", "permission_id"),
    )

    # Relationships
    role = db.relationship("Role", back_populates="role_permissions")
    permission = db.relationship("Permission", back_populates="role_permissions")


# ═══════════════════════════════════════════════════════════════
# 4. USER_ROLES (Junction table)
# ═══════════════════════════════════════════════════════════════
class UserRole(AuditMixin, SoftDeleteMixin, db.Model):
    __tablename__ = "user_roles"

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.String(128), nullable=False)
    role_id = db.Column(db.Integer, db.ForeignKey("roles.id"), nullable=False)

    __table_args__ = (
        SoftDeleteMixin.live_unique_index("uq_user_role", "user_id", "role_id"),
        db.Index("ix_user_roles_role_id", "role_id"),
    )

    # Relationships
    role = db.relationship("Role", back_populates="user_roles")


# ═══════════════════════════════════════════════════════════════
# 5. USERS (local user directory)
# ═══════════════════════════════════════════════════════════════
class User(db.Model):
    __tablename__ = "users"

    id = db.Column(db.Integer, primary_key=True)
    username = db.Column(db.String(128), unique=True, nullable=False)
    display_name = db.Column(db.String(200))
    email = db.Column(db.String(200))
    enabled = db.Column(db.Boolean, default=True)
