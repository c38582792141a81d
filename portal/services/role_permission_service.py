"""
Role Permission Service: the only writer of the role/permission tables.

Operations:
  - create_permission / create_permissions
  - create_role_with_permissions / find_role_by_role_name
  - assign_role_to_users / remove_role_from_users
  - query_users_with_role / find_user_roles
  - user_has_permission / is_super_admin
  - delete_role_permissions_by_app_id (+ by namespace, by cluster)

Transactions:
  Every public write is one unit of work. Writes are flushed, committed once
  at the end, and the session is rolled back before any error leaves this
  module, so a failed batch never leaves part of itself behind. Callers that
  need several writes to land together wrap them in ``unit_of_work()``; the
  inner calls then join that transaction instead of committing.

Uniqueness:
  Permission (type, target), role name and both binding pairs are guarded by
  partial unique indexes over live rows. A collision surfaces as
  ``IntegrityError`` at flush time and is reported as ``ConflictError``;
  concurrent creators are serialised by the database, not by a read here.
  User bindings are the exception: assignment is idempotent, so a binding
  that already exists is skipped by the insert itself.
"""

import logging
from contextlib import contextmanager

from flask import current_app
from sqlalchemy.exc import IntegrityError

from portal.core.exceptions import ConflictError, NotFoundError, ValidationError
from portal.models import db
from portal.models.auth import Permission, Role, RolePermission, UserRole
from portal.services import user_directory
from portal.services.helpers import live_queries
from portal.utils import role_utils
from portal.utils.role_utils import PermissionType

logger = logging.getLogger(__name__)

_UOW_KEY = "portal.unit_of_work"


@contextmanager
def unit_of_work():
    """Commit on success, roll back on error.

    Nested scopes join the outermost one, so a caller can group several
    service calls into a single transaction.
    """
    info = db.session.info
    if info.get(_UOW_KEY):
        yield
        return

    info[_UOW_KEY] = True
    try:
        yield
        db.session.commit()
    except Exception:
        db.session.rollback()
        raise
    finally:
        info.pop(_UOW_KEY, None)


def _flush_or_conflict(resource: str, field: str, value: str) -> None:
    try:
        db.session.flush()
    except IntegrityError as exc:
        logger.warning("Integrity error on %s %s=%r: %s", resource, field, value, exc.orig)
        raise ConflictError(resource=resource, field=field, value=value) from exc


def _require(value, field: str) -> None:
    if value is None or (isinstance(value, str) and not value.strip()):
        raise ValidationError(f"{field} is required", details={field: "missing"})


def _permission_key(permission: Permission) -> str:
    return f"{permission.permission_type}:{permission.target_id}"


# ═══════════════════════════════════════════════════════════════
# Permissions
# ═══════════════════════════════════════════════════════════════

def create_permission(permission: Permission) -> Permission:
    """Persist a single permission; its (type, target) must not be live already."""
    _require(permission.permission_type, "permission_type")
    _require(permission.target_id, "target_id")

    with unit_of_work():
        db.session.add(permission)
        _flush_or_conflict("Permission", "permission_type+target_id", _permission_key(permission))

    logger.info(
        "Created permission %s", _permission_key(permission),
        extra={"operator": permission.created_by},
    )
    return permission


def create_permissions(permissions) -> set[Permission]:
    """Persist a batch of permissions atomically.

    A collision with a live permission or between two members of the batch
    fails the whole batch; none of it is written.
    """
    permissions = list(permissions or [])
    for permission in permissions:
        _require(permission.permission_type, "permission_type")
        _require(permission.target_id, "target_id")

    keys = ", ".join(sorted(_permission_key(p) for p in permissions))
    with unit_of_work():
        db.session.add_all(permissions)
        _flush_or_conflict("Permission", "permission_type+target_id", keys)

    logger.info("Created %d permissions", len(permissions), extra={"count": len(permissions)})
    return set(permissions)


# ═══════════════════════════════════════════════════════════════
# Roles
# ═══════════════════════════════════════════════════════════════

def create_role_with_permissions(role: Role, permission_ids=None) -> Role:
    """Persist ``role`` and bind it to every id in ``permission_ids``.

    All ids are checked against live permissions before anything is written.
    Bindings are attributed to the role's creator/modifier.
    """
    _require(role.role_name, "role_name")
    permission_ids = set(permission_ids or ())

    with unit_of_work():
        if permission_ids:
            found = {p.id for p in live_queries.find_permissions_by_ids(permission_ids)}
            missing = sorted(permission_ids - found)
            if missing:
                raise NotFoundError(resource="Permission", resource_id=", ".join(map(str, missing)))

        db.session.add(role)
        _flush_or_conflict("Role", "role_name", role.role_name)

        db.session.add_all([
            RolePermission(
                role_id=role.id,
                permission_id=permission_id,
                created_by=role.created_by,
                last_modified_by=role.last_modified_by,
            )
            for permission_id in sorted(permission_ids)
        ])
        _flush_or_conflict("RolePermission", "role_id+permission_id", role.role_name)

    logger.info(
        "Created role %s with %d permission(s)", role.role_name, len(permission_ids),
        extra={"operator": role.created_by, "role_name": role.role_name},
    )
    return role


def find_role_by_role_name(role_name: str) -> Role | None:
    return live_queries.find_role_by_name(role_name)


def _get_role_or_raise(role_name: str) -> Role:
    role = live_queries.find_role_by_name(role_name)
    if role is None:
        raise NotFoundError(resource="Role", resource_id=role_name)
    return role


# ═══════════════════════════════════════════════════════════════
# Assignment
# ═══════════════════════════════════════════════════════════════

def assign_role_to_users(role_name: str, user_ids, operator: str) -> set[str]:
    """Bind every user in ``user_ids`` to the role; return the newly bound ids.

    Users that are already bound keep their existing binding, including its
    creator and modifier. A binding written concurrently by another caller
    counts as already bound, not as a conflict.
    """
    user_ids = set(user_ids or ())

    with unit_of_work():
        role = _get_role_or_raise(role_name)
        already_bound = {ur.user_id for ur in live_queries.find_user_roles(user_ids, role.id)}

        bound = set()
        for user_id in sorted(user_ids - already_bound):
            inserted = live_queries.insert_ignoring_conflicts(
                UserRole,
                user_id=user_id,
                role_id=role.id,
                created_by=operator,
                last_modified_by=operator,
            )
            if inserted:
                bound.add(user_id)

    logger.info(
        "Assigned role %s to %d user(s), %d already bound",
        role_name, len(bound), len(user_ids) - len(bound),
        extra={"operator": operator, "role_name": role_name},
    )
    return bound


def remove_role_from_users(role_name: str, user_ids, operator: str) -> None:
    """Unbind the role from every user in ``user_ids``; unbound users are skipped."""
    user_ids = set(user_ids or ())

    with unit_of_work():
        role = _get_role_or_raise(role_name)
        bindings = live_queries.find_user_roles(user_ids, role.id)
        for user_role in bindings:
            user_role.soft_delete(operator)

    logger.info(
        "Removed role %s from %d user(s)", role_name, len(bindings),
        extra={"operator": operator, "role_name": role_name},
    )


# ═══════════════════════════════════════════════════════════════
# Queries
# ═══════════════════════════════════════════════════════════════

def query_users_with_role(role_name: str) -> set[user_directory.UserInfo]:
    """Directory projections of the users bound to ``role_name``.

    Unknown roles and roles without bindings yield an empty set. Users the
    directory cannot resolve are left out.
    """
    role = live_queries.find_role_by_name(role_name)
    if role is None:
        return set()

    user_ids = sorted({ur.user_id for ur in live_queries.find_user_roles_by_role_id(role.id)})
    if not user_ids:
        return set()
    return set(user_directory.find_by_user_ids(user_ids))


def find_user_roles(user_id: str) -> list[Role]:
    role_ids = {ur.role_id for ur in live_queries.find_user_roles_by_user_id(user_id)}
    return live_queries.find_roles_by_ids(role_ids)


def is_super_admin(user_id: str) -> bool:
    return user_id in current_app.config.get("SUPER_ADMINS", ())


def user_has_permission(user_id: str, permission_type: str, target_id: str) -> bool:
    """True iff a live role links ``user_id`` to the (type, target) permission."""
    if is_super_admin(user_id):
        return True

    permission = live_queries.find_permission(permission_type, target_id)
    if permission is None:
        return False
    return live_queries.user_role_path_exists(user_id, permission.id)


# ═══════════════════════════════════════════════════════════════
# Cascading deletion
# ═══════════════════════════════════════════════════════════════

def _delete_permissions_and_roles(permission_ids, role_ids, operator: str) -> dict:
    soft_delete = live_queries.batch_soft_delete
    with unit_of_work():
        summary = {
            "permissions": soft_delete(Permission, Permission.id, permission_ids, operator),
            "role_permissions": (
                soft_delete(RolePermission, RolePermission.permission_id, permission_ids, operator)
                + soft_delete(RolePermission, RolePermission.role_id, role_ids, operator)
            ),
            "roles": soft_delete(Role, Role.id, role_ids, operator),
            "user_roles": soft_delete(UserRole, UserRole.role_id, role_ids, operator),
        }
    return summary


def delete_role_permissions_by_app_id(app_id: str, operator: str) -> dict:
    """Soft-delete every role and permission derived from ``app_id``.

    Covers the master role and every per-namespace, per-env and per-cluster
    role kind, plus their bindings. A role only belongs to ``app_id`` when its
    app segment is ``app_id``; another app's namespace that happens to share
    the name is left alone. Returns row counts per table.
    """
    _require(app_id, "app_id")

    permission_ids = live_queries.find_permission_ids_by_target(
        app_id,
        prefix=app_id + role_utils.SEPARATOR,
        exclude_types=(PermissionType.CREATE_APPLICATION,),
    )
    candidates = live_queries.find_role_names_matching(
        exact=[role_utils.build_app_master_role_name(app_id)],
        suffixes=[role_utils.SEPARATOR + app_id],
        infixes=[role_utils.SEPARATOR + app_id + role_utils.SEPARATOR],
    )
    role_ids = [
        role_id for role_id, role_name in candidates
        if role_utils.extract_app_id_from_role_name(role_name) == app_id
    ]
    summary = _delete_permissions_and_roles(permission_ids, role_ids, operator)

    logger.info(
        "Deleted role permissions of app %s: %s", app_id, summary,
        extra={"operator": operator, "app_id": app_id},
    )
    return summary


def delete_role_permissions_by_app_id_and_namespace(
    app_id: str, namespace_name: str, operator: str,
) -> dict:
    """Soft-delete the namespace roles and permissions of one app namespace."""
    _require(app_id, "app_id")
    _require(namespace_name, "namespace_name")

    target_id = role_utils.build_namespace_target_id(app_id, namespace_name)
    permission_ids = live_queries.find_permission_ids_by_target(
        target_id,
        prefix=target_id + role_utils.SEPARATOR,
        permission_types=(PermissionType.MODIFY_NAMESPACE, PermissionType.RELEASE_NAMESPACE),
    )
    candidates = live_queries.find_role_names_matching(
        suffixes=[role_utils.SEPARATOR + target_id],
        infixes=[role_utils.SEPARATOR + target_id + role_utils.SEPARATOR],
    )
    role_ids = [
        role_id for role_id, role_name in candidates
        if role_utils.extract_namespace_from_role_name(role_name) == (app_id, namespace_name)
    ]
    summary = _delete_permissions_and_roles(permission_ids, role_ids, operator)

    logger.info(
        "Deleted role permissions of namespace %s: %s", target_id, summary,
        extra={"operator": operator, "app_id": app_id},
    )
    return summary


def delete_role_permissions_by_cluster(
    app_id: str, env: str, cluster_name: str, operator: str,
) -> dict:
    """Soft-delete the modify/release roles of one cluster and their permissions."""
    _require(app_id, "app_id")
    _require(env, "env")
    _require(cluster_name, "cluster_name")

    permission_ids = live_queries.find_permission_ids_by_target(
        role_utils.build_cluster_target_id(app_id, env, cluster_name),
        permission_types=(
            PermissionType.MODIFY_NAMESPACES_IN_CLUSTER,
            PermissionType.RELEASE_NAMESPACES_IN_CLUSTER,
        ),
    )
    candidates = live_queries.find_role_names_matching(
        exact=[
            role_utils.build_modify_namespaces_in_cluster_role_name(app_id, env, cluster_name),
            role_utils.build_release_namespaces_in_cluster_role_name(app_id, env, cluster_name),
        ],
    )
    role_ids = [role_id for role_id, _ in candidates]
    summary = _delete_permissions_and_roles(permission_ids, role_ids, operator)

    logger.info(
        "Deleted role permissions of cluster %s/%s/%s: %s", app_id, env, cluster_name, summary,
        extra={"operator": operator, "app_id": app_id},
    )
    return summary
