"""
Role Initialization Service: seeds the conventional roles of an app.

Creating an app, namespace or cluster in the portal calls one of the
``init_*`` functions below so the matching master/modify/release roles and
their permissions exist before anyone is assigned to them. Each function runs
as one unit of work: if any step fails, nothing it wrote survives, so a retry
starts from a clean slate. Every function is also idempotent: a role that
already exists is left alone, and a permission that already exists is reused
instead of recreated.
"""

import logging

from portal.models.auth import Permission, Role
from portal.services import role_permission_service
from portal.services.helpers import live_queries
from portal.services.role_permission_service import unit_of_work
from portal.utils import role_utils
from portal.utils.role_utils import PermissionType

logger = logging.getLogger(__name__)

MASTER_PERMISSION_TYPES = (
    PermissionType.CREATE_CLUSTER,
    PermissionType.CREATE_NAMESPACE,
    PermissionType.ASSIGN_ROLE,
)


def _new_role(role_name: str, operator: str) -> Role:
    role = Role(role_name=role_name)
    role.stamp(operator)
    return role


def _ensure_permission(permission_type: str, target_id: str, operator: str) -> Permission:
    """Return the live (type, target) permission, creating it if needed.

    A concurrent initializer creating the same permission is not an error;
    its row is picked up instead.
    """
    created = live_queries.insert_ignoring_conflicts(
        Permission,
        permission_type=permission_type,
        target_id=target_id,
        created_by=operator,
        last_modified_by=operator,
    )
    if created:
        logger.debug("Created permission %s:%s", permission_type, target_id)
    return live_queries.find_permission(permission_type, target_id)


def _create_role_for_permission(
    role_name: str, permission_type: str, target_id: str, operator: str,
) -> Role | None:
    """Create ``role_name`` bound to the (type, target) permission unless it exists."""
    if role_permission_service.find_role_by_role_name(role_name) is not None:
        logger.debug("Role %s already exists, skipping", role_name)
        return None
    permission = _ensure_permission(permission_type, target_id, operator)
    return role_permission_service.create_role_with_permissions(
        _new_role(role_name, operator), {permission.id},
    )


# ═══════════════════════════════════════════════════════════════
# System roles
# ═══════════════════════════════════════════════════════════════

def init_create_application_role(operator: str) -> Role | None:
    """Seed the system-wide role allowed to create applications."""
    with unit_of_work():
        return _create_role_for_permission(
            role_utils.build_create_application_role_name(
                PermissionType.CREATE_APPLICATION, role_utils.SYSTEM_PERMISSION_TARGET_ID,
            ),
            PermissionType.CREATE_APPLICATION,
            role_utils.SYSTEM_PERMISSION_TARGET_ID,
            operator,
        )


# ═══════════════════════════════════════════════════════════════
# App roles
# ═══════════════════════════════════════════════════════════════

def init_app_roles(app_id: str, owner: str, operator: str, envs=()) -> bool:
    """Seed every role of a new app and make ``owner`` its master.

    Returns False when the master role already existed and nothing was done.
    A failure part way through rolls back the master role as well, so the
    next call starts over instead of finding a master role without a master.
    """
    master_role_name = role_utils.build_app_master_role_name(app_id)

    with unit_of_work():
        if role_permission_service.find_role_by_role_name(master_role_name) is not None:
            logger.info("App %s roles already initialized", app_id, extra={"app_id": app_id})
            return False

        permissions = [
            _ensure_permission(permission_type, app_id, operator)
            for permission_type in MASTER_PERMISSION_TYPES
        ]
        role_permission_service.create_role_with_permissions(
            _new_role(master_role_name, operator), {p.id for p in permissions},
        )
        role_permission_service.assign_role_to_users(master_role_name, {owner}, operator)

        init_namespace_roles(app_id, role_utils.DEFAULT_NAMESPACE, operator)
        for env in envs:
            init_namespace_env_roles(app_id, role_utils.DEFAULT_NAMESPACE, env, operator)

        _ensure_permission(PermissionType.MANAGE_APP_MASTER, app_id, operator)

    logger.info(
        "Initialized roles of app %s for owner %s", app_id, owner,
        extra={"operator": operator, "app_id": app_id},
    )
    return True


def init_manage_app_master_role(app_id: str, operator: str) -> Role | None:
    role_name = role_utils.build_app_role_name(app_id, PermissionType.MANAGE_APP_MASTER)
    with unit_of_work():
        return _create_role_for_permission(
            role_name, PermissionType.MANAGE_APP_MASTER, app_id, operator,
        )


# ═══════════════════════════════════════════════════════════════
# Namespace roles
# ═══════════════════════════════════════════════════════════════

def init_namespace_roles(app_id: str, namespace_name: str, operator: str) -> None:
    target_id = role_utils.build_namespace_target_id(app_id, namespace_name)
    with unit_of_work():
        _create_role_for_permission(
            role_utils.build_modify_namespace_role_name(app_id, namespace_name),
            PermissionType.MODIFY_NAMESPACE, target_id, operator,
        )
        _create_role_for_permission(
            role_utils.build_release_namespace_role_name(app_id, namespace_name),
            PermissionType.RELEASE_NAMESPACE, target_id, operator,
        )


def init_namespace_env_roles(app_id: str, namespace_name: str, env: str, operator: str) -> None:
    target_id = role_utils.build_namespace_target_id(app_id, namespace_name, env)
    with unit_of_work():
        _create_role_for_permission(
            role_utils.build_modify_namespace_role_name(app_id, namespace_name, env),
            PermissionType.MODIFY_NAMESPACE, target_id, operator,
        )
        _create_role_for_permission(
            role_utils.build_release_namespace_role_name(app_id, namespace_name, env),
            PermissionType.RELEASE_NAMESPACE, target_id, operator,
        )


# ═══════════════════════════════════════════════════════════════
# Cluster roles
# ═══════════════════════════════════════════════════════════════

def init_cluster_namespace_roles(app_id: str, env: str, cluster_name: str, operator: str) -> None:
    target_id = role_utils.build_cluster_target_id(app_id, env, cluster_name)
    with unit_of_work():
        _create_role_for_permission(
            role_utils.build_modify_namespaces_in_cluster_role_name(app_id, env, cluster_name),
            PermissionType.MODIFY_NAMESPACES_IN_CLUSTER, target_id, operator,
        )
        _create_role_for_permission(
            role_utils.build_release_namespaces_in_cluster_role_name(app_id, env, cluster_name),
            PermissionType.RELEASE_NAMESPACES_IN_CLUSTER, target_id, operator,
        )
