"""Role and permission naming convention.

Role names and permission target ids are ``+``-joined strings built from an
app id plus optional namespace, env and cluster parts. Cascade deletion of an
application finds its roles by matching these names, so the formats below are
a storage contract: changing one orphans every role already written with it.

    Master+someApp
    ModifyNamespace+someApp+application
    ReleaseNamespace+someApp+application+DEV
    ModifyNamespacesInCluster+someApp+DEV+default
"""

SEPARATOR = "+"
DEFAULT_NAMESPACE = "application"

# Target id of permissions that are not scoped to an app
SYSTEM_PERMISSION_TARGET_ID = "SystemRole"


class RoleType:
    MASTER = "Master"
    MODIFY_NAMESPACE = "ModifyNamespace"
    RELEASE_NAMESPACE = "ReleaseNamespace"
    MODIFY_NAMESPACES_IN_CLUSTER = "ModifyNamespacesInCluster"
    RELEASE_NAMESPACES_IN_CLUSTER = "ReleaseNamespacesInCluster"

    ALL = frozenset({
        MASTER,
        MODIFY_NAMESPACE,
        RELEASE_NAMESPACE,
        MODIFY_NAMESPACES_IN_CLUSTER,
        RELEASE_NAMESPACES_IN_CLUSTER,
    })

    @classmethod
    def is_valid(cls, role_type):
        return role_type in cls.ALL


class PermissionType:
    # System level
    CREATE_APPLICATION = "CreateApplication"
    MANAGE_APP_MASTER = "ManageAppMaster"

    # App level
    CREATE_NAMESPACE = "CreateNamespace"
    CREATE_CLUSTER = "CreateCluster"
    ASSIGN_ROLE = "AssignRole"

    # Namespace level
    MODIFY_NAMESPACE = "ModifyNamespace"
    RELEASE_NAMESPACE = "ReleaseNamespace"

    # Cluster level
    MODIFY_NAMESPACES_IN_CLUSTER = "ModifyNamespacesInCluster"
    RELEASE_NAMESPACES_IN_CLUSTER = "ReleaseNamespacesInCluster"


def _join(*parts):
    return SEPARATOR.join(p for p in parts if p is not None)


# ── Role names ────────────────────────────────────────────────────────────


def build_app_master_role_name(app_id):
    return _join(RoleType.MASTER, app_id)


def build_app_role_name(app_id, role_type):
    return _join(role_type, app_id)


def build_namespace_role_name(app_id, namespace_name, role_type, env=None):
    return _join(role_type, app_id, namespace_name, env)


def build_modify_namespace_role_name(app_id, namespace_name, env=None):
    return build_namespace_role_name(app_id, namespace_name, RoleType.MODIFY_NAMESPACE, env)


def build_release_namespace_role_name(app_id, namespace_name, env=None):
    return build_namespace_role_name(app_id, namespace_name, RoleType.RELEASE_NAMESPACE, env)


def build_modify_default_namespace_role_name(app_id):
    return build_modify_namespace_role_name(app_id, DEFAULT_NAMESPACE)


def build_release_default_namespace_role_name(app_id):
    return build_release_namespace_role_name(app_id, DEFAULT_NAMESPACE)


def build_modify_namespaces_in_cluster_role_name(app_id, env, cluster_name):
    return _join(RoleType.MODIFY_NAMESPACES_IN_CLUSTER, app_id, env, cluster_name)


def build_release_namespaces_in_cluster_role_name(app_id, env, cluster_name):
    return _join(RoleType.RELEASE_NAMESPACES_IN_CLUSTER, app_id, env, cluster_name)


def build_create_application_role_name(permission_type, permission_target_id):
    return _join(permission_type, permission_target_id)


# ── Permission target ids ─────────────────────────────────────────────────


def build_namespace_target_id(app_id, namespace_name, env=None):
    return _join(app_id, namespace_name, env)


def build_default_namespace_target_id(app_id):
    return build_namespace_target_id(app_id, DEFAULT_NAMESPACE)


def build_cluster_target_id(app_id, env, cluster_name):
    return _join(app_id, env, cluster_name)


# ── Parsing ───────────────────────────────────────────────────────────────

# Role kinds whose second name segment is the owning app id
APP_SCOPED_ROLE_TYPES = RoleType.ALL | {PermissionType.MANAGE_APP_MASTER}

NAMESPACE_ROLE_TYPES = frozenset({RoleType.MODIFY_NAMESPACE, RoleType.RELEASE_NAMESPACE})


def extract_app_id_from_role_name(role_name):
    """Return the app id of any conventionally named app role, else None.

    ``ModifyNamespace+bar+foo`` belongs to app ``bar``, never to ``foo``.
    """
    parts = role_name.split(SEPARATOR)
    if len(parts) >= 2 and parts[0] in APP_SCOPED_ROLE_TYPES and parts[1]:
        return parts[1]
    return None


def extract_namespace_from_role_name(role_name):
    """Return ``(app_id, namespace_name)`` of a namespace role, else None."""
    parts = role_name.split(SEPARATOR)
    if len(parts) in (3, 4) and parts[0] in NAMESPACE_ROLE_TYPES and parts[1] and parts[2]:
        return parts[1], parts[2]
    return None
