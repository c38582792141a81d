"""
Tests for role initialization and the CLI commands built on it.

Covers:
  - init_app_roles: master role bound to owner, default namespace roles,
    per-env roles, ManageAppMaster permission; second run is a no-op
  - init_cluster_namespace_roles: seeded roles are removed by app cascade
  - init_namespace_roles: existing permission is reused
  - init_app_roles failing part way leaves no roles or permissions
  - init_create_application_role: system role seeded once
  - flask init-app-roles / delete-app-roles / user-roles / init-system-roles
"""

import json

import pytest

from portal.models.auth import Permission, Role
from portal.services import role_initialization_service, role_permission_service
from portal.services.helpers import live_queries
from portal.utils import role_utils
from portal.utils.role_utils import PermissionType


class TestInitAppRoles:
    def test_owner_becomes_master(self):
        created = role_initialization_service.init_app_roles(
            "someApp", owner="alice", operator="admin", envs=("DEV",),
        )

        assert created is True
        users = role_permission_service.query_users_with_role("Master+someApp")
        # alice is not in the local directory
        assert users == set()
        master = live_queries.find_role_by_name("Master+someApp")
        assert [ur.user_id for ur in live_queries.find_user_roles_by_role_id(master.id)] == ["alice"]
        for permission_type in (
            PermissionType.CREATE_CLUSTER,
            PermissionType.CREATE_NAMESPACE,
            PermissionType.ASSIGN_ROLE,
        ):
            assert role_permission_service.user_has_permission("alice", permission_type, "someApp")

    def test_namespace_and_env_roles_are_seeded(self):
        role_initialization_service.init_app_roles(
            "someApp", owner="alice", operator="admin", envs=("DEV", "PRO"),
        )

        expected = {
            "ModifyNamespace+someApp+application",
            "ReleaseNamespace+someApp+application",
            "ModifyNamespace+someApp+application+DEV",
            "ReleaseNamespace+someApp+application+DEV",
            "ModifyNamespace+someApp+application+PRO",
            "ReleaseNamespace+someApp+application+PRO",
        }
        for role_name in expected:
            assert live_queries.find_role_by_name(role_name) is not None
        assert live_queries.find_permission(PermissionType.MANAGE_APP_MASTER, "someApp") is not None
        assert Role.query.filter_by(created_by="admin").count() == len(expected) + 1

    def test_second_run_is_noop(self):
        role_initialization_service.init_app_roles("someApp", owner="alice", operator="admin")
        role_count = Role.query.count()

        assert role_initialization_service.init_app_roles(
            "someApp", owner="bob", operator="admin",
        ) is False
        assert Role.query.count() == role_count

    def test_failure_part_way_leaves_nothing_behind(self, monkeypatch):
        def fail(*args, **kwargs):
            raise RuntimeError("directory unavailable")

        monkeypatch.setattr(role_permission_service, "assign_role_to_users", fail)
        with pytest.raises(RuntimeError):
            role_initialization_service.init_app_roles("someApp", owner="alice", operator="admin")

        assert live_queries.find_role_by_name("Master+someApp") is None
        assert Role.query.count() == 0
        assert Permission.query.count() == 0

        monkeypatch.undo()
        assert role_initialization_service.init_app_roles(
            "someApp", owner="alice", operator="admin",
        ) is True
        assert role_permission_service.user_has_permission(
            "alice", PermissionType.ASSIGN_ROLE, "someApp",
        ) is True

    def test_manage_app_master_role(self):
        role = role_initialization_service.init_manage_app_master_role("someApp", "admin")

        assert role.role_name == "ManageAppMaster+someApp"
        assert role_initialization_service.init_manage_app_master_role("someApp", "admin") is None


class TestInitNamespaceRoles:
    def test_existing_permission_is_reused(self):
        target_id = role_utils.build_namespace_target_id("someApp", "someNs")
        existing = role_permission_service.create_permission(
            Permission(permission_type=PermissionType.MODIFY_NAMESPACE, target_id=target_id,
                       created_by="admin", last_modified_by="admin")
        )

        role_initialization_service.init_namespace_roles("someApp", "someNs", "admin")

        role = live_queries.find_role_by_name("ModifyNamespace+someApp+someNs")
        bindings = live_queries.find_role_permissions_by_role_ids({role.id})
        assert [rp.permission_id for rp in bindings] == [existing.id]
        assert Permission.query.filter_by(target_id=target_id).count() == 2


class TestInitClusterNamespaceRoles:
    def test_cluster_roles_are_removed_with_app(self):
        role_initialization_service.init_cluster_namespace_roles("clusterApp", "DEV", "default", "admin")
        modify = role_utils.build_modify_namespaces_in_cluster_role_name("clusterApp", "DEV", "default")
        release = role_utils.build_release_namespaces_in_cluster_role_name("clusterApp", "DEV", "default")
        assert live_queries.find_role_by_name(modify) is not None
        assert live_queries.find_role_by_name(release) is not None

        role_permission_service.delete_role_permissions_by_app_id("clusterApp", "test")

        assert live_queries.find_role_by_name(modify) is None
        assert live_queries.find_role_by_name(release) is None


class TestInitCreateApplicationRole:
    def test_system_role_is_seeded_once(self):
        role = role_initialization_service.init_create_application_role("admin")

        assert role.role_name == "CreateApplication+SystemRole"
        assert live_queries.find_permission(
            PermissionType.CREATE_APPLICATION, role_utils.SYSTEM_PERMISSION_TARGET_ID,
        ) is not None
        assert role_initialization_service.init_create_application_role("admin") is None

    def test_deleting_an_app_named_like_the_target_keeps_it(self):
        role_initialization_service.init_create_application_role("admin")

        summary = role_permission_service.delete_role_permissions_by_app_id("SystemRole", "admin")

        assert summary["permissions"] == 0
        assert summary["roles"] == 0


class TestCli:
    def test_init_and_delete_app_roles(self, cli_runner):
        result = cli_runner.invoke(
            args=["init-app-roles", "cliApp", "--owner", "alice", "--env", "DEV"],
        )
        assert result.exit_code == 0, result.output
        assert "Initialized roles for app cliApp" in result.output
        assert live_queries.find_role_by_name("Master+cliApp") is not None

        result = cli_runner.invoke(args=["init-app-roles", "cliApp", "--owner", "alice"])
        assert "already exist" in result.output

        result = cli_runner.invoke(args=["delete-app-roles", "cliApp", "--operator", "alice"])
        assert result.exit_code == 0, result.output
        assert "Deleted 5 role(s)" in result.output
        assert live_queries.find_role_by_name("Master+cliApp") is None

    def test_user_roles_prints_live_roles(self, cli_runner):
        role_initialization_service.init_app_roles("cliApp", owner="alice", operator="admin")

        result = cli_runner.invoke(args=["user-roles", "alice"])

        assert result.exit_code == 0, result.output
        roles = json.loads(result.stdout)
        assert [r["role_name"] for r in roles] == ["Master+cliApp"]
        assert len(roles[0]["permission_ids"]) == 3

    def test_init_system_roles(self, cli_runner):
        result = cli_runner.invoke(args=["init-system-roles"])

        assert result.exit_code == 0, result.output
        assert "CreateApplication+SystemRole" in result.output
        assert live_queries.find_role_by_name("CreateApplication+SystemRole") is not None
