"""Tests for the user directory resolver and its use by query_users_with_role."""

from portal.models import db
from portal.models.auth import Role, User, UserRole
from portal.services import role_permission_service, user_directory
from portal.services.user_directory import UserInfo


def _seed_role_with_users(role_name, *user_ids):
    role = Role(role_name=role_name, created_by="test", last_modified_by="test")
    db.session.add(role)
    db.session.flush()
    for user_id in user_ids:
        db.session.add(UserRole(user_id=user_id, role_id=role.id,
                                created_by="test", last_modified_by="test"))
    db.session.commit()
    return role


class TestLocalResolver:
    def test_known_user(self):
        db.session.add(User(username="alice", display_name="Alice", email="alice@acme.com"))
        db.session.commit()

        info = user_directory.resolve_local_user_info("alice")

        assert info == UserInfo(user_id="alice", name="Alice", email="alice@acme.com", enabled=True)

    def test_display_name_falls_back_to_username(self):
        db.session.add(User(username="bob"))
        db.session.commit()

        assert user_directory.resolve_local_user_info("bob").name == "bob"

    def test_unknown_user(self):
        assert user_directory.resolve_local_user_info("ghost") is None


class TestConfiguredResolver:
    def test_custom_resolver_is_used(self, app, monkeypatch):
        monkeypatch.setitem(
            app.config, "USER_INFO_RESOLVER",
            lambda user_id: UserInfo(user_id=user_id, name=user_id.upper()),
        )
        _seed_role_with_users("someRoleName", "someUser", "anotherUser")

        users = role_permission_service.query_users_with_role("someRoleName")

        assert {u.user_id for u in users} == {"someUser", "anotherUser"}
        assert {u.name for u in users} == {"SOMEUSER", "ANOTHERUSER"}

    def test_unresolved_ids_are_dropped(self, app, monkeypatch):
        monkeypatch.setitem(
            app.config, "USER_INFO_RESOLVER",
            lambda user_id: UserInfo(user_id=user_id) if user_id == "someUser" else None,
        )

        found = user_directory.find_by_user_ids(["someUser", "ghost"])

        assert found == [UserInfo(user_id="someUser")]
