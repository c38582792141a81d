"""Model-level tests: live-only unique indexes and soft delete helpers."""

import pytest
from sqlalchemy.exc import IntegrityError

from portal.models import db
from portal.models.auth import Permission, Role, RolePermission


def _role(name):
    return Role(role_name=name, created_by="test", last_modified_by="test")


def _permission(permission_type, target_id):
    return Permission(permission_type=permission_type, target_id=target_id,
                      created_by="test", last_modified_by="test")


class TestLiveUniqueIndex:
    def test_duplicate_live_role_name_is_rejected(self):
        db.session.add(_role("someRoleName"))
        db.session.commit()

        db.session.add(_role("someRoleName"))
        with pytest.raises(IntegrityError):
            db.session.flush()
        db.session.rollback()

    def test_deleted_role_name_can_be_reused(self):
        role = _role("someRoleName")
        db.session.add(role)
        db.session.commit()
        role.soft_delete(operator="alice")
        db.session.commit()

        db.session.add(_role("someRoleName"))
        db.session.commit()

        assert Role.query.filter_by(role_name="someRoleName").count() == 2
        assert Role.query_active().filter_by(role_name="someRoleName").count() == 1
        assert Role.query_deleted().one().last_modified_by == "alice"


class TestToDict:
    def test_role_to_dict_lists_live_permission_ids(self):
        role = _role("someRoleName")
        first = _permission("ModifyNamespace", "someApp+application")
        second = _permission("ReleaseNamespace", "someApp+application")
        db.session.add_all([role, first, second])
        db.session.flush()
        kept = RolePermission(role_id=role.id, permission_id=first.id,
                              created_by="test", last_modified_by="test")
        dropped = RolePermission(role_id=role.id, permission_id=second.id,
                                 created_by="test", last_modified_by="test")
        db.session.add_all([kept, dropped])
        db.session.commit()
        dropped.soft_delete(operator="test")
        db.session.commit()

        d = role.to_dict(include_permissions=True)

        assert d["role_name"] == "someRoleName"
        assert d["permission_ids"] == [first.id]
        assert "permission_ids" not in role.to_dict()
