"""
Live-row query helpers for the role/permission tables.

Every read in the role/permission service goes through these helpers instead
of ``Model.query`` so soft-deleted rows can never leak into a decision. The
helpers read, insert or bulk-mark rows; committing is the caller's job, which
keeps one service call equal to one transaction.

Usage:
    role = find_role_by_name("Master+someApp")
    bindings = find_user_roles_by_role_id(role.id)
    count = batch_soft_delete(UserRole, UserRole.role_id, [role.id], operator="alice")
    insert_ignoring_conflicts(UserRole, user_id="bob", role_id=role.id, created_by="alice")

Name matching:
    Cascade deletion matches role names and target ids with LIKE. Caller
    input is escaped with ``escape_like`` so an app id containing ``%`` or
    ``_`` cannot widen the match. The LIKE result is only a candidate list;
    the service keeps the names whose app segment is the app being deleted.
"""

import logging

from sqlalchemy import or_, select, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.exc import IntegrityError

from portal.models import db
from portal.models.auth import Permission, Role, RolePermission, UserRole

logger = logging.getLogger(__name__)

LIKE_ESCAPE = "/"


def escape_like(value: str) -> str:
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


def _live(model):
    return select(model).where(model.is_deleted.is_(False))


# ── Permissions ──────────────────────────────────────────────────────────


def find_permission(permission_type: str, target_id: str) -> Permission | None:
    stmt = _live(Permission).where(
        Permission.permission_type == permission_type,
        Permission.target_id == target_id,
    )
    return db.session.execute(stmt).scalars().first()


def find_permissions_by_ids(permission_ids) -> list[Permission]:
    ids = list(permission_ids)
    if not ids:
        return []
    stmt = _live(Permission).where(Permission.id.in_(ids))
    return list(db.session.execute(stmt).scalars())


def find_permission_ids_by_target(
    exact: str,
    prefix: str | None = None,
    permission_types=None,
    exclude_types=(),
) -> list[int]:
    """Ids of live permissions whose target is ``exact`` or starts with ``prefix``."""
    clauses = [Permission.target_id == exact]
    if prefix is not None:
        clauses.append(
            Permission.target_id.like(escape_like(prefix) + "%", escape=LIKE_ESCAPE)
        )
    stmt = (
        select(Permission.id)
        .where(Permission.is_deleted.is_(False))
        .where(or_(*clauses))
    )
    if permission_types is not None:
        stmt = stmt.where(Permission.permission_type.in_(list(permission_types)))
    if exclude_types:
        stmt = stmt.where(Permission.permission_type.not_in(list(exclude_types)))
    return sorted(set(db.session.execute(stmt).scalars()))


# ── Roles ────────────────────────────────────────────────────────────────


def find_role_by_name(role_name: str) -> Role | None:
    stmt = _live(Role).where(Role.role_name == role_name)
    return db.session.execute(stmt).scalars().first()


def find_roles_by_ids(role_ids) -> list[Role]:
    ids = list(role_ids)
    if not ids:
        return []
    stmt = _live(Role).where(Role.id.in_(ids)).order_by(Role.id)
    return list(db.session.execute(stmt).scalars())


def find_role_names_matching(
    *,
    exact=(),
    suffixes=(),
    infixes=(),
) -> list[tuple[int, str]]:
    """``(id, role_name)`` of live roles matching any exact name, ``%suffix`` or ``%infix%``.

    The patterns are a coarse prefilter: a suffix or infix can sit in any
    segment of a name, so callers decide ownership from the parsed name.
    """
    clauses = [Role.role_name == name for name in exact]
    clauses += [
        Role.role_name.like("%" + escape_like(s), escape=LIKE_ESCAPE) for s in suffixes
    ]
    clauses += [
        Role.role_name.like("%" + escape_like(i) + "%", escape=LIKE_ESCAPE) for i in infixes
    ]
    if not clauses:
        return []
    stmt = (
        select(Role.id, Role.role_name)
        .where(Role.is_deleted.is_(False))
        .where(or_(*clauses))
        .order_by(Role.id)
    )
    return [(row.id, row.role_name) for row in db.session.execute(stmt)]


# ── Bindings ─────────────────────────────────────────────────────────────


def find_role_permissions_by_role_ids(role_ids) -> list[RolePermission]:
    ids = list(role_ids)
    if not ids:
        return []
    stmt = _live(RolePermission).where(RolePermission.role_id.in_(ids))
    return list(db.session.execute(stmt).scalars())


def find_user_roles_by_role_id(role_id: int) -> list[UserRole]:
    stmt = _live(UserRole).where(UserRole.role_id == role_id).order_by(UserRole.id)
    return list(db.session.execute(stmt).scalars())


def find_user_roles_by_user_id(user_id: str) -> list[UserRole]:
    stmt = _live(UserRole).where(UserRole.user_id == user_id)
    return list(db.session.execute(stmt).scalars())


def find_user_roles(user_ids, role_id: int) -> list[UserRole]:
    ids = list(user_ids)
    if not ids:
        return []
    stmt = _live(UserRole).where(
        UserRole.role_id == role_id,
        UserRole.user_id.in_(ids),
    )
    return list(db.session.execute(stmt).scalars())


def user_role_path_exists(user_id: str, permission_id: int) -> bool:
    """True when some live role binds ``permission_id`` and ``user_id``."""
    stmt = (
        select(UserRole.id)
        .join(RolePermission, RolePermission.role_id == UserRole.role_id)
        .join(Role, Role.id == UserRole.role_id)
        .where(
            UserRole.user_id == user_id,
            UserRole.is_deleted.is_(False),
            RolePermission.permission_id == permission_id,
            RolePermission.is_deleted.is_(False),
            Role.is_deleted.is_(False),
        )
        .limit(1)
    )
    return db.session.execute(stmt).first() is not None


# ── Conflict-free insert ─────────────────────────────────────────────────


def insert_ignoring_conflicts(model, **values) -> bool:
    """Insert one ``model`` row unless a live row already holds its unique key.

    Returns True when the row was written. A concurrent writer that got there
    first makes this a no-op instead of an ``IntegrityError``.
    """
    dialect = db.session.get_bind().dialect.name
    if dialect == "postgresql":
        stmt = pg_insert(model.__table__).values(**values).on_conflict_do_nothing()
    elif dialect == "sqlite":
        stmt = sqlite_insert(model.__table__).values(**values).on_conflict_do_nothing()
    else:
        try:
            with db.session.begin_nested():
                db.session.add(model(**values))
        except IntegrityError:
            logger.debug("%s row %r already exists", model.__tablename__, values)
            return False
        return True
    return db.session.execute(stmt).rowcount > 0


# ── Bulk soft delete ─────────────────────────────────────────────────────


def batch_soft_delete(model, column, values, operator: str) -> int:
    """Soft-delete live ``model`` rows whose ``column`` is in ``values``."""
    values = list(values)
    if not values:
        return 0
    stmt = (
        update(model)
        .where(column.in_(values), model.is_deleted.is_(False))
        .values(**model.soft_delete_values(operator))
        .execution_options(synchronize_session="fetch")
    )
    result = db.session.execute(stmt)
    logger.debug(
        "Soft-deleted %d %s row(s) by %s",
        result.rowcount, model.__tablename__, column.key,
    )
    return result.rowcount
