"""
User directory: resolves external user ids to ``UserInfo`` projections.

Role bindings only store the user id string. Anything that needs a display
name or email goes through the resolver configured on the app:

    app.config["USER_INFO_RESOLVER"] = lambda user_id: UserInfo(user_id=user_id)

Without one, the local ``users`` table is used. A resolver returns None for
ids the directory does not know; callers drop those users.
"""

import logging
from dataclasses import dataclass

from flask import current_app

from portal.models.auth import User

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UserInfo:
    """Read-only projection of a directory user."""

    user_id: str
    name: str | None = None
    email: str | None = None
    enabled: bool = True


def resolve_local_user_info(user_id: str) -> UserInfo | None:
    """Resolve ``user_id`` against the local users table."""
    user = User.query.filter_by(username=user_id).first()
    if user is None:
        return None
    return UserInfo(
        user_id=user.username,
        name=user.display_name or user.username,
        email=user.email,
        enabled=bool(user.enabled),
    )


def get_user_info_resolver():
    return current_app.config.get("USER_INFO_RESOLVER") or resolve_local_user_info


def find_by_user_ids(user_ids) -> list[UserInfo]:
    """Resolve each id, skipping ids unknown to the directory."""
    resolver = get_user_info_resolver()
    found = []
    for user_id in user_ids:
        info = resolver(user_id)
        if info is None:
            logger.debug("User %s not found in directory", user_id)
            continue
        found.append(info)
    return found
