"""Users as resolved by the identity provider (GitHub OAuth / a token)."""
import logging
from typing import Optional

from pydantic import BaseModel

from starshelf.api.github_client import GithubClient
from starshelf.db.dal import session_scope
from starshelf.db.models import User
from starshelf.errors import UnauthorizedError
from starshelf.schemas import UserOut

logger = logging.getLogger(__name__)


class Identity(BaseModel):
    """A caller resolved to a stable GitHub user id and, for sync, a token."""

    user_id: str
    username: str
    avatar_url: Optional[str] = None
    access_token: Optional[str] = None

    def require_token(self) -> str:
        if not self.access_token:
            raise UnauthorizedError("A GitHub access token is required to sync stars")
        return self.access_token


async def identity_from_token(token: str | None, gh: GithubClient) -> Identity:
    if not token:
        raise UnauthorizedError("No GitHub token configured")
    user = await gh.get_authenticated_user()
    return Identity(
        user_id=str(user.id),
        username=user.login,
        avatar_url=user.avatar_url,
        access_token=token,
    )


def sign_in(identity: Identity) -> UserOut:
    """Create the user on first sign-in, refresh name and avatar afterwards."""
    with session_scope() as s:
        user = s.get(User, identity.user_id)
        if user is None:
            logger.info(f"Creating user {identity.username} ({identity.user_id})")
            user = User(id=identity.user_id, username=identity.username)
            s.add(user)
        user.username = identity.username
        user.avatar_url = identity.avatar_url
        s.flush()
        return UserOut.model_validate(user)


def get_user(user_id: str) -> UserOut | None:
    with session_scope() as s:
        user = s.get(User, user_id)
        return UserOut.model_validate(user) if user else None
