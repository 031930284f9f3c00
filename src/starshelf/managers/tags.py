"""Free-text tags and notes stored on a user's membership."""
from typing import Any

from sqlalchemy import select
from sqlalchemy.orm import Session

from starshelf.config import get_settings
from starshelf.db.dal import session_scope
from starshelf.db.models import Membership
from starshelf.errors import ConflictError, NotFoundError, ValidationError

_SETTINGS = get_settings()


def normalize_tag(tag: Any) -> str:
    if not isinstance(tag, str) or not tag.strip():
        raise ValidationError("tag is required")
    tag = tag.strip()
    if len(tag) > _SETTINGS.tag_max_length:
        raise ValidationError(f"tag must be {_SETTINGS.tag_max_length} characters or less")
    return tag


def _membership(session: Session, user_id: str, repo_id: int) -> Membership:
    membership = session.get(Membership, (user_id, repo_id))
    if membership is None:
        raise NotFoundError(f"Repository {repo_id} is not starred")
    return membership


def get_tags(user_id: str, repo_id: int) -> list[str]:
    with session_scope() as s:
        return list(_membership(s, user_id, repo_id).tags)


def get_tag_map(user_id: str) -> dict[int, list[str]]:
    """Every tagged membership of the user: ``{repo_id: tags}``."""
    stmt = select(Membership.repo_id, Membership.tags).where(Membership.user_id == user_id)
    with session_scope() as s:
        return {repo_id: list(tags) for repo_id, tags in s.execute(stmt) if tags}


def add_tag(user_id: str, repo_id: int, tag: str) -> list[str]:
    tag = normalize_tag(tag)
    with session_scope() as s:
        membership = _membership(s, user_id, repo_id)
        if tag in membership.tags:
            raise ConflictError(f"Tag {tag!r} already assigned to this repo")
        # reassign, the JSON column does not track in-place mutation
        membership.tags = [*membership.tags, tag]
        return list(membership.tags)


def remove_tag(user_id: str, repo_id: int, tag: str) -> list[str]:
    """Drop ``tag`` if present; removing an absent tag is a no-op."""
    tag = normalize_tag(tag)
    with session_scope() as s:
        membership = _membership(s, user_id, repo_id)
        if tag in membership.tags:
            membership.tags = [t for t in membership.tags if t != tag]
        return list(membership.tags)


def set_notes(user_id: str, repo_id: int, notes: str | None) -> str | None:
    notes = notes.strip() if notes else None
    with session_scope() as s:
        membership = _membership(s, user_id, repo_id)
        membership.notes = notes or None
        return membership.notes
