"""User-defined, exclusive groupings of starred repos."""
import logging
from typing import Any

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from starshelf.config import get_settings
from starshelf.db.dal import session_scope
from starshelf.db.models import Membership, RepoCacheEntry, User, UserList
from starshelf.errors import ConflictError, NotFoundError, ValidationError
from starshelf.schemas import ListOut, PublicList, RepoOut, ShareState, UserOut
from starshelf.slugs import generate_slug

_SETTINGS = get_settings()
logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"name", "color", "icon", "description", "position"})
MAX_SLUG_ATTEMPTS = 5


def _clean_name(name: Any) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name is required")
    return name.strip()


def _owned_list(session: Session, user_id: str, list_id: int) -> UserList | None:
    stmt = select(UserList).where(UserList.id == list_id, UserList.user_id == user_id)
    return session.scalars(stmt).first()


def get_lists(user_id: str) -> list[ListOut]:
    stmt = (
        select(UserList)
        .where(UserList.user_id == user_id)
        .order_by(UserList.position, UserList.id)
    )
    with session_scope() as s:
        return [ListOut.model_validate(row) for row in s.scalars(stmt)]


def get_list(user_id: str, list_id: int) -> ListOut | None:
    with session_scope() as s:
        row = _owned_list(s, user_id, list_id)
        return ListOut.model_validate(row) if row else None


def create_list(
    user_id: str,
    name: str,
    color: str | None = None,
    icon: str | None = None,
    description: str | None = None,
) -> ListOut:
    """New list at the end of the user's ordering (``max(position) + 1``)."""
    name = _clean_name(name)
    with session_scope() as s:
        next_pos = s.scalar(
            select(func.coalesce(func.max(UserList.position), -1) + 1).where(
                UserList.user_id == user_id
            )
        )
        row = UserList(
            user_id=user_id,
            name=name,
            color=color or _SETTINGS.default_list_color,
            icon=icon or None,
            description=description,
            position=next_pos,
        )
        s.add(row)
        s.flush()
        return ListOut.model_validate(row)


def update_list(user_id: str, list_id: int, **fields: Any) -> ListOut | None:
    """Patch name/color/icon/description/position; ``None`` if not the user's list."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValidationError(f"Cannot update fields: {', '.join(sorted(unknown))}")
    if not fields:
        raise ValidationError("No fields to update")
    if "name" in fields:
        fields["name"] = _clean_name(fields["name"])
    if "position" in fields and not isinstance(fields["position"], int):
        raise ValidationError("position must be an integer")

    with session_scope() as s:
        row = _owned_list(s, user_id, list_id)
        if row is None:
            return None
        for key, value in fields.items():
            setattr(row, key, value)
        s.flush()
        return ListOut.model_validate(row)


def rename_list(user_id: str, list_id: int, name: str) -> ListOut | None:
    return update_list(user_id, list_id, name=name)


def reorder_lists(user_id: str, list_ids: list[int]) -> list[ListOut]:
    """Give ``list_ids`` positions 0..n-1; unmentioned lists follow in their old order."""
    if len(set(list_ids)) != len(list_ids):
        raise ValidationError("list ids must be unique")

    with session_scope() as s:
        rows = {
            row.id: row
            for row in s.scalars(
                select(UserList)
                .where(UserList.user_id == user_id)
                .order_by(UserList.position, UserList.id)
            )
        }
        missing = [list_id for list_id in list_ids if list_id not in rows]
        if missing:
            raise NotFoundError(f"Lists not found: {missing}")

        ordered = list_ids + [list_id for list_id in rows if list_id not in list_ids]
        for position, list_id in enumerate(ordered):
            rows[list_id].position = position
        s.flush()
        return [ListOut.model_validate(rows[list_id]) for list_id in ordered]


def delete_list(user_id: str, list_id: int) -> bool:
    """Delete the list; repos assigned to it become unassigned."""
    with session_scope() as s:
        row = _owned_list(s, user_id, list_id)
        if row is None:
            return False
        s.execute(
            update(Membership)
            .where(Membership.user_id == user_id, Membership.list_id == list_id)
            .values(list_id=None)
        )
        s.delete(row)
    logger.info(f"Deleted list {list_id} of user {user_id}")
    return True


def _unique_slug(session: Session, name: str) -> str:
    for _ in range(MAX_SLUG_ATTEMPTS):
        slug = generate_slug(name)
        taken = session.scalar(select(UserList.id).where(UserList.slug == slug))
        if taken is None:
            return slug
        logger.debug(f"Slug {slug} already taken, retrying")
    raise ConflictError("Could not generate a unique slug for this list")


def toggle_share(user_id: str, list_id: int) -> ShareState | None:
    """Flip the public flag; the slug survives un-sharing so the URL is stable."""
    with session_scope() as s:
        row = _owned_list(s, user_id, list_id)
        if row is None:
            return None
        if row.is_public:
            row.is_public = False
        else:
            row.slug = row.slug or _unique_slug(s, row.name)
            row.is_public = True
        return ShareState(is_public=row.is_public, slug=row.slug)


def get_public_list(slug: str) -> PublicList | None:
    """A shared list with its owner and repos; ``None`` unless it is public."""
    with session_scope() as s:
        found = s.execute(
            select(UserList, User)
            .join(User, User.id == UserList.user_id)
            .where(UserList.slug == slug, UserList.is_public.is_(True))
        ).first()
        if found is None:
            return None
        row, owner = found
        repos = s.scalars(
            select(RepoCacheEntry)
            .join(Membership, Membership.repo_id == RepoCacheEntry.id)
            .where(Membership.list_id == row.id, Membership.user_id == row.user_id)
            .order_by(Membership.starred_at.desc(), RepoCacheEntry.id)
        )
        return PublicList(
            list=ListOut.model_validate(row),
            owner=UserOut.model_validate(owner),
            repos=[RepoOut.model_validate(repo) for repo in repos],
        )


def assign_list(user_id: str, repo_id: int, list_id: int | None) -> int | None:
    """Put a starred repo into one of the user's lists, or none with ``None``."""
    with session_scope() as s:
        if list_id is not None and _owned_list(s, user_id, list_id) is None:
            raise NotFoundError(f"List {list_id} not found")
        membership = s.get(Membership, (user_id, repo_id))
        if membership is None:
            raise NotFoundError(f"Repository {repo_id} is not starred")
        membership.list_id = list_id
    return list_id
