"""Named, shareable sets of repos; a repo may sit in many collections."""
import logging
from typing import Any

from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from starshelf.db.dal import session_scope
from starshelf.db.models import Collection, CollectionRepo
from starshelf.errors import ConflictError, NotFoundError, ValidationError
from starshelf.schemas import CollectionOut
from starshelf.slugs import generate_slug, slugify

logger = logging.getLogger(__name__)


def _find(session: Session, user_id: str, slug: str) -> Collection | None:
    stmt = select(Collection).where(Collection.user_id == user_id, Collection.slug == slug)
    return session.scalars(stmt).first()


def _require(session: Session, user_id: str, slug: str) -> Collection:
    collection = _find(session, user_id, slug)
    if collection is None:
        raise NotFoundError(f"Collection {slug!r} not found")
    return collection


def get_collections(user_id: str) -> list[CollectionOut]:
    stmt = (
        select(Collection)
        .where(Collection.user_id == user_id)
        .order_by(Collection.created_at.desc(), Collection.id.desc())
    )
    with session_scope() as s:
        return [CollectionOut.model_validate(row) for row in s.scalars(stmt)]


def get_collection(user_id: str, slug: str) -> CollectionOut | None:
    with session_scope() as s:
        row = _find(s, user_id, slug)
        return CollectionOut.model_validate(row) if row else None


def create_collection(user_id: str, name: Any, description: str | None = None) -> CollectionOut:
    """Create a collection addressed by a slug of its name.

    Names without any alphanumeric character get a random slug; a name
    whose slug the user already has is a conflict.
    """
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("Name is required")
    name = name.strip()
    slug = slugify(name) or generate_slug(name)

    with session_scope() as s:
        if _find(s, user_id, slug) is not None:
            raise ConflictError("A collection with this name already exists")
        row = Collection(user_id=user_id, name=name, slug=slug, description=description)
        s.add(row)
        s.flush()
        return CollectionOut.model_validate(row)


def delete_collection(user_id: str, slug: str) -> bool:
    with session_scope() as s:
        row = _find(s, user_id, slug)
        if row is None:
            return False
        s.execute(delete(CollectionRepo).where(CollectionRepo.collection_id == row.id))
        s.delete(row)
    logger.info(f"Deleted collection {slug} of user {user_id}")
    return True


def get_collection_repo_ids(user_id: str, slug: str) -> list[int] | None:
    with session_scope() as s:
        row = _find(s, user_id, slug)
        if row is None:
            return None
        stmt = (
            select(CollectionRepo.repo_id)
            .where(CollectionRepo.collection_id == row.id)
            .order_by(CollectionRepo.id)
        )
        return list(s.scalars(stmt))


def add_repo_to_collection(user_id: str, slug: str, repo_id: int) -> None:
    with session_scope() as s:
        collection = _require(s, user_id, slug)
        exists = s.scalar(
            select(CollectionRepo.id).where(
                CollectionRepo.collection_id == collection.id,
                CollectionRepo.repo_id == repo_id,
            )
        )
        if exists is not None:
            raise ConflictError("Repo already in collection")
        s.add(CollectionRepo(collection_id=collection.id, repo_id=repo_id))


def remove_repo_from_collection(user_id: str, slug: str, repo_id: int) -> bool:
    """False when the repo was not in the collection."""
    with session_scope() as s:
        collection = _require(s, user_id, slug)
        result = s.execute(
            delete(CollectionRepo).where(
                CollectionRepo.collection_id == collection.id,
                CollectionRepo.repo_id == repo_id,
            )
        )
        return result.rowcount > 0
