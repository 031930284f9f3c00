"""High-level, sync helpers around SQLAlchemy session.

These keep the repo-cache and membership SQL in **one place**; the managers
only hold the small CRUD statements of their own tables.
"""
from collections.abc import Iterable, Iterator, Sequence
from contextlib import contextmanager
from datetime import datetime
from typing import Any

from sqlalchemy import delete, func, select
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.orm import Session

from starshelf.api.github_client import StarredRepo
from starshelf.schemas import RepoOut, RepoSummary
from .engine import SessionLocal, dialect_name
from .models import Membership, RepoCacheEntry, SyncState, utcnow

# keeps multi-row statements below SQLite's bound-parameter limit
CHUNK_SIZE = 500

_REPO_MUTABLE_FIELDS = (
    "name",
    "full_name",
    "owner_login",
    "owner_avatar",
    "html_url",
    "description",
    "language",
    "stargazers_count",
    "topics",
    "repo_created_at",
    "repo_updated_at",
    "cached_at",
)


@contextmanager
def session_scope() -> Iterator[Session]:
    """Provide a transactional scope around a series of operations."""
    session = SessionLocal()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def _insert(model):
    """Dialect-specific INSERT supporting ON CONFLICT clauses."""
    if dialect_name() == "postgresql":
        return postgresql.insert(model)
    return sqlite.insert(model)


def _chunks(items: Sequence[Any]) -> Iterator[Sequence[Any]]:
    for start in range(0, len(items), CHUNK_SIZE):
        yield items[start : start + CHUNK_SIZE]


def repo_values(record: StarredRepo) -> dict[str, Any]:
    """Flatten an upstream record into a ``repos`` row."""
    return {
        "id": record.id,
        "name": record.name,
        "full_name": record.full_name,
        "owner_login": record.owner.login,
        "owner_avatar": record.owner.avatar_url,
        "html_url": record.html_url,
        "description": record.description,
        "language": record.language,
        "stargazers_count": record.stargazers_count,
        "topics": list(record.topics),
        "repo_created_at": record.created_at,
        "repo_updated_at": record.updated_at,
        "cached_at": utcnow(),
    }


def _upsert_repos(session: Session, records: Sequence[StarredRepo]) -> None:
    for chunk in _chunks(records):
        stmt = _insert(RepoCacheEntry).values([repo_values(r) for r in chunk])
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={field: stmt.excluded[field] for field in _REPO_MUTABLE_FIELDS},
        )
        session.execute(stmt)


def upsert_repository(record: StarredRepo) -> None:
    """Insert a repo or overwrite every mutable field of the cached row."""
    with session_scope() as s:
        _upsert_repos(s, [record])


def upsert_repositories(records: Sequence[StarredRepo]) -> None:
    """Bulk form of :func:`upsert_repository`, one transaction."""
    if not records:
        return
    with session_scope() as s:
        _upsert_repos(s, records)


def get_repository(repo_id: int) -> RepoOut | None:
    with session_scope() as s:
        row = s.get(RepoCacheEntry, repo_id)
        return RepoOut.model_validate(row) if row else None


def find_repository_by_full_name(full_name: str) -> RepoOut | None:
    """Case-insensitive ``owner/name`` lookup."""
    stmt = select(RepoCacheEntry).where(
        func.lower(RepoCacheEntry.full_name) == full_name.lower()
    )
    with session_scope() as s:
        row = s.scalars(stmt).first()
        return RepoOut.model_validate(row) if row else None


def get_repo_summaries(repo_ids: Iterable[int]) -> dict[int, RepoSummary]:
    ids = list(repo_ids)
    summaries: dict[int, RepoSummary] = {}
    with session_scope() as s:
        for chunk in _chunks(ids):
            rows = s.scalars(select(RepoCacheEntry).where(RepoCacheEntry.id.in_(chunk)))
            for row in rows:
                summaries[row.id] = RepoSummary.model_validate(row)
    return summaries


def membership_ids(user_id: str) -> list[int]:
    """Repo ids the user currently has starred, newest star first."""
    stmt = (
        select(Membership.repo_id)
        .where(Membership.user_id == user_id)
        .order_by(Membership.starred_at.desc(), Membership.repo_id)
    )
    with session_scope() as s:
        return list(s.scalars(stmt))


def count_memberships(user_id: str) -> int:
    stmt = select(func.count()).select_from(Membership).where(Membership.user_id == user_id)
    with session_scope() as s:
        return s.scalar(stmt) or 0


def get_sync_etag(user_id: str) -> str | None:
    with session_scope() as s:
        state = s.get(SyncState, user_id)
        return state.etag if state else None


def get_last_synced_at(user_id: str) -> datetime | None:
    with session_scope() as s:
        state = s.get(SyncState, user_id)
        return state.last_synced_at if state else None


def _insert_memberships(
    session: Session, user_id: str, added: Sequence[StarredRepo], synced_at: datetime
) -> None:
    for chunk in _chunks(added):
        stmt = _insert(Membership).values(
            [
                {
                    "user_id": user_id,
                    "repo_id": repo.id,
                    "tags": [],
                    "starred_at": repo.starred_at or synced_at,
                }
                for repo in chunk
            ]
        )
        session.execute(stmt.on_conflict_do_nothing(index_elements=["user_id", "repo_id"]))


def _delete_memberships(session: Session, user_id: str, repo_ids: Sequence[int]) -> None:
    for chunk in _chunks(repo_ids):
        session.execute(
            delete(Membership).where(
                Membership.user_id == user_id, Membership.repo_id.in_(chunk)
            )
        )


def _save_sync_state(
    session: Session, user_id: str, etag: str | None, synced_at: datetime
) -> None:
    stmt = _insert(SyncState).values(user_id=user_id, etag=etag, last_synced_at=synced_at)
    stmt = stmt.on_conflict_do_update(
        index_elements=["user_id"],
        set_={"etag": stmt.excluded.etag, "last_synced_at": stmt.excluded.last_synced_at},
    )
    session.execute(stmt)


def apply_membership_diff(
    user_id: str,
    added: Sequence[StarredRepo],
    removed_ids: Sequence[int],
    *,
    etag: str | None = None,
    synced_at: datetime | None = None,
) -> None:
    """Insert ``added``, delete ``removed_ids`` and record the sync, all or nothing."""
    synced_at = synced_at or utcnow()
    with session_scope() as s:
        _insert_memberships(s, user_id, added, synced_at)
        _delete_memberships(s, user_id, removed_ids)
        _save_sync_state(s, user_id, etag, synced_at)
