import json
from datetime import datetime, timezone
from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    ForeignKey,
    Index,
    Integer,
    SmallInteger,
    Text,
    TIMESTAMP,
    UniqueConstraint,
    func,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy.types import TypeDecorator


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class JsonList(TypeDecorator):
    """A list of strings stored as JSON-encoded text.

    Comparisons (LIKE) run against the raw encoded text, which is what the
    single-tag filter relies on.
    """

    impl = Text
    cache_ok = True

    def process_bind_param(self, value, dialect):
        return json.dumps(list(value) if value is not None else [])

    def process_result_value(self, value, dialect):
        return json.loads(value) if value else []

    def coerce_compared_value(self, op, value):
        return self.impl.coerce_compared_value(op, value)


class Base(DeclarativeBase):
    pass  # shared metadata lives here


class User(Base):
    __tablename__ = "users"

    id: Mapped[str] = mapped_column(Text, primary_key=True)  # GitHub user id
    username: Mapped[str] = mapped_column(Text, nullable=False)
    avatar_url: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, onupdate=utcnow, nullable=False
    )


class RepoCacheEntry(Base):
    """Global GitHub metadata mirror, one row per upstream repository id."""

    __tablename__ = "repos"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    full_name: Mapped[str] = mapped_column(Text, nullable=False)
    owner_login: Mapped[str] = mapped_column(Text, nullable=False)
    owner_avatar: Mapped[str | None] = mapped_column(Text)
    html_url: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    language: Mapped[str | None] = mapped_column(Text)
    stargazers_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    topics: Mapped[list[str]] = mapped_column(JsonList, nullable=False, default=list)
    repo_created_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True))
    repo_updated_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True))
    cached_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )


Index("ix_repos_full_name_lower", func.lower(RepoCacheEntry.full_name))


class UserList(Base):
    __tablename__ = "user_lists"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    color: Mapped[str] = mapped_column(Text, nullable=False)
    icon: Mapped[str | None] = mapped_column(Text)
    description: Mapped[str | None] = mapped_column(Text)
    position: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    is_public: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    # kept after un-sharing so a re-share reuses the same URL
    slug: Mapped[str | None] = mapped_column(Text, unique=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )


class Membership(Base):
    """A user's star on a repo, with the user's own annotations."""

    __tablename__ = "user_repos"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), primary_key=True)
    repo_id: Mapped[int] = mapped_column(
        ForeignKey("repos.id"), primary_key=True
    )
    list_id: Mapped[int | None] = mapped_column(
        ForeignKey("user_lists.id", ondelete="SET NULL"), index=True
    )
    tags: Mapped[list[str]] = mapped_column(JsonList, nullable=False, default=list)
    notes: Mapped[str | None] = mapped_column(Text)
    starred_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )

    repo = relationship("RepoCacheEntry")


class Collection(Base):
    __tablename__ = "collections"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    slug: Mapped[str] = mapped_column(Text, nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )

    repos = relationship("CollectionRepo", back_populates="collection", cascade="all, delete")

    __table_args__ = (UniqueConstraint("user_id", "slug", name="uq_collections_user_slug"),)


class CollectionRepo(Base):
    __tablename__ = "collection_repos"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    collection_id: Mapped[int] = mapped_column(
        ForeignKey("collections.id", ondelete="CASCADE"), nullable=False
    )
    repo_id: Mapped[int] = mapped_column(BigInteger, nullable=False)

    collection = relationship("Collection", back_populates="repos")

    __table_args__ = (
        UniqueConstraint("collection_id", "repo_id", name="uq_collection_repos_pair"),
    )


class Like(Base):
    __tablename__ = "likes"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), primary_key=True)
    repo_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, index=True)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )


class Comment(Base):
    __tablename__ = "comments"

    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    repo_id: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), nullable=False)
    body: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        TIMESTAMP(timezone=True), default=utcnow, nullable=False
    )

    user = relationship("User")
    votes = relationship("CommentVote", cascade="all, delete")


class CommentVote(Base):
    __tablename__ = "comment_votes"

    comment_id: Mapped[int] = mapped_column(
        ForeignKey("comments.id", ondelete="CASCADE"), primary_key=True
    )
    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), primary_key=True)
    value: Mapped[int] = mapped_column(SmallInteger, nullable=False)

    __table_args__ = (CheckConstraint("value IN (1, -1)", name="ck_comment_votes_value"),)


class SyncState(Base):
    """Freshness token and timestamp of a user's last successful sync."""

    __tablename__ = "sync_state"

    user_id: Mapped[str] = mapped_column(ForeignKey("users.id"), primary_key=True)
    etag: Mapped[str | None] = mapped_column(Text)
    last_synced_at: Mapped[datetime | None] = mapped_column(TIMESTAMP(timezone=True))
