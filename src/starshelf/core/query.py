"""Filtered, sorted, paginated views over a user's stars, plus facet counts.

Facets are always computed over the user's whole membership, never over the
filtered result, so every filter in the sidebar keeps its counts while other
filters are active.
"""
import logging
from collections import Counter
from enum import Enum
from typing import Any, List, Literal, Optional, Union

from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator
from sqlalchemy import and_, cast, exists, func, or_, select, true
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from starshelf.db.dal import session_scope
from starshelf.db.engine import dialect_name
from starshelf.db.models import Collection, CollectionRepo, Membership, RepoCacheEntry, UserList
from starshelf.errors import ValidationError
from starshelf.schemas import (
    Facets,
    LanguageFacet,
    ListFacet,
    QueryResult,
    RepoOut,
    StarredRepoView,
    TagFacet,
)

logger = logging.getLogger(__name__)

DEFAULT_LIMIT = 50
MIN_LIMIT = 1
MAX_LIMIT = 200
NO_LIST = "none"
LIKE_ESCAPE = "\\"


class SortKey(str, Enum):
    STARRED = "starred"  # star time, newest first
    STARS = "stars"  # upstream stargazers, most first
    UPDATED = "updated"  # upstream last update, newest first
    NAME = "name"  # case-insensitive A-Z


def _coerce_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def escape_like(value: str) -> str:
    return (
        value.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


class StarQuery(BaseModel):
    """Flat query parameters; pagination and sort never fail, they fall back."""

    q: Optional[str] = None
    languages: List[str] = Field(default_factory=list)
    list_id: Union[int, Literal["none"], None] = None
    tag: Optional[str] = None
    collection: Optional[str] = None
    sort: SortKey = SortKey.STARRED
    limit: int = DEFAULT_LIMIT
    offset: int = 0

    @field_validator("q", "tag", "collection", mode="before")
    @classmethod
    def _blank_to_none(cls, value):
        if value is None:
            return None
        value = str(value).strip()
        return value or None

    @field_validator("languages", mode="before")
    @classmethod
    def _split_languages(cls, value):
        if value is None:
            return []
        if isinstance(value, str):
            value = value.split(",")
        return [str(v).strip() for v in value if v is not None and str(v).strip()]

    @field_validator("list_id", mode="before")
    @classmethod
    def _list_sentinel(cls, value):
        if value is None or value == "":
            return None
        if isinstance(value, str) and value.strip().lower() == NO_LIST:
            return NO_LIST
        return value

    @field_validator("sort", mode="before")
    @classmethod
    def _known_sort(cls, value):
        try:
            return SortKey(str(value).lower())
        except ValueError:
            return SortKey.STARRED

    @field_validator("limit", mode="before")
    @classmethod
    def _clamp_limit(cls, value):
        return min(MAX_LIMIT, max(MIN_LIMIT, _coerce_int(value, DEFAULT_LIMIT)))

    @field_validator("offset", mode="before")
    @classmethod
    def _clamp_offset(cls, value):
        return max(0, _coerce_int(value, 0))

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "StarQuery":
        """Build from request-style parameters, e.g. ``{"language": "Go,Rust"}``."""
        data = dict(params)
        if "language" in data and "languages" not in data:
            data["languages"] = data.pop("language")
        try:
            return cls.model_validate(data)
        except PydanticValidationError as exc:
            raise ValidationError(str(exc)) from exc


class FilterBuilder:
    """Accumulates WHERE predicates, ANDed together.

    Every user-supplied value ends up as a bound parameter of a predicate,
    never as SQL text.
    """

    def __init__(self):
        self._clauses: list[ColumnElement[bool]] = []

    def add(self, clause: ColumnElement[bool]) -> "FilterBuilder":
        self._clauses.append(clause)
        return self

    def __len__(self) -> int:
        return len(self._clauses)

    def clause(self) -> ColumnElement[bool]:
        if not self._clauses:
            return true()
        return and_(*self._clauses)


def has_tag(tag: str) -> ColumnElement[bool]:
    """Case-sensitive test that ``tag`` is one element of the membership's tag array."""
    if dialect_name() == "postgresql":
        return cast(Membership.tags, JSONB).contains([tag])
    elements = func.json_each(Membership.tags).table_valued("value")
    return exists(select(1).select_from(elements).where(elements.c.value == tag))


def build_filters(user_id: str, params: StarQuery) -> FilterBuilder:
    filters = FilterBuilder().add(Membership.user_id == user_id)

    if params.q:
        pattern = f"%{escape_like(params.q)}%"
        filters.add(
            or_(
                RepoCacheEntry.name.ilike(pattern, escape=LIKE_ESCAPE),
                RepoCacheEntry.full_name.ilike(pattern, escape=LIKE_ESCAPE),
                RepoCacheEntry.description.ilike(pattern, escape=LIKE_ESCAPE),
            )
        )

    if params.languages:
        filters.add(RepoCacheEntry.language.in_(params.languages))

    if params.list_id == NO_LIST:
        filters.add(Membership.list_id.is_(None))
    elif params.list_id is not None:
        filters.add(Membership.list_id == params.list_id)

    if params.tag:
        filters.add(has_tag(params.tag))

    if params.collection:
        in_collection = (
            select(CollectionRepo.repo_id)
            .join(Collection, Collection.id == CollectionRepo.collection_id)
            .where(Collection.user_id == user_id, Collection.slug == params.collection)
        )
        filters.add(Membership.repo_id.in_(in_collection))

    return filters


_ORDERINGS = {
    SortKey.STARRED: (Membership.starred_at.desc(),),
    SortKey.STARS: (RepoCacheEntry.stargazers_count.desc(),),
    SortKey.UPDATED: (RepoCacheEntry.repo_updated_at.desc().nulls_last(),),
    SortKey.NAME: (func.lower(RepoCacheEntry.name).asc(),),
}


def order_by(sort: SortKey) -> tuple:
    # repo id breaks ties so pages are deterministic
    return _ORDERINGS[sort] + (RepoCacheEntry.id.asc(),)


def _view(membership: Membership, repo: RepoCacheEntry) -> StarredRepoView:
    return StarredRepoView(
        **RepoOut.model_validate(repo).model_dump(),
        list_id=membership.list_id,
        tags=list(membership.tags),
        notes=membership.notes,
        starred_at=membership.starred_at,
    )


def language_facet(session: Session, user_id: str) -> list[LanguageFacet]:
    count = func.count(Membership.repo_id)
    stmt = (
        select(RepoCacheEntry.language, count)
        .join(Membership, Membership.repo_id == RepoCacheEntry.id)
        .where(
            Membership.user_id == user_id,
            RepoCacheEntry.language.is_not(None),
            RepoCacheEntry.language != "",
        )
        .group_by(RepoCacheEntry.language)
        .order_by(count.desc(), RepoCacheEntry.language)
    )
    return [LanguageFacet(language=lang, count=n) for lang, n in session.execute(stmt)]


def list_facet(session: Session, user_id: str) -> list[ListFacet]:
    """Every list of the user with its assigned-repo count, in list order."""
    count = func.count(Membership.repo_id)
    stmt = (
        select(UserList.id, UserList.name, UserList.color, UserList.icon, UserList.position, count)
        .outerjoin(
            Membership,
            and_(Membership.list_id == UserList.id, Membership.user_id == user_id),
        )
        .where(UserList.user_id == user_id)
        .group_by(UserList.id, UserList.name, UserList.color, UserList.icon, UserList.position)
        .order_by(UserList.position, UserList.id)
    )
    return [
        ListFacet(id=id_, name=name, color=color, icon=icon, position=position, count=n)
        for id_, name, color, icon, position, n in session.execute(stmt)
    ]


def tag_facet(session: Session, user_id: str) -> list[TagFacet]:
    counter: Counter[str] = Counter()
    for tags in session.scalars(select(Membership.tags).where(Membership.user_id == user_id)):
        counter.update(set(tags))
    ranked = sorted(counter.items(), key=lambda item: (-item[1], item[0]))
    return [TagFacet(tag=tag, count=n) for tag, n in ranked]


def compute_facets(session: Session, user_id: str) -> Facets:
    return Facets(
        languages=language_facet(session, user_id),
        lists=list_facet(session, user_id),
        tags=tag_facet(session, user_id),
    )


def query_stars(user_id: str, params: StarQuery | None = None, **kwargs: Any) -> QueryResult:
    """One page of the user's stars matching ``params`` plus unfiltered facets.

    ``kwargs`` are accepted as a shorthand for ``StarQuery(**kwargs)``.
    """
    params = params or StarQuery.from_params(kwargs)
    where = build_filters(user_id, params).clause()
    joined = Membership.repo_id == RepoCacheEntry.id

    total_stmt = (
        select(func.count())
        .select_from(Membership)
        .join(RepoCacheEntry, joined)
        .where(where)
    )
    page_stmt = (
        select(Membership, RepoCacheEntry)
        .join(RepoCacheEntry, joined)
        .where(where)
        .order_by(*order_by(params.sort))
        .limit(params.limit)
        .offset(params.offset)
    )

    with session_scope() as s:
        total = s.scalar(total_stmt) or 0
        repos = [_view(m, r) for m, r in s.execute(page_stmt)]
        facets = compute_facets(s, user_id)

    logger.debug(
        f"Star query for {user_id}: {total} matches, returning {len(repos)} "
        f"(sort={params.sort.value}, offset={params.offset})"
    )
    return QueryResult(
        repos=repos,
        total=total,
        limit=params.limit,
        offset=params.offset,
        facets=facets,
    )
