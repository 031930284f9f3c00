"""Pydantic result models returned by the core and the managers."""
from datetime import datetime
from typing import List, Optional
from pydantic import BaseModel, ConfigDict, Field


class _FromRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)


class UserOut(_FromRow):
    id: str
    username: str
    avatar_url: Optional[str] = None


class RepoOut(_FromRow):
    id: int
    name: str
    full_name: str
    owner_login: str
    owner_avatar: Optional[str] = None
    html_url: str
    description: Optional[str] = None
    language: Optional[str] = None
    stargazers_count: int = 0
    topics: List[str] = Field(default_factory=list)
    repo_created_at: Optional[datetime] = None
    repo_updated_at: Optional[datetime] = None


class RepoSummary(_FromRow):
    id: int
    full_name: str
    description: Optional[str] = None


class StarredRepoView(RepoOut):
    """A cached repo seen through one user's membership."""

    list_id: Optional[int] = None
    tags: List[str] = Field(default_factory=list)
    notes: Optional[str] = None
    starred_at: Optional[datetime] = None


class SyncSummary(BaseModel):
    added: List[RepoSummary] = Field(default_factory=list)
    removed: List[RepoSummary] = Field(default_factory=list)
    total_repos: int = 0
    unchanged: bool = False
    synced_at: Optional[datetime] = None


class LanguageFacet(BaseModel):
    language: str
    count: int


class ListFacet(BaseModel):
    id: int
    name: str
    color: str
    icon: Optional[str] = None
    position: int
    count: int


class TagFacet(BaseModel):
    tag: str
    count: int


class Facets(BaseModel):
    languages: List[LanguageFacet] = Field(default_factory=list)
    lists: List[ListFacet] = Field(default_factory=list)
    tags: List[TagFacet] = Field(default_factory=list)


class QueryResult(BaseModel):
    repos: List[StarredRepoView]
    total: int
    limit: int
    offset: int
    facets: Facets


class ListOut(_FromRow):
    id: int
    name: str
    color: str
    icon: Optional[str] = None
    description: Optional[str] = None
    position: int
    is_public: bool = False
    slug: Optional[str] = None
    created_at: Optional[datetime] = None


class ShareState(BaseModel):
    is_public: bool
    slug: Optional[str] = None


class PublicList(BaseModel):
    list: ListOut
    owner: UserOut
    repos: List[RepoOut]


class CollectionOut(_FromRow):
    id: int
    name: str
    slug: str
    description: Optional[str] = None
    created_at: Optional[datetime] = None


class CommentOut(BaseModel):
    id: int
    body: str
    created_at: datetime
    upvotes: int = 0
    downvotes: int = 0
    user_vote: Optional[int] = None
    user: UserOut


class LikeResult(BaseModel):
    liked: bool
    count: int


class VoteResult(BaseModel):
    comment_id: int
    user_vote: Optional[int] = None
    upvotes: int
    downvotes: int


class RepoDetail(BaseModel):
    repo: RepoOut
    like_count: int
    comment_count: int
    user_liked: bool = False
