import os
import tempfile

# Point the engine at a throwaway SQLite file before starshelf is imported
_DB_DIR = tempfile.mkdtemp(prefix="starshelf-tests-")
os.environ["DATABASE_URL"] = f"sqlite:///{os.path.join(_DB_DIR, 'starshelf.db')}"

from datetime import datetime, timedelta, timezone

import pytest

from starshelf.api import github_client
from starshelf.api.github_client import RepoOwner, StarredListing, StarredRepo
from starshelf.api.rate_limiting import RateLimiter
from starshelf.db import dal
from starshelf.db.engine import SessionLocal, engine
from starshelf.db.models import Base
from starshelf.managers import users

EPOCH = datetime(2024, 1, 1, tzinfo=timezone.utc)


def build_repo(
    repo_id: int,
    *,
    name: str | None = None,
    owner: str = "octo",
    description: str | None = None,
    language: str | None = "Python",
    stars: int = 0,
    topics: tuple[str, ...] = (),
    updated_days: int = 0,
    starred_days: int | None = None,
) -> StarredRepo:
    name = name or f"repo-{repo_id}"
    return StarredRepo(
        id=repo_id,
        name=name,
        full_name=f"{owner}/{name}",
        owner=RepoOwner(login=owner, avatar_url=f"https://avatars.githubusercontent.com/{owner}"),
        html_url=f"https://github.com/{owner}/{name}",
        description=description,
        language=language,
        stargazers_count=stars,
        topics=list(topics),
        created_at=EPOCH,
        updated_at=EPOCH + timedelta(days=updated_days),
        starred_at=None if starred_days is None else EPOCH + timedelta(days=starred_days),
    )


class FakeGithub:
    """Stands in for GithubClient; serves a fixed star listing."""

    def __init__(self, repos=(), *, error: Exception | None = None, etag: str = '"v1"'):
        self.repos = list(repos)
        self.error = error
        self.etag = etag
        self.not_modified = False
        self.listing_calls: list[str | None] = []
        self.lookups: list[object] = []

    async def fetch_all_starred(self, *, etag=None, per_page=None):
        self.listing_calls.append(etag)
        if self.error:
            raise self.error
        if self.not_modified and etag == self.etag:
            return StarredListing(etag=etag, not_modified=True)
        return StarredListing(repos=list(self.repos), etag=self.etag)

    async def get_repo(self, owner, name):
        self.lookups.append(f"{owner}/{name}")
        for repo in self.repos:
            if repo.full_name.lower() == f"{owner}/{name}".lower():
                return repo
        return None

    async def get_repo_by_id(self, repo_id):
        self.lookups.append(repo_id)
        return next((r for r in self.repos if r.id == repo_id), None)


@pytest.fixture(scope="session", autouse=True)
def create_db():
    # Re-create schema on a temp database
    Base.metadata.create_all(bind=engine())
    yield
    Base.metadata.drop_all(bind=engine())


@pytest.fixture(autouse=True)
def clean_database():
    """Clean all tables before each test."""
    with SessionLocal() as session:
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
    yield


@pytest.fixture(autouse=True)
def fresh_rate_limiter(monkeypatch):
    """Every test starts with a full request bucket of its own."""
    monkeypatch.setattr(
        github_client, "_limiter", RateLimiter(capacity=100, refill_per_hour=5000)
    )


@pytest.fixture
def make_repo():
    return build_repo


@pytest.fixture
def fake_github():
    return FakeGithub


@pytest.fixture
def user_id() -> str:
    users.sign_in(users.Identity(user_id="1001", username="octocat"))
    return "1001"


@pytest.fixture
def other_user_id() -> str:
    users.sign_in(users.Identity(user_id="2002", username="hubot"))
    return "2002"


@pytest.fixture
def star():
    """Store repos as starred by a user, bypassing the sync orchestrator."""

    def _star(user_id: str, repos: list[StarredRepo]) -> None:
        dal.upsert_repositories(repos)
        dal.apply_membership_diff(user_id, repos, [])

    return _star
