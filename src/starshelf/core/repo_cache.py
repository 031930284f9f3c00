"""Cache-first repository lookups backed by the GitHub API."""
import logging

from starshelf.api.github_client import GithubClient
from starshelf.db import dal
from starshelf.errors import ValidationError
from starshelf.schemas import RepoOut

logger = logging.getLogger(__name__)


def parse_repo_id(raw: str | int) -> int:
    """Numeric repo id from user input; anything else is a validation error."""
    try:
        repo_id = int(str(raw).strip())
    except ValueError:
        raise ValidationError(f"Invalid repo id: {raw!r}") from None
    if repo_id <= 0:
        raise ValidationError(f"Invalid repo id: {raw!r}")
    return repo_id


def split_full_name(full_name: str) -> tuple[str, str]:
    owner, sep, name = full_name.strip().partition("/")
    if not sep or not owner or not name or "/" in name:
        raise ValidationError("Expected a repository name of the form owner/repo")
    return owner, name


async def resolve_repo_id(owner: str, name: str, gh: GithubClient) -> int | None:
    """Map ``owner/name`` to the upstream numeric id.

    The cache is consulted first (case-insensitive); on a miss the repo is
    fetched and upserted. Returns ``None`` when GitHub does not know it.
    """
    cached = dal.find_repository_by_full_name(f"{owner}/{name}")
    if cached:
        return cached.id

    record = await gh.get_repo(owner, name)
    if record is None:
        logger.info(f"Repository {owner}/{name} not found upstream")
        return None

    dal.upsert_repository(record)
    return record.id


async def get_repo(repo_id: int, gh: GithubClient) -> RepoOut | None:
    """Cached repo by id, fetched and cached on a miss; ``None`` if unknown."""
    cached = dal.get_repository(repo_id)
    if cached:
        return cached

    record = await gh.get_repo_by_id(repo_id)
    if record is None:
        return None

    dal.upsert_repository(record)
    return dal.get_repository(record.id)
