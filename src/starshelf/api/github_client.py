import aiohttp, asyncio
import logging
from datetime import datetime
from typing import Any, List, Optional
from pydantic import BaseModel, Field, ValidationError as PydanticValidationError, field_validator
from tenacity import (
    retry,
    stop_after_attempt,
    wait_exponential,
    retry_if_exception,
    RetryCallState,
)
from starshelf.config import get_settings
from starshelf.errors import UpstreamError
from .rate_limiting import RateLimiter

_SETTINGS = get_settings()

# Configure logging
logging.basicConfig(level=_SETTINGS.log_level)
logger = logging.getLogger(__name__)


class RepoOwner(BaseModel):
    login: str
    avatar_url: Optional[str] = None


class StarredRepo(BaseModel):
    """Repository record as returned by the GitHub REST API."""

    id: int
    name: str
    full_name: str
    owner: RepoOwner
    html_url: str
    description: Optional[str] = None
    language: Optional[str] = None
    stargazers_count: int = 0
    topics: List[str] = Field(default_factory=list)
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    # only present when listed with the star+json media type
    starred_at: Optional[datetime] = None

    @field_validator("topics", mode="before")
    @classmethod
    def _null_topics(cls, value):
        return value or []

    @classmethod
    def from_api(cls, item: dict[str, Any]) -> "StarredRepo":
        # application/vnd.github.star+json wraps each repo: {"starred_at", "repo"}
        if "repo" in item and "starred_at" in item:
            return cls.model_validate({**item["repo"], "starred_at": item["starred_at"]})
        return cls.model_validate(item)


class GithubUser(BaseModel):
    id: int
    login: str
    name: Optional[str] = None
    avatar_url: Optional[str] = None


class StarredPage(BaseModel):
    repos: List[StarredRepo] = Field(default_factory=list)
    etag: Optional[str] = None
    not_modified: bool = False


class StarredListing(BaseModel):
    """Every starred repo of the user, or a not-modified marker."""

    repos: List[StarredRepo] = Field(default_factory=list)
    etag: Optional[str] = None
    not_modified: bool = False


_ACCEPT = "application/vnd.github+json"
_ACCEPT_STAR = "application/vnd.github.star+json"
_API_VERSION = "2022-11-28"
MAX_PAGE_SIZE = 100  # larger per_page values are silently capped upstream

# global limiter shared by every client in the process
_limiter = RateLimiter(
    capacity=_SETTINGS.bucket_capacity,
    refill_per_hour=_SETTINGS.bucket_refill_per_hour,
)


class GithubAbuseRateLimitError(UpstreamError):
    """GitHub secondary (abuse) rate limit with a Retry-After hint."""

    def __init__(self, retry_after: int, status: int = 403):
        self.retry_after = retry_after
        super().__init__(
            f"GitHub abuse rate limit hit. Retry after {retry_after} seconds.",
            status=status,
        )


# --- Tenacity Callbacks ---
_backoff = wait_exponential(multiplier=1, min=2, max=10)


def log_retry(retry_state: RetryCallState):
    logger.warning(
        f"GitHub request failed ({retry_state.outcome.exception()}); attempt "
        f"{retry_state.attempt_number}, next try in {retry_state.next_action.sleep:.2f}s"
    )


def wait_strategy(retry_state: RetryCallState) -> float:
    """Honour Retry-After for abuse limits, back off exponentially otherwise."""
    exception = retry_state.outcome.exception()
    if isinstance(exception, GithubAbuseRateLimitError):
        return float(exception.retry_after)
    return _backoff(retry_state)


def is_transient(exc: BaseException) -> bool:
    """Abuse limits, transport errors and 5xx are worth another attempt."""
    if isinstance(exc, GithubAbuseRateLimitError):
        return True
    return isinstance(exc, UpstreamError) and (exc.status is None or exc.status >= 500)


def _parse_repo(item: Any) -> StarredRepo:
    try:
        return StarredRepo.from_api(item)
    except (PydanticValidationError, TypeError) as exc:
        raise UpstreamError(f"Malformed repository record from GitHub: {exc}") from exc


class GithubClient:
    """Minimal async wrapper around the GitHub REST API."""

    def __init__(
        self,
        token: str | None = None,
        *,
        base_url: str | None = None,
        timeout: float | None = None,
    ):
        self._headers = {
            "Accept": _ACCEPT,
            "X-GitHub-Api-Version": _API_VERSION,
            "User-Agent": "starshelf",
        }
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._base_url = (base_url or _SETTINGS.github_api_url).rstrip("/")
        self._timeout = aiohttp.ClientTimeout(
            total=timeout or _SETTINGS.github_timeout_seconds
        )
        self._session: aiohttp.ClientSession | None = None

    async def __aenter__(self):
        self._session = aiohttp.ClientSession(
            headers=self._headers, timeout=self._timeout
        )
        return self

    async def __aexit__(self, *exc):
        await self._session.close()  # type: ignore[union-attr]

    @retry(
        stop=stop_after_attempt(max(1, _SETTINGS.github_max_attempts)),
        wait=wait_strategy,
        retry=retry_if_exception(is_transient),
        before_sleep=log_retry,
        reraise=True,
    )
    async def _get(
        self,
        path: str,
        *,
        params: dict[str, Any] | None = None,
        headers: dict[str, str] | None = None,
    ) -> tuple[int, Any, str | None]:
        """GET ``path``; returns (status, json body, etag).

        304 and 404 come back as statuses with an empty body, every other
        error status raises.
        """
        url = f"{self._base_url}{path}"
        logger.debug(f"GET {url} params={params}")

        await _limiter.acquire()

        try:
            async with self._session.get(url, params=params, headers=headers) as resp:  # type: ignore[union-attr]
                etag = resp.headers.get("ETag")
                _limiter.observe(resp.headers.get("X-RateLimit-Remaining"))
                if resp.status in (304, 404):
                    return resp.status, None, etag

                if resp.status in (403, 429):
                    await self._raise_rate_limit(resp)

                if resp.status >= 400:
                    raise UpstreamError(
                        f"GitHub API error: {resp.status} for {path}", status=resp.status
                    )

                return resp.status, await resp.json(), etag
        except asyncio.TimeoutError as exc:
            raise UpstreamError(f"GitHub request timed out: {path}") from exc
        except aiohttp.ClientError as exc:
            raise UpstreamError(f"GitHub request failed: {exc}") from exc

    async def _raise_rate_limit(self, resp: aiohttp.ClientResponse) -> None:
        try:
            body_text = str(await resp.json()).lower()
        except aiohttp.ContentTypeError:
            body_text = (await resp.text()).lower()

        retry_after_header = resp.headers.get("Retry-After")
        if retry_after_header and (
            resp.status == 429 or "abuse" in body_text or "secondary rate limit" in body_text
        ):
            try:
                wait_seconds = int(retry_after_header)
            except ValueError:
                logger.error(f"Could not parse Retry-After header: {retry_after_header}")
            else:
                logger.warning(
                    f"GitHub abuse rate limit detected. Retry after {wait_seconds} seconds."
                )
                raise GithubAbuseRateLimitError(retry_after=wait_seconds, status=resp.status)

        if resp.headers.get("X-RateLimit-Remaining") == "0" or "rate limit" in body_text:
            raise UpstreamError("GitHub rate limit exhausted", status=resp.status)

    async def list_starred_page(
        self, *, page: int = 1, per_page: int = 100, etag: str | None = None
    ) -> StarredPage:
        """One page of the authenticated user's stars, newest first."""
        headers = {"Accept": _ACCEPT_STAR}
        if etag:
            headers["If-None-Match"] = etag

        status, data, new_etag = await self._get(
            "/user/starred",
            params={
                "per_page": per_page,
                "page": page,
                "sort": "created",
                "direction": "desc",
            },
            headers=headers,
        )
        if status == 304:
            return StarredPage(etag=etag, not_modified=True)
        if status == 404 or not isinstance(data, list):
            raise UpstreamError(f"Unexpected starred listing response ({status})", status=status)

        return StarredPage(
            repos=[_parse_repo(item) for item in data],
            etag=new_etag,
        )

    async def fetch_all_starred(
        self, *, etag: str | None = None, per_page: int | None = None
    ) -> StarredListing:
        """Page through every star until GitHub returns a short page.

        Only the first request carries ``etag``; a 304 there means the whole
        listing is unchanged. Repos that shift across a page boundary while
        paging are kept once, at their first position.
        """
        per_page = min(per_page or _SETTINGS.github_page_size, MAX_PAGE_SIZE)
        repos: list[StarredRepo] = []
        seen: set[int] = set()
        listing_etag = None
        page_no = 1

        while True:
            page = await self.list_starred_page(
                page=page_no, per_page=per_page, etag=etag if page_no == 1 else None
            )
            if page.not_modified:
                logger.info("Starred listing not modified since last sync")
                return StarredListing(etag=etag, not_modified=True)
            if page_no == 1:
                listing_etag = page.etag

            for repo in page.repos:
                if repo.id not in seen:
                    seen.add(repo.id)
                    repos.append(repo)

            logger.info(f"Fetched starred page {page_no}: {len(page.repos)} repos")
            if len(page.repos) < per_page:
                break
            page_no += 1

        return StarredListing(repos=repos, etag=listing_etag)

    async def get_repo(self, owner: str, name: str) -> StarredRepo | None:
        status, data, _ = await self._get(f"/repos/{owner}/{name}")
        if status != 200:
            return None
        return _parse_repo(data)

    async def get_repo_by_id(self, repo_id: int) -> StarredRepo | None:
        status, data, _ = await self._get(f"/repositories/{repo_id}")
        if status != 200:
            return None
        return _parse_repo(data)

    async def get_authenticated_user(self) -> GithubUser:
        status, data, _ = await self._get("/user")
        if status != 200:
            raise UpstreamError("Could not resolve the authenticated GitHub user", status=status)
        try:
            return GithubUser.model_validate(data)
        except PydanticValidationError as exc:
            raise UpstreamError(f"Malformed user record from GitHub: {exc}") from exc
