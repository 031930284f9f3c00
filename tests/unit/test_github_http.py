import asyncio
from contextlib import asynccontextmanager

import pytest
from aiohttp import test_utils, web

from starshelf.api.github_client import GithubAbuseRateLimitError, GithubClient
from starshelf.core.sync import StarSync
from starshelf.db import dal
from starshelf.errors import SyncError, UpstreamError


def _raw(repo_id: int) -> dict:
    return {
        "id": repo_id,
        "name": f"repo-{repo_id}",
        "full_name": f"octo/repo-{repo_id}",
        "owner": {"login": "octo", "avatar_url": None},
        "html_url": f"https://github.com/octo/repo-{repo_id}",
        "stargazers_count": 1,
        "topics": ["x"],
    }


def _starred(repo_id: int) -> dict:
    return {"starred_at": "2024-01-01T00:00:00Z", "repo": _raw(repo_id)}


@asynccontextmanager
async def github_stub(*routes, timeout=None):
    """A GithubClient talking to a local aiohttp app serving ``routes``."""
    app = web.Application()
    for path, handler in routes:
        app.router.add_get(path, handler)
    server = test_utils.TestServer(app)
    await server.start_server()
    try:
        async with GithubClient(
            "t0ken", base_url=str(server.make_url("/")), timeout=timeout
        ) as gh:
            yield gh
    finally:
        await server.close()


def starred_listing(total: int, requests: list):
    """Serve ``total`` stars the way GitHub pages them (at most 100 per page)."""

    async def handler(request):
        requests.append(request)
        per_page = min(int(request.query["per_page"]), 100)
        page = int(request.query["page"])
        start = (page - 1) * per_page
        ids = range(start + 1, min(start + per_page, total) + 1)
        return web.json_response(
            [_starred(i) for i in ids],
            headers={"ETag": f'"page-{page}"'},
        )

    return handler


def fixed(status: int, body=None, *, headers=None, text=None):
    async def handler(request):
        if text is not None:
            return web.Response(status=status, text=text, headers=headers)
        return web.json_response(body, status=status, headers=headers)

    return handler


@pytest.mark.asyncio
async def test_listing_sends_validator_on_first_page_only():
    requests = []
    async with github_stub(("/user/starred", starred_listing(3, requests))) as gh:
        listing = await gh.fetch_all_starred(etag='"old"', per_page=2)

    assert [r.id for r in listing.repos] == [1, 2, 3]
    assert all(r.starred_at is not None for r in listing.repos)
    assert listing.etag == '"page-1"'
    assert [r.headers.get("If-None-Match") for r in requests] == ['"old"', None]
    assert requests[0].headers["Accept"] == "application/vnd.github.star+json"
    assert requests[0].headers["Authorization"] == "Bearer t0ken"
    assert requests[0].query["sort"] == "created"


@pytest.mark.asyncio
async def test_page_size_is_capped_to_upstream_maximum():
    requests = []
    async with github_stub(("/user/starred", starred_listing(250, requests))) as gh:
        listing = await gh.fetch_all_starred(per_page=200)

    assert len(listing.repos) == 250
    assert [r.query["page"] for r in requests] == ["1", "2", "3"]
    assert {r.query["per_page"] for r in requests} == {"100"}


@pytest.mark.asyncio
async def test_not_modified_listing():
    requests = []

    async def handler(request):
        requests.append(request)
        if request.headers.get("If-None-Match") == '"same"':
            return web.Response(status=304)
        return web.json_response([])

    async with github_stub(("/user/starred", handler)) as gh:
        listing = await gh.fetch_all_starred(etag='"same"')

    assert listing.not_modified is True
    assert listing.etag == '"same"'
    assert len(requests) == 1


@pytest.mark.asyncio
async def test_missing_repo_is_none():
    not_found = fixed(404, {"message": "Not Found"})
    async with github_stub(
        ("/repos/{owner}/{name}", not_found), ("/repositories/{repo_id}", not_found)
    ) as gh:
        assert await gh.get_repo("octo", "gone") is None
        assert await gh.get_repo_by_id(404) is None


@pytest.mark.asyncio
async def test_repo_lookup():
    async with github_stub(("/repositories/{repo_id}", fixed(200, _raw(9)))) as gh:
        repo = await gh.get_repo_by_id(9)
    assert (repo.id, repo.owner.login, repo.topics) == (9, "octo", ["x"])


@pytest.mark.asyncio
async def test_secondary_rate_limit():
    handler = fixed(
        403,
        {"message": "You have exceeded a secondary rate limit."},
        headers={"Retry-After": "30"},
    )
    async with github_stub(("/user", handler)) as gh:
        with pytest.raises(GithubAbuseRateLimitError) as err:
            await gh.get_authenticated_user()
    assert (err.value.retry_after, err.value.status) == (30, 403)


@pytest.mark.asyncio
async def test_too_many_requests_with_retry_after():
    handler = fixed(429, text="slow down", headers={"Retry-After": "5"})
    async with github_stub(("/user", handler)) as gh:
        with pytest.raises(GithubAbuseRateLimitError) as err:
            await gh.get_authenticated_user()
    assert (err.value.retry_after, err.value.status) == (5, 429)


@pytest.mark.asyncio
async def test_primary_rate_limit_exhausted():
    handler = fixed(
        403,
        {"message": "API rate limit exceeded for user."},
        headers={"X-RateLimit-Remaining": "0"},
    )
    async with github_stub(("/user", handler)) as gh:
        with pytest.raises(UpstreamError) as err:
            await gh.get_authenticated_user()
    assert not isinstance(err.value, GithubAbuseRateLimitError)
    assert err.value.status == 403


@pytest.mark.asyncio
@pytest.mark.parametrize("status", [401, 403, 500, 502])
async def test_error_statuses_raise(status):
    async with github_stub(("/user", fixed(status, {"message": "nope"}))) as gh:
        with pytest.raises(UpstreamError) as err:
            await gh.get_authenticated_user()
    assert err.value.status == status


@pytest.mark.asyncio
async def test_timeout_is_upstream_error():
    async def slow(request):
        await asyncio.sleep(1)
        return web.json_response({})

    async with github_stub(("/user", slow), timeout=0.1) as gh:
        with pytest.raises(UpstreamError, match="timed out"):
            await gh.get_authenticated_user()


@pytest.mark.asyncio
async def test_connection_failure_is_upstream_error():
    async with GithubClient("t0ken", base_url="http://127.0.0.1:1") as gh:
        with pytest.raises(UpstreamError) as err:
            await gh.get_repo("octo", "widget")
    assert err.value.status is None


@pytest.mark.asyncio
async def test_malformed_record_is_upstream_error():
    async with github_stub(("/user/starred", fixed(200, [{"id": "not-a-number"}]))) as gh:
        with pytest.raises(UpstreamError, match="Malformed"):
            await gh.fetch_all_starred()


@pytest.mark.asyncio
async def test_malformed_listing_fails_sync_without_writes(user_id, make_repo, star):
    star(user_id, [make_repo(1)])
    async with github_stub(("/user/starred", fixed(200, [{"repo": {}, "starred_at": None}]))) as gh:
        with pytest.raises(SyncError):
            await StarSync(user_id, gh).run()

    assert dal.membership_ids(user_id) == [1]
