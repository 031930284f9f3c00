import pytest

from starshelf.core import repo_cache
from starshelf.db import dal
from starshelf.errors import ValidationError


@pytest.mark.parametrize("raw, expected", [("42", 42), (" 7 ", 7), (9, 9)])
def test_parse_repo_id(raw, expected):
    assert repo_cache.parse_repo_id(raw) == expected


@pytest.mark.parametrize("raw", ["abc", "", "0", "-3", "1.5"])
def test_parse_repo_id_rejects(raw):
    with pytest.raises(ValidationError):
        repo_cache.parse_repo_id(raw)


def test_split_full_name():
    assert repo_cache.split_full_name("octo/widget") == ("octo", "widget")
    for bad in ("widget", "/widget", "octo/", "a/b/c"):
        with pytest.raises(ValidationError):
            repo_cache.split_full_name(bad)


@pytest.mark.asyncio
async def test_resolve_uses_cache_first(make_repo, fake_github):
    dal.upsert_repository(make_repo(11, owner="Octo", name="Widget"))
    gh = fake_github()

    assert await repo_cache.resolve_repo_id("octo", "widget", gh) == 11
    assert gh.lookups == []


@pytest.mark.asyncio
async def test_resolve_fetches_and_caches_on_miss(make_repo, fake_github):
    gh = fake_github([make_repo(12, name="gadget")])

    assert await repo_cache.resolve_repo_id("octo", "gadget", gh) == 12
    assert gh.lookups == ["octo/gadget"]
    assert dal.get_repository(12).name == "gadget"


@pytest.mark.asyncio
async def test_resolve_unknown_repo(fake_github):
    gh = fake_github()
    assert await repo_cache.resolve_repo_id("octo", "missing", gh) is None
    assert dal.find_repository_by_full_name("octo/missing") is None


@pytest.mark.asyncio
async def test_get_repo(make_repo, fake_github):
    gh = fake_github([make_repo(13)])

    assert (await repo_cache.get_repo(13, gh)).id == 13
    assert (await repo_cache.get_repo(13, gh)).id == 13
    assert gh.lookups == [13]
    assert await repo_cache.get_repo(99, gh) is None
