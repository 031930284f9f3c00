from dotenv import load_dotenv
import os
import pytest
import vcr
from starshelf.api import GithubClient
from starshelf.core.sync import StarSync
from starshelf.db import dal
from starshelf.managers import users

load_dotenv()

TOKEN = os.getenv("GITHUB_TOKEN")
pytestmark = pytest.mark.skipif(not TOKEN, reason="GITHUB_TOKEN not set")

my_vcr = vcr.VCR(
    path_transformer=vcr.VCR.ensure_suffix(".yaml"),
    filter_headers=["authorization"],
)


@my_vcr.use_cassette("sync_twice.yaml")
@pytest.mark.asyncio
async def test_sync_twice():
    async with GithubClient(TOKEN) as gh:
        identity = await users.identity_from_token(TOKEN, gh)
        users.sign_in(identity)
        first = await StarSync(identity.user_id, gh).run()
        second = await StarSync(identity.user_id, gh).run()

    assert first.total_repos == dal.count_memberships(identity.user_id)
    assert len(first.added) == first.total_repos
    assert second.added == [] and second.removed == []
