import pytest

from starshelf.errors import UnauthorizedError
from starshelf.managers import users


def test_sign_in_creates_then_refreshes():
    users.sign_in(users.Identity(user_id="7", username="old", avatar_url="a"))
    refreshed = users.sign_in(users.Identity(user_id="7", username="new"))

    assert (refreshed.username, refreshed.avatar_url) == ("new", None)
    assert users.get_user("7").username == "new"
    assert users.get_user("8") is None


def test_require_token():
    with pytest.raises(UnauthorizedError):
        users.Identity(user_id="7", username="x").require_token()
    assert users.Identity(user_id="7", username="x", access_token="t").require_token() == "t"


@pytest.mark.asyncio
async def test_identity_needs_token(fake_github):
    with pytest.raises(UnauthorizedError):
        await users.identity_from_token(None, fake_github())
