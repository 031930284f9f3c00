import pytest

from starshelf.core.query import query_stars
from starshelf.errors import NotFoundError, ValidationError
from starshelf.managers import lists


def test_create_appends_positions(user_id):
    first = lists.create_list(user_id, "  Reading  ")
    second = lists.create_list(user_id, "Tools", color="#ff0000", icon="wrench")

    assert (first.name, first.position, first.color) == ("Reading", 0, "#6366f1")
    assert (second.position, second.color, second.icon) == (1, "#ff0000", "wrench")
    assert [l.id for l in lists.get_lists(user_id)] == [first.id, second.id]


def test_positions_are_per_user_and_keep_gaps(user_id, other_user_id):
    a = lists.create_list(user_id, "A")
    lists.create_list(user_id, "B")
    assert lists.create_list(other_user_id, "Theirs").position == 0

    lists.delete_list(user_id, a.id)
    assert lists.create_list(user_id, "C").position == 2


def test_create_requires_name(user_id):
    with pytest.raises(ValidationError):
        lists.create_list(user_id, "   ")


def test_update_and_rename(user_id, other_user_id):
    row = lists.create_list(user_id, "Old")
    assert lists.rename_list(user_id, row.id, "New").name == "New"
    assert lists.update_list(user_id, row.id, color="#000", description="d").color == "#000"
    assert lists.update_list(other_user_id, row.id, name="Hijack") is None

    with pytest.raises(ValidationError):
        lists.update_list(user_id, row.id)
    with pytest.raises(ValidationError):
        lists.update_list(user_id, row.id, slug="custom")


def test_reorder(user_id):
    a, b, c = (lists.create_list(user_id, n) for n in "ABC")
    reordered = lists.reorder_lists(user_id, [c.id, a.id])
    assert [(l.name, l.position) for l in reordered] == [("C", 0), ("A", 1), ("B", 2)]

    with pytest.raises(NotFoundError):
        lists.reorder_lists(user_id, [9999])


def test_delete_unassigns_repos(user_id, make_repo, star):
    star(user_id, [make_repo(1)])
    row = lists.create_list(user_id, "Doomed")
    lists.assign_list(user_id, 1, row.id)

    assert lists.delete_list(user_id, row.id) is True
    assert lists.delete_list(user_id, row.id) is False
    assert query_stars(user_id).repos[0].list_id is None


def test_assign_checks_ownership(user_id, other_user_id, make_repo, star):
    star(user_id, [make_repo(1)])
    theirs = lists.create_list(other_user_id, "Theirs")
    mine = lists.create_list(user_id, "Mine")

    with pytest.raises(NotFoundError):
        lists.assign_list(user_id, 1, theirs.id)
    with pytest.raises(NotFoundError):
        lists.assign_list(user_id, 42, mine.id)

    assert lists.assign_list(user_id, 1, mine.id) == mine.id
    assert lists.assign_list(user_id, 1, None) is None


def test_share_keeps_slug(user_id):
    row = lists.create_list(user_id, "My Awesome List!!")

    shared = lists.toggle_share(user_id, row.id)
    assert shared.is_public is True
    assert shared.slug.startswith("my-awesome-list-")

    unshared = lists.toggle_share(user_id, row.id)
    assert unshared.is_public is False
    assert unshared.slug == shared.slug

    assert lists.toggle_share(user_id, row.id).slug == shared.slug
    assert lists.toggle_share("nobody", row.id) is None


def test_public_list(user_id, make_repo, star):
    star(user_id, [make_repo(1, starred_days=1), make_repo(2, starred_days=2), make_repo(3)])
    row = lists.create_list(user_id, "Public")
    lists.assign_list(user_id, 1, row.id)
    lists.assign_list(user_id, 2, row.id)
    slug = lists.toggle_share(user_id, row.id).slug

    public = lists.get_public_list(slug)
    assert public.list.name == "Public"
    assert public.owner.username == "octocat"
    assert [r.id for r in public.repos] == [2, 1]

    lists.toggle_share(user_id, row.id)
    assert lists.get_public_list(slug) is None
    assert lists.get_public_list("no-such-slug") is None
