import asyncio
import json
from contextlib import contextmanager
from typing import Any, List, Optional

import typer
from pydantic import BaseModel

from starshelf.api import GithubClient
from starshelf.categories import categorize
from starshelf.config import get_settings
from starshelf.core import repo_cache
from starshelf.core.query import MAX_LIMIT, StarQuery, query_stars
from starshelf.core.sync import StarSync
from starshelf.db import Base, engine
from starshelf.errors import StarshelfError
from starshelf.managers import collections, lists, social, tags, users

app = typer.Typer(help="Organize your GitHub stars.")
lists_app = typer.Typer(help="Manage lists.")
tags_app = typer.Typer(help="Tag starred repos.")
collections_app = typer.Typer(help="Manage collections.")
app.add_typer(lists_app, name="lists")
app.add_typer(tags_app, name="tags")
app.add_typer(collections_app, name="collections")

_SETTINGS = get_settings()

UserOption = typer.Option(None, "--user", envvar="STARSHELF_USER", help="GitHub user id.")
TokenOption = typer.Option(None, "--token", envvar="GITHUB_TOKEN", help="GitHub token.")


def _emit(value: Any) -> None:
    def plain(item: Any) -> Any:
        if isinstance(item, BaseModel):
            return item.model_dump(mode="json")
        if isinstance(item, list):
            return [plain(i) for i in item]
        if isinstance(item, dict):
            return {k: plain(v) for k, v in item.items()}
        return item

    typer.echo(json.dumps(plain(value), indent=2))


@contextmanager
def _errors():
    try:
        yield
    except StarshelfError as exc:
        typer.echo(f"error: {exc}", err=True)
        raise typer.Exit(code=1)


async def _identity(token: str | None) -> users.Identity:
    async with GithubClient(token) as gh:
        return await users.identity_from_token(token, gh)


def _user_id(user: str | None, token: str | None = None) -> str:
    if user:
        return user
    with _errors():
        identity = asyncio.run(_identity(token or _SETTINGS.github_token))
    return identity.user_id


@app.command("init-db")
def init_db():
    """Create the database schema."""
    Base.metadata.create_all(bind=engine())
    typer.echo("Schema created.")


@app.command()
def sync(
    token: Optional[str] = TokenOption,
    conditional: bool = typer.Option(False, help="Skip the pass if GitHub reports no change."),
):
    """Mirror your GitHub stars into the local database."""

    async def run():
        identity = await _identity(token or _SETTINGS.github_token)
        users.sign_in(identity)
        async with GithubClient(identity.require_token()) as gh:
            return await StarSync(identity.user_id, gh, conditional=conditional).run()

    with _errors():
        _emit(asyncio.run(run()))


@app.command()
def stars(
    user: Optional[str] = UserOption,
    q: Optional[str] = typer.Option(None, "--q", help="Search name, full name and description."),
    language: Optional[List[str]] = typer.Option(None, "--language"),
    list_id: Optional[str] = typer.Option(None, "--list", help="List id or 'none'."),
    tag: Optional[str] = None,
    collection: Optional[str] = None,
    sort: str = "starred",
    limit: int = 50,
    offset: int = 0,
):
    """Search and filter your starred repos."""
    with _errors():
        params = StarQuery.from_params(
            {
                "q": q,
                "languages": language or [],
                "list_id": list_id,
                "tag": tag,
                "collection": collection,
                "sort": sort,
                "limit": limit,
                "offset": offset,
            }
        )
        _emit(query_stars(_user_id(user), params))


@app.command()
def repo(ref: str, user: Optional[str] = UserOption):
    """Show a repo by numeric id or owner/name."""

    async def run():
        async with GithubClient(_SETTINGS.github_token) as gh:
            if "/" in ref:
                owner, name = repo_cache.split_full_name(ref)
                repo_id = await repo_cache.resolve_repo_id(owner, name, gh)
            else:
                repo_id = repo_cache.parse_repo_id(ref)
            if repo_id is None or await repo_cache.get_repo(repo_id, gh) is None:
                return None
            return social.get_repo_detail(repo_id, user)

    with _errors():
        detail = asyncio.run(run())
    if detail is None:
        typer.echo("Repository not found", err=True)
        raise typer.Exit(code=1)
    _emit(detail)


@app.command()
def categories(user: Optional[str] = UserOption):
    """Group your stars into keyword categories."""
    user_id = _user_id(user)
    repos = []
    offset = 0
    while True:
        page = query_stars(user_id, StarQuery(limit=MAX_LIMIT, offset=offset))
        repos.extend(page.repos)
        offset += len(page.repos)
        if not page.repos or offset >= page.total:
            break
    _emit({slug: [r.full_name for r in found] for slug, found in categorize(repos).items()})


# --- lists ---
@lists_app.command("ls")
def lists_ls(user: Optional[str] = UserOption):
    _emit(lists.get_lists(_user_id(user)))


@lists_app.command("create")
def lists_create(
    name: str,
    color: Optional[str] = None,
    icon: Optional[str] = None,
    description: Optional[str] = None,
    user: Optional[str] = UserOption,
):
    with _errors():
        _emit(lists.create_list(_user_id(user), name, color, icon, description))


@lists_app.command("rename")
def lists_rename(list_id: int, name: str, user: Optional[str] = UserOption):
    with _errors():
        _emit(lists.rename_list(_user_id(user), list_id, name))


@lists_app.command("delete")
def lists_delete(list_id: int, user: Optional[str] = UserOption):
    _emit({"deleted": lists.delete_list(_user_id(user), list_id)})


@lists_app.command("share")
def lists_share(list_id: int, user: Optional[str] = UserOption):
    """Toggle public sharing of a list."""
    _emit(lists.toggle_share(_user_id(user), list_id))


@lists_app.command("reorder")
def lists_reorder(list_ids: List[int], user: Optional[str] = UserOption):
    with _errors():
        _emit(lists.reorder_lists(_user_id(user), list_ids))


@lists_app.command("assign")
def lists_assign(repo_id: int, list_id: str, user: Optional[str] = UserOption):
    """Assign a starred repo to a list ('none' to unassign)."""
    if list_id.lower() == "none":
        target = None
    elif list_id.isdigit():
        target = int(list_id)
    else:
        typer.echo("list id must be a number or 'none'", err=True)
        raise typer.Exit(code=1)
    with _errors():
        _emit({"repo_id": repo_id, "list_id": lists.assign_list(_user_id(user), repo_id, target)})


@lists_app.command("public")
def lists_public(slug: str):
    """Show a publicly shared list."""
    found = lists.get_public_list(slug)
    if found is None:
        typer.echo("List not found", err=True)
        raise typer.Exit(code=1)
    _emit(found)


# --- tags & notes ---
@tags_app.command("add")
def tags_add(repo_id: int, tag: str, user: Optional[str] = UserOption):
    with _errors():
        _emit(tags.add_tag(_user_id(user), repo_id, tag))


@tags_app.command("remove")
def tags_remove(repo_id: int, tag: str, user: Optional[str] = UserOption):
    with _errors():
        _emit(tags.remove_tag(_user_id(user), repo_id, tag))


@app.command()
def notes(repo_id: int, text: str, user: Optional[str] = UserOption):
    """Set the notes of a starred repo (empty text clears them)."""
    with _errors():
        _emit({"repo_id": repo_id, "notes": tags.set_notes(_user_id(user), repo_id, text)})


# --- collections ---
@collections_app.command("ls")
def collections_ls(user: Optional[str] = UserOption):
    _emit(collections.get_collections(_user_id(user)))


@collections_app.command("create")
def collections_create(
    name: str, description: Optional[str] = None, user: Optional[str] = UserOption
):
    with _errors():
        _emit(collections.create_collection(_user_id(user), name, description))


@collections_app.command("delete")
def collections_delete(slug: str, user: Optional[str] = UserOption):
    _emit({"deleted": collections.delete_collection(_user_id(user), slug)})


@collections_app.command("add")
def collections_add(slug: str, repo_id: int, user: Optional[str] = UserOption):
    with _errors():
        collections.add_repo_to_collection(_user_id(user), slug, repo_id)
        _emit({"slug": slug, "repo_id": repo_id, "added": True})


@collections_app.command("remove")
def collections_remove(slug: str, repo_id: int, user: Optional[str] = UserOption):
    with _errors():
        removed = collections.remove_repo_from_collection(_user_id(user), slug, repo_id)
        _emit({"slug": slug, "repo_id": repo_id, "removed": removed})


@collections_app.command("repos")
def collections_repos(slug: str, user: Optional[str] = UserOption):
    _emit(collections.get_collection_repo_ids(_user_id(user), slug))


# --- social ---
@app.command()
def like(repo_id: int, user: Optional[str] = UserOption):
    """Toggle your like on a repo."""
    _emit(social.toggle_like(_user_id(user), repo_id))


@app.command()
def comment(repo_id: int, body: str, user: Optional[str] = UserOption):
    with _errors():
        _emit(social.add_comment(_user_id(user), repo_id, body))


@app.command()
def comments(repo_id: int, user: Optional[str] = UserOption):
    _emit(social.get_comments(repo_id, user))


@app.command()
def vote(comment_id: int, direction: str, user: Optional[str] = UserOption):
    """Vote 'up' or 'down' on a comment; repeating a vote clears it."""
    value = {"up": 1, "down": -1}.get(direction.lower())
    if value is None:
        typer.echo("direction must be 'up' or 'down'", err=True)
        raise typer.Exit(code=1)
    with _errors():
        _emit(social.vote_comment(_user_id(user), comment_id, value))


if __name__ == "__main__":
    app()
