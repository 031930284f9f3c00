from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from starshelf.api.github_client import StarredRepo


@dataclass(slots=True)
class MembershipDiff:
    """Delta between the stored memberships and a fresh star snapshot."""

    added: list[StarredRepo] = field(default_factory=list)
    removed: list[int] = field(default_factory=list)

    @property
    def unchanged(self) -> bool:
        return not self.added and not self.removed


def diff_memberships(
    fresh: Sequence[StarredRepo], current_ids: Iterable[int]
) -> MembershipDiff:
    """Set difference in both directions, keyed by upstream repo id.

    ``fresh`` must be a complete snapshot: an empty one means everything was
    unstarred, so callers must not pass the result of a failed fetch.
    ``added`` follows the order of ``fresh``; ``removed`` the order of
    ``current_ids``.
    """
    current = list(dict.fromkeys(current_ids))
    current_set = set(current)
    fresh_ids = {repo.id for repo in fresh}

    added: list[StarredRepo] = []
    seen: set[int] = set()
    for repo in fresh:
        if repo.id in current_set or repo.id in seen:
            continue
        seen.add(repo.id)
        added.append(repo)

    removed = [repo_id for repo_id in current if repo_id not in fresh_ids]
    return MembershipDiff(added=added, removed=removed)
