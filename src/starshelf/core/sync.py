import logging

from starshelf.api.github_client import GithubClient
from starshelf.config import get_settings
from starshelf.db import dal
from starshelf.db.models import utcnow
from starshelf.errors import SyncError, UpstreamError
from starshelf.schemas import RepoSummary, SyncSummary
from .differ import diff_memberships

_SETTINGS = get_settings()
logger = logging.getLogger(__name__)


class StarSync:
    """One synchronization pass of a user's GitHub stars into the local model.

    Fetches every page of stars, refreshes the shared repo cache, diffs the
    snapshot against the stored memberships and applies the diff in a single
    transaction. Nothing is retried here; a failed pass raises and leaves the
    memberships exactly as they were.
    """

    def __init__(
        self,
        user_id: str,
        gh: GithubClient,
        *,
        conditional: bool = False,
        page_size: int | None = None,
    ):
        self.user_id = user_id
        self.gh = gh
        self.conditional = conditional
        self.page_size = page_size or _SETTINGS.github_page_size

    async def run(self) -> SyncSummary:
        logger.info(f"Starting star sync for user {self.user_id}")
        etag = dal.get_sync_etag(self.user_id) if self.conditional else None

        try:
            listing = await self.gh.fetch_all_starred(etag=etag, per_page=self.page_size)
        except UpstreamError as exc:
            logger.error(f"Star sync for user {self.user_id} failed: {exc}", exc_info=True)
            raise SyncError(f"Fetching stars from GitHub failed: {exc}") from exc

        if listing.not_modified:
            logger.info(f"Stars of user {self.user_id} unchanged upstream")
            return SyncSummary(
                total_repos=dal.count_memberships(self.user_id),
                unchanged=True,
                synced_at=dal.get_last_synced_at(self.user_id),
            )

        fresh = listing.repos
        dal.upsert_repositories(fresh)

        current_ids = dal.membership_ids(self.user_id)
        diff = diff_memberships(fresh, current_ids)
        removed_summaries = dal.get_repo_summaries(diff.removed)

        synced_at = utcnow()
        dal.apply_membership_diff(
            self.user_id,
            diff.added,
            diff.removed,
            etag=listing.etag,
            synced_at=synced_at,
        )

        logger.info(
            f"Star sync for user {self.user_id} done: +{len(diff.added)} "
            f"-{len(diff.removed)}, {len(fresh)} total"
        )
        return SyncSummary(
            added=[
                RepoSummary(id=r.id, full_name=r.full_name, description=r.description)
                for r in diff.added
            ],
            removed=[
                removed_summaries.get(repo_id) or RepoSummary(id=repo_id, full_name="")
                for repo_id in diff.removed
            ],
            total_repos=len(fresh),
            unchanged=diff.unchanged,
            synced_at=synced_at,
        )


async def sync_stars(user_id: str, gh: GithubClient, *, conditional: bool = False) -> SyncSummary:
    return await StarSync(user_id, gh, conditional=conditional).run()
