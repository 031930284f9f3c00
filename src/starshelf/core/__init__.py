from .differ import MembershipDiff, diff_memberships
from .query import FilterBuilder, SortKey, StarQuery, query_stars
from .sync import StarSync, sync_stars

__all__ = [
    "FilterBuilder",
    "MembershipDiff",
    "SortKey",
    "StarQuery",
    "StarSync",
    "diff_memberships",
    "query_stars",
    "sync_stars",
]
