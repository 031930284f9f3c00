from .github_client import (
    GithubAbuseRateLimitError,
    GithubClient,
    GithubUser,
    RepoOwner,
    StarredListing,
    StarredPage,
    StarredRepo,
)
from .rate_limiting import RateLimiter

__all__ = [
    "GithubAbuseRateLimitError",
    "GithubClient",
    "GithubUser",
    "RateLimiter",
    "RepoOwner",
    "StarredListing",
    "StarredPage",
    "StarredRepo",
]
