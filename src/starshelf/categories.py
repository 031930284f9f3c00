"""Keyword-based grouping of repos into broad topic categories."""
from collections.abc import Iterable
from dataclasses import dataclass
from typing import Protocol, Sequence, TypeVar

UNCATEGORIZED = "uncategorized"


class _RepoLike(Protocol):
    name: str
    description: str | None
    topics: list[str]


R = TypeVar("R", bound=_RepoLike)


@dataclass(frozen=True)
class Category:
    name: str
    slug: str
    keywords: tuple[str, ...]

    def matches(self, repo: _RepoLike) -> bool:
        text = f"{repo.name} {repo.description or ''} {' '.join(repo.topics)}".lower()
        return any(keyword in text for keyword in self.keywords)


CATEGORIES: tuple[Category, ...] = (
    Category(
        "AI / ML",
        "ai-ml",
        ("machine-learning", "deep-learning", "ai", "llm", "gpt", "neural", "ml", "nlp",
         "transformer", "diffusion"),
    ),
    Category(
        "DevOps",
        "devops",
        ("devops", "ci-cd", "docker", "kubernetes", "k8s", "terraform", "ansible", "helm",
         "monitoring", "observability"),
    ),
    Category(
        "Frontend",
        "frontend",
        ("react", "vue", "svelte", "angular", "frontend", "css", "ui-component", "tailwind",
         "nextjs"),
    ),
    Category(
        "Backend",
        "backend",
        ("api", "backend", "server", "rest", "graphql", "microservice", "database", "orm"),
    ),
    Category(
        "CLI Tools",
        "cli-tools",
        ("cli", "terminal", "command-line", "shell", "bash", "zsh"),
    ),
    Category(
        "Security",
        "security",
        ("security", "authentication", "encryption", "vulnerability", "pentest", "owasp"),
    ),
    Category(
        "Data",
        "data",
        ("data", "analytics", "visualization", "pandas", "sql", "etl", "pipeline", "streaming"),
    ),
    Category(
        "Learning",
        "learning",
        ("tutorial", "learn", "course", "awesome", "guide", "cheatsheet", "interview",
         "algorithm"),
    ),
    Category(
        "Self-Hosted",
        "self-hosted",
        ("self-hosted", "selfhosted", "homelab", "home-server", "docker-compose"),
    ),
)


def categorize(
    repos: Iterable[R], categories: Sequence[Category] = CATEGORIES
) -> dict[str, list[R]]:
    """Bucket repos by category slug; a repo may land in several buckets.

    Repos matching no category go to ``"uncategorized"``. Matching is plain
    substring search, so ``"ai"`` also matches inside ``"email"``.
    """
    repos = list(repos)
    result: dict[str, list[R]] = {c.slug: [r for r in repos if c.matches(r)] for c in categories}
    result[UNCATEGORIZED] = [r for r in repos if not any(c.matches(r) for c in categories)]
    return result
