import re
import secrets

_NON_ALNUM = re.compile(r"[^a-z0-9]+")

SUFFIX_BYTES = 2  # 4 hex chars


def slugify(name: str) -> str:
    """Lowercase, collapse non-alphanumeric runs to '-', trim the ends."""
    return _NON_ALNUM.sub("-", name.lower()).strip("-")


def random_suffix() -> str:
    return secrets.token_hex(SUFFIX_BYTES)


def generate_slug(name: str) -> str:
    """Shareable slug: ``slugify(name)`` plus a short random suffix.

    >>> generate_slug("My Awesome List!!")  # doctest: +SKIP
    'my-awesome-list-3fa9'
    """
    base = slugify(name)
    suffix = random_suffix()
    return f"{base}-{suffix}" if base else suffix
