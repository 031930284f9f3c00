"""Mirror your GitHub stars locally and organize them with lists, tags and collections."""

__version__ = "0.1.0"
