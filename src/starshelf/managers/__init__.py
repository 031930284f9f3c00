"""CRUD for the user-owned groupings and the social layer."""
