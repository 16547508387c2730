"""Identity resolution, session dependencies and linking tokens."""
