"""Event logging and request timing."""
