"""Persistence: models, engine/session, repositories."""
