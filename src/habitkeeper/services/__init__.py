"""Service module exports."""

from . import auth, cache, engine, mutations, streaks, validation

__all__ = ["auth", "cache", "engine", "mutations", "streaks", "validation"]
