"""Profile persistence boundary."""

from .store import (
    ACTIVE_EFFECTS_KEY,
    InMemoryProfileStore,
    PersistedEffect,
    PersistedEffectMap,
    ProfileStore,
)

__all__ = [
    "ACTIVE_EFFECTS_KEY",
    "InMemoryProfileStore",
    "PersistedEffect",
    "PersistedEffectMap",
    "ProfileStore",
]
