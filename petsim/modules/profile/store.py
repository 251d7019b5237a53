"""
Profile persistence boundary for active effects.

The effect engine stores only *remaining* time per effect so a record
survives server restarts with an unrelated clock:

    {effect_id: {"timeRemaining": int, "usesRemaining": int, "appliedAt": int}}

`timeRemaining == -1` marks a permanent effect and `usesRemaining == -1`
unlimited uses.

`InMemoryProfileStore` is the reference implementation used by the server
bootstrap and the test-suite; a database-backed store only has to satisfy
`ProfileStore`.
"""

from __future__ import annotations

import copy
from typing import Any, Dict, Hashable, List, Mapping, Optional, Protocol, Set

from petsim.core.exceptions import PersistenceUnavailableError
from petsim.core.logging.logger import get_logger

logger = get_logger(__name__)

PersistedEffect = Dict[str, int]
PersistedEffectMap = Dict[str, PersistedEffect]

ACTIVE_EFFECTS_KEY = "active_effects"


class ProfileStore(Protocol):
    def get_active_effects(self, subject_id: Hashable) -> PersistedEffectMap:
        """Return the persisted effect map; raise PersistenceUnavailableError if not loaded."""
        ...

    def set_active_effects(self, subject_id: Hashable, effects: Mapping[str, PersistedEffect]) -> None:
        """Replace the persisted effect map; raise PersistenceUnavailableError if not loaded."""
        ...


class InMemoryProfileStore:
    """
    Profiles held in process memory.

    A profile must be loaded (session start) before its effects can be read or
    written, mirroring a session-locked profile service. Releasing a profile
    ends the session but keeps its data for the next load.
    """

    def __init__(self) -> None:
        self._profiles: Dict[Hashable, Dict[str, Any]] = {}
        self._loaded: Set[Hashable] = set()

    # ------------------------------------------------------------------ #
    # Session lifecycle
    # ------------------------------------------------------------------ #

    def load_profile(self, subject_id: Hashable, data: Optional[Mapping[str, Any]] = None) -> None:
        """Open a profile session; `data` replaces whatever was stored before."""
        if data is not None or subject_id not in self._profiles:
            profile = copy.deepcopy(dict(data or {}))
            profile.setdefault(ACTIVE_EFFECTS_KEY, {})
            self._profiles[subject_id] = profile
        self._loaded.add(subject_id)
        logger.debug("Profile loaded", extra={"subject_id": subject_id})

    def release_profile(self, subject_id: Hashable) -> bool:
        if subject_id not in self._loaded:
            return False
        self._loaded.discard(subject_id)
        logger.debug("Profile released", extra={"subject_id": subject_id})
        return True

    def is_loaded(self, subject_id: Hashable) -> bool:
        return subject_id in self._loaded

    def loaded_subjects(self) -> List[Hashable]:
        return list(self._loaded)

    def get_profile(self, subject_id: Hashable) -> Dict[str, Any]:
        """Stored profile data regardless of session state; empty if never loaded."""
        return copy.deepcopy(self._profiles.get(subject_id, {}))

    # ------------------------------------------------------------------ #
    # ProfileStore
    # ------------------------------------------------------------------ #

    def get_active_effects(self, subject_id: Hashable) -> PersistedEffectMap:
        if subject_id not in self._loaded:
            raise PersistenceUnavailableError(subject_id, "read")
        return copy.deepcopy(self._profiles[subject_id][ACTIVE_EFFECTS_KEY])

    def set_active_effects(self, subject_id: Hashable, effects: Mapping[str, PersistedEffect]) -> None:
        if subject_id not in self._loaded:
            raise PersistenceUnavailableError(subject_id, "write")
        self._profiles[subject_id][ACTIVE_EFFECTS_KEY] = copy.deepcopy(dict(effects))
