"""
EffectEngine: stacking, time-decaying effects for any kind of subject.

Purpose
-------
Maintains an EffectSet and AggregateTable per subject and keeps them in
sync through apply, remove, clear, tick and restore. The same engine serves
per-player subjects (keyed by player id) and the single global subject
(keyed by `GLOBAL_SUBJECT`).

Responsibilities
----------------
- Apply effects under their stacking policy (extend, reset-if-longer, none)
- Keep `aggregate[stat] == baseline(stat) + sum(active deltas)` after every change
- Count down non-permanent effects on tick and expire them
- Round-trip state through a ProfileStore using remaining time
- Expose read-only snapshots and synchronous change listeners

Error Handling
--------------
Public operations never raise. Unknown effects and invalid durations are
warnings with a `False` result, policy rejections are info, and a profile
store that cannot be reached is logged as an error while the in-memory
change is kept.

Dependencies
------------
- EffectCatalog (definitions, baselines, stacking config)
- ClockSource (server time)
- ProfileStore (optional write-through persistence)
"""

from __future__ import annotations

import math
from typing import (
    Callable,
    Dict,
    Generic,
    Hashable,
    Iterable,
    List,
    Mapping,
    Optional,
    Set,
    TypeVar,
)

from petsim.core.clock import ClockSource
from petsim.core.exceptions import PersistenceUnavailableError
from petsim.core.logging.logger import get_logger
from petsim.modules.effects.catalog import (
    PERMANENT,
    UNLIMITED,
    EffectCatalog,
    EffectConfig,
    StackingPolicy,
)
from petsim.modules.effects.models import (
    AggregateTable,
    EffectInstance,
    EffectSet,
    EffectSnapshot,
    SubjectState,
)
from petsim.modules.effects.stacking import stacked_multiplier
from petsim.modules.profile.store import PersistedEffectMap, ProfileStore

logger = get_logger(__name__)

K = TypeVar("K", bound=Hashable)

ChangeListener = Callable[[K], None]
ConfigResolver = Callable[[str], Optional[EffectConfig]]


def _is_valid_duration(duration: object) -> bool:
    if isinstance(duration, bool) or not isinstance(duration, int):
        return False
    return duration == PERMANENT or duration >= 0


class EffectEngine(Generic[K]):
    """
    Generic effect engine parameterized by subject key.

    Parameters
    ----------
    catalog:
        Shared effect definitions.
    clock:
        Source of `now()` for every timestamp the engine records.
    store:
        Optional profile store; every successful mutation is written through.
    name:
        Label used in logs ("player", "global").
    stat_names:
        Stats seeded with their baseline in each subject's aggregate table.
        Defaults to every stat with a configured baseline.
    enforce_stack_limit:
        Reject brand-new catalog effects once a subject has
        `max_stacked_effects` active.
    fallback_config:
        Resolves effect ids missing from the catalog when restoring from
        persistence (e.g. ad-hoc permanent grants).
    default_icon / default_reason:
        Snapshot fallbacks when an effect does not define them.
    """

    def __init__(
        self,
        catalog: EffectCatalog,
        clock: ClockSource,
        store: Optional[ProfileStore] = None,
        *,
        name: str = "effects",
        stat_names: Optional[Iterable[str]] = None,
        enforce_stack_limit: bool = True,
        fallback_config: Optional[ConfigResolver] = None,
        default_icon: Optional[str] = None,
        default_reason: Optional[str] = None,
    ) -> None:
        self._catalog = catalog
        self._clock = clock
        self._store = store
        self._name = name
        self._stat_names = tuple(stat_names) if stat_names is not None else None
        self._enforce_stack_limit = enforce_stack_limit
        self._fallback_config = fallback_config
        self._default_icon = default_icon or catalog.display.default_icon
        self._default_reason = default_reason

        self._subjects: Dict[K, SubjectState] = {}
        self._listeners: List[ChangeListener] = []
        self._suppressed: Set[K] = set()

    # ------------------------------------------------------------------ #
    # Subject lifecycle
    # ------------------------------------------------------------------ #

    def _new_state(self) -> SubjectState:
        seed = self._catalog.stat_baselines(self._stat_names)
        return SubjectState(
            effects=EffectSet(),
            aggregates=AggregateTable(seed, self._catalog.get_stat_baseline),
            created_at=self._clock.now(),
        )

    def _state_for_write(self, key: K) -> SubjectState:
        state = self._subjects.get(key)
        if state is None:
            state = self._new_state()
            self._subjects[key] = state
            logger.debug(
                "Subject state created lazily",
                extra={"engine": self._name, "subject_id": key},
            )
        return state

    def register_subject(self, key: K) -> None:
        if key not in self._subjects:
            self._subjects[key] = self._new_state()
            logger.debug("Subject registered", extra={"engine": self._name, "subject_id": key})

    def unregister_subject(self, key: K, final_save: bool = True) -> bool:
        """Drop a subject's state, saving it first unless told otherwise."""
        if key not in self._subjects:
            return False
        if final_save:
            self.save(key)
        del self._subjects[key]
        self._suppressed.discard(key)
        logger.debug("Subject unregistered", extra={"engine": self._name, "subject_id": key})
        return True

    def has_subject(self, key: K) -> bool:
        return key in self._subjects

    def subjects(self) -> List[K]:
        return list(self._subjects.keys())

    # ------------------------------------------------------------------ #
    # Listeners
    # ------------------------------------------------------------------ #

    def add_listener(self, callback: ChangeListener) -> None:
        if callback not in self._listeners:
            self._listeners.append(callback)

    def remove_listener(self, callback: ChangeListener) -> bool:
        try:
            self._listeners.remove(callback)
        except ValueError:
            return False
        return True

    def _notify(self, key: K) -> None:
        if key in self._suppressed:
            return
        for callback in list(self._listeners):
            try:
                callback(key)
            except Exception:
                logger.exception(
                    "Effect change listener failed",
                    extra={"engine": self._name, "subject_id": key},
                )

    # ------------------------------------------------------------------ #
    # Persistence
    # ------------------------------------------------------------------ #

    def to_persisted(self, key: K) -> PersistedEffectMap:
        state = self._subjects.get(key)
        if state is None:
            return {}
        now = self._clock.now()
        return {inst.effect_id: inst.to_persisted(now) for inst in state.effects}

    def save(self, key: K) -> bool:
        """Write the subject's full persisted map; False if it could not be stored."""
        if self._store is None or key not in self._subjects:
            return False
        try:
            self._store.set_active_effects(key, self.to_persisted(key))
        except PersistenceUnavailableError as e:
            logger.error(
                "Failed to persist active effects; in-memory state kept",
                extra={
                    "engine": self._name,
                    "subject_id": key,
                    "error_code": e.error_code,
                    "is_retryable": e.is_retryable,
                },
            )
            return False
        return True

    def save_all(self) -> int:
        saved = 0
        for key in list(self._subjects):
            if self.save(key):
                saved += 1
        return saved

    def load_from_persistence(
        self, key: K, persisted_map: Optional[Mapping[str, Mapping[str, int]]] = None
    ) -> int:
        """
        Restore a subject's effects with their exact remaining time.

        Entries with `timeRemaining <= 0` (and not permanent), unknown effect
        ids and depleted uses are dropped. Aggregates are fully recomputed
        afterwards and listeners are notified once.

        Returns
        -------
        int:
            Number of effects restored.
        """
        if persisted_map is None:
            if self._store is None:
                return 0
            try:
                persisted_map = self._store.get_active_effects(key)
            except PersistenceUnavailableError as e:
                logger.error(
                    "Failed to load persisted effects",
                    extra={"engine": self._name, "subject_id": key, "error_code": e.error_code},
                )
                return 0

        if not isinstance(persisted_map, Mapping):
            logger.warning(
                "Ignoring persisted effects that are not a mapping",
                extra={"engine": self._name, "subject_id": key},
            )
            return 0

        state = self._state_for_write(key)
        now = self._clock.now()
        restored = 0
        dropped: List[str] = []

        self._suppressed.add(key)
        try:
            for effect_id, record in persisted_map.items():
                if not isinstance(record, Mapping):
                    logger.warning(
                        "Dropping malformed persisted effect",
                        extra={"engine": self._name, "subject_id": key, "effect_id": effect_id},
                    )
                    dropped.append(effect_id)
                    continue

                time_remaining = record.get("timeRemaining")
                if not _is_valid_duration(time_remaining) or time_remaining == 0:
                    dropped.append(effect_id)
                    continue

                config = self._resolve_config(effect_id)
                if config is None:
                    logger.warning(
                        "Dropping persisted effect with unknown id",
                        extra={"engine": self._name, "subject_id": key, "effect_id": effect_id},
                    )
                    dropped.append(effect_id)
                    continue

                uses = record.get("usesRemaining", config.max_uses)
                if not isinstance(uses, int) or isinstance(uses, bool):
                    uses = config.max_uses
                if uses == 0:
                    dropped.append(effect_id)
                    continue

                if effect_id in state.effects:
                    continue

                state.effects.add(
                    EffectInstance(
                        effect_id=effect_id,
                        config=config,
                        remaining=time_remaining,
                        applied_at=now,
                        uses_remaining=uses,
                    )
                )
                restored += 1

            state.aggregates.rebuild(state.effects)
        finally:
            self._suppressed.discard(key)

        if dropped:
            self.save(key)

        if restored or dropped:
            self._notify(key)

        logger.info(
            "Effects restored from persistence",
            extra={
                "engine": self._name,
                "subject_id": key,
                "restored": restored,
                "dropped": len(dropped),
            },
        )
        return restored

    def _resolve_config(self, effect_id: str) -> Optional[EffectConfig]:
        config = self._catalog.get_effect_config(effect_id)
        if config is None and self._fallback_config is not None:
            config = self._fallback_config(effect_id)
        return config

    # ------------------------------------------------------------------ #
    # Mutations
    # ------------------------------------------------------------------ #

    def apply_effect(
        self,
        key: K,
        effect_id: str,
        duration: Optional[int] = None,
        effect_config: Optional[EffectConfig] = None,
        *,
        reason: Optional[str] = None,
    ) -> bool:
        """
        Apply or re-apply an effect.

        `duration=None` uses the effect's configured duration; `PERMANENT`
        (-1) never expires. Returns False for unknown effects, invalid
        durations and stacking-policy rejections.
        """
        config = effect_config or self._catalog.get_effect_config(effect_id)
        if config is None:
            logger.warning(
                "Unknown effect",
                extra={"engine": self._name, "subject_id": key, "effect_id": effect_id},
            )
            return False

        if duration is None:
            duration = config.duration
        if not _is_valid_duration(duration):
            logger.warning(
                "Invalid effect duration",
                extra={
                    "engine": self._name,
                    "subject_id": key,
                    "effect_id": effect_id,
                    "duration": duration,
                },
            )
            return False

        state = self._state_for_write(key)
        now = self._clock.now()

        existing = state.effects.get(effect_id)
        if existing is not None:
            if not self._restack(key, existing, duration, now, reason):
                return False
        else:
            if self._enforce_stack_limit and effect_config is None:
                limit = self._catalog.get_stacking_config().max_stacked_effects
                if limit > 0 and len(state.effects) >= limit:
                    logger.info(
                        "Effect rejected: stacking limit reached",
                        extra={
                            "engine": self._name,
                            "subject_id": key,
                            "effect_id": effect_id,
                            "max_stacked_effects": limit,
                        },
                    )
                    return False

            state.effects.add(
                EffectInstance(
                    effect_id=effect_id,
                    config=config,
                    remaining=duration,
                    applied_at=now,
                    uses_remaining=config.max_uses,
                    reason=reason,
                )
            )
            state.aggregates.recompute(config.stat_modifiers.keys(), state.effects)
            logger.info(
                "Effect applied",
                extra={
                    "engine": self._name,
                    "subject_id": key,
                    "effect_id": effect_id,
                    "duration": duration,
                },
            )

        self.save(key)
        self._notify(key)
        return True

    def _restack(
        self,
        key: K,
        existing: EffectInstance,
        duration: int,
        now: int,
        reason: Optional[str],
    ) -> bool:
        remaining = existing.live_remaining(now)
        policy = existing.config.stacking
        new_is_permanent = duration == PERMANENT

        if policy is StackingPolicy.EXTEND_DURATION:
            if existing.is_permanent or new_is_permanent:
                new_remaining = PERMANENT
            else:
                new_remaining = remaining + duration
        elif policy is StackingPolicy.NONE:
            if existing.is_active(now):
                self._log_rejection(key, existing.effect_id, "already active", remaining, duration)
                return False
            new_remaining = duration
        else:
            shorter = (existing.is_permanent and not new_is_permanent) or (
                not existing.is_permanent and not new_is_permanent and remaining > duration
            )
            if shorter:
                self._log_rejection(key, existing.effect_id, "existing effect lasts longer", remaining, duration)
                return False
            new_remaining = duration

        existing.remaining = new_remaining
        existing.applied_at = now
        if reason is not None:
            existing.reason = reason

        logger.info(
            "Effect re-applied",
            extra={
                "engine": self._name,
                "subject_id": key,
                "effect_id": existing.effect_id,
                "stacking": policy.value,
                "remaining": new_remaining,
            },
        )
        return True

    def _log_rejection(
        self, key: K, effect_id: str, why: str, remaining: int, duration: int
    ) -> None:
        logger.info(
            f"Effect rejected: {why}",
            extra={
                "engine": self._name,
                "subject_id": key,
                "effect_id": effect_id,
                "remaining": remaining,
                "duration": duration,
            },
        )

    def remove_effect(self, key: K, effect_id: str) -> bool:
        state = self._subjects.get(key)
        if state is None:
            return False
        instance = state.effects.pop(effect_id)
        if instance is None:
            return False

        state.aggregates.recompute(instance.config.stat_modifiers.keys(), state.effects)
        logger.info(
            "Effect removed",
            extra={"engine": self._name, "subject_id": key, "effect_id": effect_id},
        )
        self.save(key)
        self._notify(key)
        return True

    def clear_all(self, key: K) -> int:
        """Remove every effect of a subject; returns how many were cleared."""
        state = self._state_for_write(key)
        count = state.effects.clear()
        state.aggregates.rebuild(state.effects)

        logger.info(
            "All effects cleared",
            extra={"engine": self._name, "subject_id": key, "cleared": count},
        )
        self.save(key)
        if count:
            self._notify(key)
        return count

    def consume_use(self, key: K, action_type: str) -> List[str]:
        """
        Spend one use of every active consumable effect covering `action_type`.

        Effects reaching zero uses are removed. Returns the depleted effect ids.
        """
        state = self._subjects.get(key)
        if state is None:
            return []

        now = self._clock.now()
        consumed = False
        depleted: List[str] = []

        for instance in state.effects:
            config = instance.config
            if not config.consume_on_use or not config.covers(action_type):
                continue
            if instance.uses_remaining == UNLIMITED or not instance.is_active(now):
                continue
            instance.uses_remaining = max(0, instance.uses_remaining - 1)
            consumed = True
            if instance.uses_remaining == 0:
                depleted.append(instance.effect_id)

        if not consumed:
            return []

        touched: Set[str] = set()
        for effect_id in depleted:
            removed = state.effects.pop(effect_id)
            if removed is not None:
                touched.update(removed.config.stat_modifiers.keys())
        if touched:
            state.aggregates.recompute(touched, state.effects)

        if depleted:
            logger.info(
                "Effects depleted",
                extra={
                    "engine": self._name,
                    "subject_id": key,
                    "action_type": action_type,
                    "depleted": depleted,
                },
            )
        self.save(key)
        self._notify(key)
        return depleted

    # ------------------------------------------------------------------ #
    # Time
    # ------------------------------------------------------------------ #

    def tick(self, key: K, now: int) -> List[str]:
        """
        Count down a subject's effects to `now` and expire the finished ones.

        Permanent effects are skipped. Calling twice with the same `now` is a
        no-op the second time. Returns the expired effect ids.
        """
        state = self._subjects.get(key)
        if state is None:
            return []

        expired: List[EffectInstance] = []
        for instance in state.effects:
            if instance.is_permanent:
                continue
            elapsed = max(0, math.floor(now - instance.applied_at))
            new_remaining = max(0, instance.remaining - elapsed)
            if new_remaining <= 0:
                expired.append(instance)
            elif elapsed > 0:
                instance.remaining = new_remaining
                instance.applied_at += elapsed

        if not expired:
            return []

        touched: Set[str] = set()
        for instance in expired:
            state.effects.pop(instance.effect_id)
            touched.update(instance.config.stat_modifiers.keys())
        state.aggregates.recompute(touched, state.effects)

        expired_ids = [instance.effect_id for instance in expired]
        logger.info(
            "Effects expired",
            extra={"engine": self._name, "subject_id": key, "expired": expired_ids},
        )
        self.save(key)
        self._notify(key)
        return expired_ids

    def tick_all(self, now: int) -> Dict[K, List[str]]:
        """Tick every live subject; one failing subject never blocks the rest."""
        results: Dict[K, List[str]] = {}
        for key in list(self._subjects):
            try:
                expired = self.tick(key, now)
            except Exception:
                logger.exception(
                    "Tick failed for subject",
                    extra={"engine": self._name, "subject_id": key},
                )
                continue
            if expired:
                results[key] = expired
        return results

    # ------------------------------------------------------------------ #
    # Reads
    # ------------------------------------------------------------------ #

    def get_effective_stat(self, key: K, stat: str) -> float:
        state = self._subjects.get(key)
        if state is None:
            return self._catalog.get_stat_baseline(stat)
        return state.aggregates.get(stat)

    def get_aggregates(self, key: K) -> Dict[str, float]:
        state = self._subjects.get(key)
        if state is None:
            return self._catalog.stat_baselines(self._stat_names)
        return state.aggregates.as_dict()

    def get_remaining(self, key: K, effect_id: str) -> Optional[int]:
        """Live remaining seconds of one effect, or None if it is not applied."""
        state = self._subjects.get(key)
        if state is None:
            return None
        instance = state.effects.get(effect_id)
        if instance is None:
            return None
        return instance.live_remaining(self._clock.now())

    def get_uses_remaining(self, key: K, effect_id: str) -> Optional[int]:
        state = self._subjects.get(key)
        if state is None:
            return None
        instance = state.effects.get(effect_id)
        return instance.uses_remaining if instance is not None else None

    def active_effect_ids(self, key: K) -> List[str]:
        state = self._subjects.get(key)
        if state is None:
            return []
        now = self._clock.now()
        return [inst.effect_id for inst in state.effects if inst.is_active(now)]

    def snapshot(self, key: K) -> Dict[str, EffectSnapshot]:
        """Presentation view of every active effect; expired leftovers are omitted."""
        state = self._subjects.get(key)
        if state is None:
            return {}

        now = self._clock.now()
        display = self._catalog.display
        result: Dict[str, EffectSnapshot] = {}
        for instance in state.effects:
            if not instance.is_active(now):
                continue
            config = instance.config
            result[instance.effect_id] = EffectSnapshot(
                multiplier=config.multiplier,
                time_remaining=instance.live_remaining(now),
                description=config.description or display.default_description,
                display_name=config.display_name or instance.effect_id,
                icon=config.icon or self._default_icon,
                uses_remaining=instance.uses_remaining,
                reason=instance.reason or self._default_reason,
            )
        return result

    def get_action_multipliers(self, key: K, action_type: str) -> List[float]:
        """Multipliers of active effects covering `action_type` with uses left."""
        state = self._subjects.get(key)
        if state is None:
            return []
        now = self._clock.now()
        return [
            inst.config.multiplier
            for inst in state.effects
            if inst.config.covers(action_type)
            and inst.uses_remaining != 0
            and inst.is_active(now)
        ]

    def get_effective_multiplier(self, key: K, action_type: str) -> float:
        return stacked_multiplier(
            self.get_action_multipliers(key, action_type),
            self._catalog.get_stacking_config(),
        )
