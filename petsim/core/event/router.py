"""
Wildcard matching for event names.

Patterns may contain `*`, which matches any run of characters including
dots: `effects.*` matches both `effects.player.snapshot` and
`effects.global.snapshot`. Matching is case-sensitive.
"""

from __future__ import annotations


class EventRouter:
    """
    Stateless wildcard matcher.

    Examples
    --------
    >>> router = EventRouter()
    >>> router.matches("effects.player.snapshot", "effects.*")
    True
    >>> router.matches("effects.player.snapshot", "*.snapshot")
    True
    >>> router.matches("ratelimit.warning", "effects.*")
    False
    """

    def matches(self, event_name: str, pattern: str) -> bool:
        if pattern == "*":
            return True

        if "*" not in pattern:
            return event_name == pattern

        while "**" in pattern:
            pattern = pattern.replace("**", "*")

        parts = pattern.split("*")
        head, tail = parts[0], parts[-1]

        if not event_name.startswith(head):
            return False
        if len(event_name) < len(head) + len(tail):
            return False
        if tail and not event_name.endswith(tail):
            return False

        # Middle pieces must appear in order between head and tail
        idx = len(head)
        limit = len(event_name) - len(tail)
        for mid in parts[1:-1]:
            if not mid:
                continue
            next_idx = event_name.find(mid, idx, limit)
            if next_idx == -1:
                return False
            idx = next_idx + len(mid)

        return True
