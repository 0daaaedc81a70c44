from __future__ import annotations

"""
AIM • Subscription Tier → Bitrate Policy
========================================

An immutable, ordered table mapping tier names to the bitrate (kbps) a
listener on that tier is entitled to, plus the variant selection rule:

    exact match → highest available not exceeding → lowest available overall

A listener is never served a bitrate above their entitlement while a lower
one exists, and always gets something playable when any variant exists.
"""

from dataclasses import dataclass, field
from typing import Iterable, Mapping, Optional, Tuple

from aim.core.exceptions import NoVariantsAvailable

DEFAULT_TIERS: Tuple[Tuple[str, int], ...] = (
    ("free", 128),
    ("premium", 192),
    ("vip", 320),
)


@dataclass(frozen=True)
class TierPolicy:
    """
    Ordered (tier, bitrate) table, sorted by bitrate ascending.

    Unknown or empty tier names resolve to the lowest bitrate in the table.
    """

    entries: Tuple[Tuple[str, int], ...] = DEFAULT_TIERS
    _lookup: Mapping[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        if not self.entries:
            raise ValueError("TierPolicy needs at least one tier")
        normalized = tuple(sorted(((str(n).strip().lower(), int(b)) for n, b in self.entries), key=lambda e: e[1]))
        if any(b <= 0 for _, b in normalized):
            raise ValueError("Tier bitrates must be positive")
        names = [n for n, _ in normalized]
        if len(set(names)) != len(names):
            raise ValueError("Duplicate tier names in TierPolicy")
        object.__setattr__(self, "entries", normalized)
        object.__setattr__(self, "_lookup", dict(normalized))

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, int]) -> "TierPolicy":
        return cls(tuple(mapping.items()))

    @property
    def tiers(self) -> Tuple[str, ...]:
        return tuple(n for n, _ in self.entries)

    @property
    def lowest_bitrate(self) -> int:
        return self.entries[0][1]

    def required_bitrate(self, tier: Optional[str]) -> int:
        """Bitrate the tier is entitled to (case-insensitive)."""
        key = (tier or "").strip().lower()
        return self._lookup.get(key, self.lowest_bitrate)

    def select_variant(self, variants: Mapping[int, str], tier: Optional[str]) -> Tuple[int, str]:
        """Pick `(bitrate, url)` from `variants` for `tier`."""
        return select_variant(variants, self.required_bitrate(tier))


def select_variant(variants: Mapping[int, str], required_bitrate: int) -> Tuple[int, str]:
    """
    Apply the fallback order to a bitrate → URL map.

    Raises
    ------
    NoVariantsAvailable
        When `variants` is empty.
    """
    available = _sorted_bitrates(variants.keys())
    if not available:
        raise NoVariantsAvailable()

    by_bitrate = {int(k): v for k, v in variants.items()}
    if required_bitrate in by_bitrate:
        return required_bitrate, by_bitrate[required_bitrate]

    not_exceeding = [b for b in available if b <= required_bitrate]
    if not_exceeding:
        chosen = not_exceeding[-1]
    else:
        chosen = available[0]
    return chosen, by_bitrate[chosen]


def _sorted_bitrates(keys: Iterable) -> list[int]:
    return sorted(int(k) for k in keys)


default_policy = TierPolicy()
