"""Mask lookup against an ordered mask collection."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

from presetlab.mask_resolution.identity import CompositeKeyIdentity, MaskIdentityStrategy
from presetlab.schemas.adjustments import MaskFields


@dataclass(slots=True)
class MaskResolver:
    """Resolve mask-like records to positions in a mask list.

    The identity strategy is swappable; the matching tiers are not.
    """

    strategy: MaskIdentityStrategy = field(default_factory=CompositeKeyIdentity)

    def identify(self, mask: MaskFields) -> str:
        return self.strategy.identify(mask)

    def find_index(self, masks: Sequence[MaskFields], target: MaskFields) -> int:
        """Return the first index whose identity equals the target's, else -1."""

        key = self.identify(target)
        for index, candidate in enumerate(masks):
            if self.identify(candidate) == key:
                return index
        return -1

    def find_index_flexible(self, masks: Sequence[MaskFields], target: MaskFields) -> int:
        """Match an underspecified operation with escalating fallbacks.

        Strict identity first, then name alone, then type refined by
        ``sub_category_id`` when the target carries one. The first tier that
        matches anything wins; when several masks share a type and no
        coordinates distinguish them, the earliest one is chosen.
        """

        strict = self.find_index(masks, target)
        if strict >= 0:
            return strict

        if target.name:
            for index, candidate in enumerate(masks):
                if (candidate.name or "") == target.name:
                    return index

        if target.type:
            for index, candidate in enumerate(masks):
                if (candidate.type or "") != target.type:
                    continue
                if target.sub_category_id is not None and candidate.sub_category_id != target.sub_category_id:
                    continue
                return index

        return -1


_DEFAULT_RESOLVER = MaskResolver()


def default_resolver() -> MaskResolver:
    return _DEFAULT_RESOLVER


def identify(mask: MaskFields) -> str:
    """Identity key under the default composite strategy."""

    return _DEFAULT_RESOLVER.identify(mask)


def find_index(masks: Sequence[MaskFields], target: MaskFields) -> int:
    return _DEFAULT_RESOLVER.find_index(masks, target)


def find_index_flexible(masks: Sequence[MaskFields], target: MaskFields) -> int:
    return _DEFAULT_RESOLVER.find_index_flexible(masks, target)
