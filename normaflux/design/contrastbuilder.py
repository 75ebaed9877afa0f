import itertools
from typing import List, Sequence, Tuple

import pandas as pd

from normaflux.utils.semantics import CONTRAST_SEPARATOR, contrast_name


class ContrastBuilder:
    def __init__(self, levels: Sequence[str]):
        """
        Parameters:
        - levels: condition labels; duplicates are dropped, first appearance kept
        """
        self.levels = [str(l) for l in pd.unique(pd.Series(list(levels), dtype=object).astype(str))]

    def pairs(self) -> List[Tuple[str, str]]:
        return list(itertools.combinations(self.levels, 2))

    def make_all_pairwise_contrasts(self) -> List[str]:
        """
        Every unordered pair of levels, serialized as "A-B" (A before B in level order).
        k levels give k(k-1)/2 contrasts; fewer than two levels give none.
        """
        return [contrast_name(a, b) for a, b in self.pairs()]


def build_contrasts(levels: Sequence[str]) -> List[str]:
    return ContrastBuilder(levels).make_all_pairwise_contrasts()


def split_contrast(contrast: str, levels: Sequence[str]) -> Tuple[str, str]:
    """Inverse of `contrast_name`, resolved against the known levels.

    Levels may themselves contain the separator, so every split position is
    tried and the one naming two known levels wins.
    """
    known = set(map(str, levels))
    parts = contrast.split(CONTRAST_SEPARATOR)
    for i in range(1, len(parts)):
        a = CONTRAST_SEPARATOR.join(parts[:i])
        b = CONTRAST_SEPARATOR.join(parts[i:])
        if a in known and b in known:
            return a, b
    raise ValueError(f"Contrast {contrast!r} does not name two known levels {sorted(known)}")
