import re
import unicodedata
from typing import Dict, Iterable, List, Optional

import polars as pl

from normaflux.utils.errors import SchemaMismatchError
from normaflux.utils.utils import log_info

_CAMEL_ACRONYM = re.compile(r"([A-Z]+)([A-Z][a-z])")
_CAMEL_BOUNDARY = re.compile(r"([a-z0-9])([A-Z])")
_NON_ALNUM = re.compile(r"[^A-Za-z0-9]+")


def snake_case(name) -> str:
    """Lowercase, underscore-delimited form of `name`.

    Total and idempotent: snake_case(snake_case(x)) == snake_case(x).
    """
    s = unicodedata.normalize("NFKD", str(name)).encode("ascii", "ignore").decode("ascii")
    s = s.replace("%", "_percent_").replace("+", "_plus_")
    s = _CAMEL_ACRONYM.sub(r"\1_\2", s)
    s = _CAMEL_BOUNDARY.sub(r"\1_\2", s)
    s = _NON_ALNUM.sub("_", s).strip("_").lower()
    return s or "x"


def make_unique(names: Iterable[str]) -> List[str]:
    """Suffix repeated names with _2, _3, ... keeping first occurrences as is."""
    out: List[str] = []
    taken = set()
    for name in names:
        candidate, k = name, 1
        while candidate in taken:
            k += 1
            candidate = f"{name}_{k}"
        taken.add(candidate)
        out.append(candidate)
    return out


class SchemaNormalizer:
    """Canonicalizes column names (and design cells) to snake_case."""

    def rename_map(self, columns: Iterable[str]) -> Dict[str, str]:
        columns = list(columns)
        return dict(zip(columns, make_unique(snake_case(c) for c in columns)))

    def normalize_columns(self, df: pl.DataFrame) -> pl.DataFrame:
        mapping = self.rename_map(df.columns)
        changed = {k: v for k, v in mapping.items() if k != v}
        if changed:
            log_info(f"Renamed {len(changed)} column(s) to snake_case.")
        return df.rename(mapping)

    def normalize_quantification(self, df: pl.DataFrame) -> pl.DataFrame:
        """Column names only; cell values are left untouched."""
        return self.normalize_columns(df)

    def label_collisions(self, values: pl.Series) -> Dict[str, List[str]]:
        """Normalized labels reached from more than one distinct raw label."""
        groups: Dict[str, List[str]] = {}
        for raw in values.drop_nulls().unique(maintain_order=True).to_list():
            groups.setdefault(snake_case(raw), []).append(raw)
        return {norm: raws for norm, raws in groups.items() if len(raws) > 1}

    def normalize_design(self, df: pl.DataFrame, checked_columns: Optional[Iterable[str]] = None) -> pl.DataFrame:
        """Column names and every string cell (sample ids, group labels, ...).

        Distinct raw cells of `checked_columns` (normalized names) must stay
        distinct after normalization.
        """
        df = self.normalize_columns(df)
        string_cols = [c for c, t in df.schema.items() if t == pl.Utf8]
        if not string_cols:
            return df
        for col in checked_columns or []:
            if col not in string_cols:
                continue
            clashes = self.label_collisions(df.get_column(col))
            if clashes:
                detail = "; ".join(f"{', '.join(map(repr, raws))} -> '{norm}'" for norm, raws in clashes.items())
                raise SchemaMismatchError(
                    f"Design column '{col}' has labels that become identical after normalization: {detail}"
                )
        return df.with_columns([
            pl.col(c).map_elements(snake_case, return_dtype=pl.Utf8).alias(c)
            for c in string_cols
        ])
