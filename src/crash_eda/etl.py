from __future__ import annotations

import zipfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Mapping, Sequence, Union

import matplotlib.pyplot as plt
import pandas as pd
from openpyxl.utils.exceptions import InvalidFileException

from crash_eda.columns import (
    AGE_BREAKS,
    COLUMN_TYPES,
    RENAME_MAP,
    Column,
    ColumnError,
    name_of,
    require,
)

Predicate = Union[str, Callable[[pd.DataFrame], Any]]

SENTINEL = "x"

# 集計名 -> pandas の reducer
REDUCERS: dict[str, str] = {
    "mean": "mean",
    "sd": "std",
    "min": "min",
    "max": "max",
    "count": "size",      # 欠損も含めたグループの行数
    "n_valid": "count",   # 欠損を除いた件数
    "sum": "sum",
    "median": "median",
}

TYPES = {"number", "text", "date"}


class LoadError(RuntimeError):
    """The source file is missing, unreadable, or too large to load."""


@dataclass
class DataLoader:
    sheet: int | str = 0  # 先頭シート

    def load(self, path: Path) -> pd.DataFrame:
        path = Path(path)
        if not path.exists():
            raise LoadError(f"File not found: {path}")
        try:
            if path.suffix.lower() == ".csv":
                df = pd.read_csv(path)
            else:
                df = pd.read_excel(path, sheet_name=self.sheet, engine="openpyxl")
        except MemoryError as exc:
            raise LoadError(f"Not enough memory to load {path}") from exc
        except (OSError, ValueError, IndexError, KeyError,
                zipfile.BadZipFile, InvalidFileException) as exc:
            raise LoadError(f"Could not load {path}: {exc}") from exc
        df.columns = [str(c).strip() for c in df.columns]
        return df


def replace_sentinel(df: pd.DataFrame, sentinel: str = SENTINEL) -> pd.DataFrame:
    """Turn exact matches of `sentinel` in text columns into missing values."""
    out = df.copy()
    for col in out.columns:
        s = out[col]
        if pd.api.types.is_object_dtype(s) or pd.api.types.is_string_dtype(s):
            hit = s.eq(sentinel).fillna(False).astype(bool)
            if hit.any():
                out[col] = s.mask(hit)
    return out


def rename_columns(df: pd.DataFrame, mapping: Mapping[str, Column | str] = RENAME_MAP) -> pd.DataFrame:
    return df.rename(columns={k: name_of(v) for k, v in mapping.items()})


def coerce_types(df: pd.DataFrame, types: Mapping[Column | str, str] = COLUMN_TYPES) -> pd.DataFrame:
    """Convert columns to number/text/date; values that do not convert become missing."""
    out = df.copy()
    for column, kind in types.items():
        if kind not in TYPES:
            raise ValueError(f"type must be one of {sorted(TYPES)}, got {kind!r}")
        (col,) = require(out, column)
        s = out[col]
        if kind == "number":
            out[col] = pd.to_numeric(s, errors="coerce")
        elif kind == "date":
            out[col] = pd.to_datetime(s, errors="coerce")
        else:
            out[col] = s.where(s.isna(), s.astype(str)).astype(object)
    return out


@dataclass
class Cleaner:
    sentinel: str = SENTINEL
    rename: Mapping[str, Column | str] | None = None
    types: Mapping[Column | str, str] | None = None  # None なら既知の列のうち存在するものだけ

    def clean(self, df: pd.DataFrame) -> pd.DataFrame:
        out = replace_sentinel(df, self.sentinel)
        out = rename_columns(out, RENAME_MAP if self.rename is None else self.rename)
        if self.types is None:
            types = {c: t for c, t in COLUMN_TYPES.items() if c.value in out.columns}
        else:
            types = self.types
        return coerce_types(out, types)


def _mask(df: pd.DataFrame, predicate: Predicate) -> pd.Series:
    mask = df.eval(predicate) if isinstance(predicate, str) else predicate(df)
    if not isinstance(mask, pd.Series):
        mask = pd.Series(mask, index=df.index)
    return mask.fillna(False).astype(bool)


def count(df: pd.DataFrame, predicate: Predicate | None = None) -> int:
    """Row count, optionally only rows where `predicate` holds.

    `predicate` is either a callable returning a boolean mask or a
    `DataFrame.eval` expression such as ``"Age > 60"``. Missing counts as False.
    """
    if predicate is None:
        return len(df)
    return int(_mask(df, predicate).sum())


def filter_rows(df: pd.DataFrame, predicate: Predicate) -> pd.DataFrame:
    return df.loc[_mask(df, predicate)].copy()


@dataclass(frozen=True)
class Aggregation:
    """`reducer` applied to `column` within each group.

    The reducer name is checked here. With `strict=True` the column must also
    be one of the known `Column` names; otherwise it is checked against the
    frame by `group_summarise`.
    """
    column: Column | str
    reducer: str = "mean"
    strict: bool = False

    def __post_init__(self) -> None:
        if self.reducer not in REDUCERS:
            raise ValueError(f"reducer must be one of {sorted(REDUCERS)}, got {self.reducer!r}")
        if self.strict and not isinstance(self.column, Column):
            try:
                Column(self.column)
            except ValueError:
                raise ColumnError(f"Unknown column: {self.column!r}") from None


def group_summarise(
    df: pd.DataFrame,
    keys: Sequence[Column | str] | Column | str,
    aggs: Mapping[str, Aggregation | tuple[Column | str, str]],
) -> pd.DataFrame:
    """Summarise `df` per distinct combination of `keys`.

    Missing key values form their own group. Groups come out sorted by key,
    with the missing group last. Reducers skip missing values.
    """
    if isinstance(keys, (str, Column)):
        keys = [keys]
    if not aggs:
        raise ValueError("at least one aggregation is required")
    specs = {out: a if isinstance(a, Aggregation) else Aggregation(*a) for out, a in aggs.items()}
    key_names = require(df, *keys)
    require(df, *[s.column for s in specs.values()])
    named = {out: (name_of(s.column), REDUCERS[s.reducer]) for out, s in specs.items()}
    return (
        df.groupby(key_names, dropna=False, sort=True, observed=True)
          .agg(**named)
          .reset_index()
    )


def _fmt(v: float) -> str:
    return str(int(v)) if v.is_integer() else repr(v)


def bucketize(
    df: pd.DataFrame,
    column: Column | str = Column.AGE,
    breaks: Sequence[float] = AGE_BREAKS,
    name: Column | str = Column.AGE_RANGE,
) -> pd.DataFrame:
    """Add `name`: the (breaks[i], breaks[i+1]] interval each value falls in."""
    (src,) = require(df, column)
    edges = [float(b) for b in breaks]
    if len(edges) < 2 or any(lo >= hi for lo, hi in zip(edges, edges[1:])):
        raise ValueError(f"breaks must be strictly increasing with at least two values: {list(breaks)}")
    labels = [f"({_fmt(lo)}, {_fmt(hi)}]" for lo, hi in zip(edges, edges[1:])]
    out = df.copy()
    out[name_of(name)] = pd.cut(
        pd.to_numeric(out[src], errors="coerce"), bins=edges, labels=labels, right=True
    )
    return out


def derive_column(df: pd.DataFrame, name: Column | str, fn: Callable[[dict], Any]) -> pd.DataFrame:
    out = df.copy()
    values = [fn(rec) for rec in out.to_dict("records")]
    out[name_of(name)] = pd.Series(values, index=out.index, dtype=object)
    return out


def alcohol_in_system(record: Mapping[str, Any]) -> str | None:
    # 欠損は "no" にせず欠損のまま
    v = record.get(Column.BLOOD_ALCOHOL.value)
    if v is None or pd.isna(v):
        return None
    if v > 0:
        return "yes"
    if v == 0:
        return "no"
    return None


def add_alcohol_in_system(df: pd.DataFrame) -> pd.DataFrame:
    require(df, Column.BLOOD_ALCOHOL)
    return derive_column(df, Column.ALCOHOL_IN_SYSTEM, alcohol_in_system)


def write_csv(table: pd.DataFrame, path: Path) -> Path:
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(path, index=False)
    return path


@dataclass
class Plotter:
    col: Column | str = Column.AGE
    bins: int = 10

    def plot(self, df: pd.DataFrame, fig_path: Path, box_path: Path | None = None) -> list[Path]:
        written: list[Path] = []
        col = name_of(self.col)
        if col in df.columns and df[col].notna().any():
            plt.figure()
            df[col].dropna().hist(bins=self.bins)
            plt.xlabel(col)
            fig_path.parent.mkdir(parents=True, exist_ok=True)
            plt.savefig(fig_path)
            plt.close()
            written.append(fig_path)
        speed, district = Column.SPEED.value, Column.DISTRICT.value
        if box_path is not None and {speed, district}.issubset(df.columns):
            fig, ax = plt.subplots()
            df.boxplot(column=speed, by=district, ax=ax, rot=45)
            box_path.parent.mkdir(parents=True, exist_ok=True)
            fig.savefig(box_path)
            plt.close(fig)
            written.append(box_path)
        return written
