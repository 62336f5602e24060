from __future__ import annotations

from enum import Enum

import pandas as pd


class ColumnError(KeyError):
    """A requested column or group key is not in the frame."""


class Column(str, Enum):
    DATE_OF_CRASH = "Date.of.crash"
    AGE = "Age"
    GENDER = "Gender"
    DISTRICT = "District"
    DAY_OF_WEEK = "Day.of.Week"
    BLOOD_ALCOHOL = "Blood.alcohol"
    SPEED = "speed"
    NO_DECEASED = "no.deceased"
    NO_VEHICLES = "no.vehicles.involved"
    YEAR = "year"
    # derived
    ALCOHOL_IN_SYSTEM = "alcohol_in_system"
    AGE_RANGE = "age_range"

    def __str__(self) -> str:
        return self.value


# "#" は列名として扱いにくいので置き換える
RENAME_MAP: dict[str, str] = {
    "#.deceased": Column.NO_DECEASED.value,
    "#.vehicles.involved": Column.NO_VEHICLES.value,
}

COLUMN_TYPES: dict[Column, str] = {
    Column.DATE_OF_CRASH: "date",
    Column.AGE: "number",
    Column.BLOOD_ALCOHOL: "number",
    Column.SPEED: "number",
    Column.NO_DECEASED: "number",
    Column.NO_VEHICLES: "number",
    Column.YEAR: "number",
    Column.GENDER: "text",
    Column.DISTRICT: "text",
    Column.DAY_OF_WEEK: "text",
}

AGE_BREAKS: tuple[float, ...] = (0, 20, 30, 40, 50, 60, 70, 80, 120)


def name_of(column: Column | str) -> str:
    """Plain column name for an enum member or a string."""
    if isinstance(column, Column):
        return column.value
    try:
        return Column(column).value
    except ValueError:
        return str(column)


def require(df: pd.DataFrame, *columns: Column | str) -> list[str]:
    """Resolve columns against df, raising ColumnError for any that are absent."""
    names = [name_of(c) for c in columns]
    missing = [n for n in names if n not in df.columns]
    if missing:
        raise ColumnError(f"Unknown column(s): {missing}. Available={list(df.columns)}")
    return names
