import pandas as pd
import pytest

from crash_eda.columns import RENAME_MAP, Column, ColumnError, name_of, require


def test_name_of_accepts_enum_and_string():
    assert name_of(Column.BLOOD_ALCOHOL) == "Blood.alcohol"
    assert name_of("Blood.alcohol") == "Blood.alcohol"
    assert name_of("other") == "other"


def test_rename_map_targets_known_columns():
    assert set(RENAME_MAP.values()) == {Column.NO_DECEASED.value, Column.NO_VEHICLES.value}


def test_require_reports_missing():
    df = pd.DataFrame({"Age": [1], "speed": [2]})
    assert require(df, Column.AGE, "speed") == ["Age", "speed"]
    with pytest.raises(ColumnError):
        require(df, Column.DISTRICT)
