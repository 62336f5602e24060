from __future__ import annotations

import argparse
from datetime import datetime as dt
from pathlib import Path
from typing import Sequence

import pandas as pd

from crash_eda.columns import AGE_BREAKS, Column, require
from crash_eda.etl import (
    Aggregation,
    Cleaner,
    DataLoader,
    LoadError,
    Plotter,
    add_alcohol_in_system,
    bucketize,
    count,
    group_summarise,
    write_csv,
)

SPEED_BY_DISTRICT = "speed_by_district.csv"


def speed_by_district(df: pd.DataFrame) -> pd.DataFrame:
    return group_summarise(df, Column.DISTRICT, {
        "mean_speed": Aggregation(Column.SPEED, "mean"),
        "sd_speed": Aggregation(Column.SPEED, "sd"),
    })


def alcohol_counts(df: pd.DataFrame) -> dict[str, int]:
    """Rows per alcohol_in_system value, missing included."""
    flagged = add_alcohol_in_system(df)
    col = Column.ALCOHOL_IN_SYSTEM.value
    return {
        "yes": count(flagged, lambda d: d[col] == "yes"),
        "no": count(flagged, lambda d: d[col] == "no"),
        "missing": count(flagged, lambda d: d[col].isna()),
    }


def run_queries(df: pd.DataFrame, age_breaks: Sequence[float] = AGE_BREAKS) -> dict[str, object]:
    """The fixed set of descriptive questions asked of a cleaned crash frame."""
    require(df, Column.AGE, Column.GENDER, Column.DAY_OF_WEEK, Column.DISTRICT, Column.SPEED,
            Column.BLOOD_ALCOHOL, Column.YEAR, Column.NO_DECEASED)
    results: dict[str, object] = {}
    results["n_records"] = count(df)
    results["n_over_60"] = count(df, lambda d: d[Column.AGE.value] > 60)
    results["by_gender"] = group_summarise(df, Column.GENDER, {"n": (Column.GENDER, "count")})
    results["age_by_gender"] = group_summarise(df, Column.GENDER, {
        "mean_age": (Column.AGE, "mean"),
        "sd_age": (Column.AGE, "sd"),
        "min_age": (Column.AGE, "min"),
        "max_age": (Column.AGE, "max"),
    })
    results["by_day_of_week"] = group_summarise(df, Column.DAY_OF_WEEK, {"n": (Column.DAY_OF_WEEK, "count")})
    results["speed_by_district"] = speed_by_district(df)
    results["alcohol_by_age_range"] = group_summarise(
        bucketize(df, Column.AGE, age_breaks),
        Column.AGE_RANGE,
        {
            "n": (Column.AGE, "count"),
            "mean_blood_alcohol": (Column.BLOOD_ALCOHOL, "mean"),
        },
    )
    results["alcohol_in_system"] = alcohol_counts(df)
    results["deceased_by_year"] = group_summarise(df, Column.YEAR, {
        "crashes": (Column.NO_DECEASED, "count"),
        "deceased": (Column.NO_DECEASED, "sum"),
        "max_deceased": (Column.NO_DECEASED, "max"),
    })
    return results


def parse_breaks(s: str) -> list[float]:
    return [float(t) for t in s.split(",") if t.strip()]


def format_digest(results: dict[str, object], in_path: Path, out_path: Path, head: int = 5) -> str:
    lines = [
        "=== CRASH EDA SUMMARY ===",
        f"when      : {dt.now().strftime('%Y-%m-%d %H:%M:%S')}",
        f"in        : {in_path}",
        f"out       : {out_path}",
    ]
    for key, value in results.items():
        if isinstance(value, pd.DataFrame):
            lines.append(f"--- {key} (first {head} rows) ---")
            lines.append(value.head(head).to_csv(index=False).strip())
        elif isinstance(value, dict):
            lines.append(f"{key:<10}: " + ", ".join(f"{k}={v}" for k, v in value.items()))
        else:
            lines.append(f"{key:<10}: {value}")
    return "\n".join(lines) + "\n"


def main(argv: Sequence[str] | None = None) -> None:
    ap = argparse.ArgumentParser(description="Road crash EDA: clean a crash spreadsheet and summarise it")
    ap.add_argument("--in", dest="in_path", required=True, type=Path)
    ap.add_argument("--sheet", type=int, default=0, help="シート番号（0 = 先頭）")
    ap.add_argument("--out", dest="out_path", type=Path, default=Path(SPEED_BY_DISTRICT))
    ap.add_argument("--fig", dest="fig_path", type=Path, default=None, help="年齢ヒストグラムの保存先（省略可）")
    ap.add_argument("--fig2", dest="fig2_path", type=Path, default=None, help="地区別速度の箱ひげ図（省略可）")
    ap.add_argument("--age-breaks", type=parse_breaks, default=list(AGE_BREAKS), help="カンマ区切りの年齢の区切り")
    ap.add_argument("--report", type=Path, default=None, help="実行レポートを保存する先（.txt推奨）")
    ap.add_argument("--verbose", action="store_true", help="途中経過を表示")
    args = ap.parse_args(argv)

    if args.verbose: print(f"[1/4] Load: {args.in_path} (sheet={args.sheet})")
    try:
        df = DataLoader(sheet=args.sheet).load(args.in_path)
    except LoadError as e:
        ap.exit(1, f"error: {e}\n")

    if args.verbose: print("[2/4] Clean")
    df_clean = Cleaner().clean(df)
    if args.verbose: print(df_clean.head())

    if args.verbose: print("[3/4] Queries")
    results = run_queries(df_clean, age_breaks=args.age_breaks)

    if args.verbose: print(f"[4/4] Write -> {args.out_path}")
    write_csv(results["speed_by_district"], args.out_path)

    if args.fig_path is not None:
        Plotter().plot(df_clean, args.fig_path, box_path=args.fig2_path)

    digest = format_digest(results, args.in_path, args.out_path)
    print(digest)

    if args.report is not None:
        args.report.parent.mkdir(parents=True, exist_ok=True)
        with open(args.report, "w", encoding="utf-8") as f:
            f.write(digest)
        print(f"[report] wrote {args.report}")

    print(f"Done: wrote {args.out_path}")


if __name__ == "__main__":
    main()
