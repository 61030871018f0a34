"""
Vivier - History Loader
=======================

Reads the semicolon CSV export (`date;n1;n2;n3;n4;n5;e1;e2`, one header row)
and converts draw frames into Draw objects ordered most recent first.
"""

from typing import List

import pandas as pd
from loguru import logger

from .models import NUMBER_MAX, STAR_MAX, Draw


DRAW_COLUMNS = ["draw_date", "n1", "n2", "n3", "n4", "n5", "e1", "e2"]
NUMBER_COLUMNS = ["n1", "n2", "n3", "n4", "n5"]
STAR_COLUMNS = ["e1", "e2"]


def read_history_csv(csv_path: str) -> pd.DataFrame:
    """
    Parse a history CSV into a clean draws frame.

    Rows with an unparseable date, a non-numeric ball, a ball out of range
    or a repeated ball are dropped and counted; duplicated dates keep the
    last row of the file.

    Args:
        csv_path: Path of the semicolon separated file

    Returns:
        DataFrame with DRAW_COLUMNS, most recent draw first
    """
    raw = pd.read_csv(csv_path, sep=";", header=0, usecols=range(len(DRAW_COLUMNS)), names=DRAW_COLUMNS, dtype=str)
    df = raw.copy()
    dates = df["draw_date"].str.strip()
    # ISO dates, or day-first dates from spreadsheet exports
    df["draw_date"] = pd.to_datetime(dates, format="%Y-%m-%d", errors="coerce").fillna(
        pd.to_datetime(dates, format="%d/%m/%Y", errors="coerce")
    )
    for col in NUMBER_COLUMNS + STAR_COLUMNS:
        df[col] = pd.to_numeric(df[col], errors="coerce")

    bad = df[DRAW_COLUMNS].isna().any(axis=1)
    if bad.any():
        logger.warning(f"Skipping {int(bad.sum())} malformed rows in {csv_path}")
    df = df[~bad].copy()
    df[NUMBER_COLUMNS + STAR_COLUMNS] = df[NUMBER_COLUMNS + STAR_COLUMNS].astype(int)

    invalid = ~valid_rows(df)
    if invalid.any():
        logger.warning(f"Skipping {int(invalid.sum())} draws with out-of-range or repeated balls in {csv_path}")
    df = df[~invalid].copy()

    before = len(df)
    df = df.drop_duplicates(subset="draw_date", keep="last")
    if len(df) < before:
        logger.warning(f"Dropped {before - len(df)} duplicated draw dates")

    df = df.sort_values("draw_date", ascending=False).reset_index(drop=True)
    logger.info(f"Loaded {len(df)} draws from {csv_path}")
    return df


def valid_rows(df: pd.DataFrame) -> pd.Series:
    """True where numbers are 5 distinct values in 1..50 and stars 2 distinct values in 1..12"""
    numbers = df[NUMBER_COLUMNS]
    stars = df[STAR_COLUMNS]
    return (
        numbers.ge(1).all(axis=1)
        & numbers.le(NUMBER_MAX).all(axis=1)
        & (numbers.nunique(axis=1) == len(NUMBER_COLUMNS))
        & stars.ge(1).all(axis=1)
        & stars.le(STAR_MAX).all(axis=1)
        & (stars.nunique(axis=1) == len(STAR_COLUMNS))
    )


def draws_from_dataframe(df: pd.DataFrame) -> List[Draw]:
    """Convert a draws frame to Draw objects, most recent first, skipping invalid rows"""
    if df.empty:
        return []
    invalid = ~valid_rows(df)
    if invalid.any():
        logger.warning(f"Ignoring {int(invalid.sum())} stored draws with out-of-range or repeated balls")
    ordered = df[~invalid].sort_values("draw_date", ascending=False)
    draws = []
    for row in ordered.itertuples(index=False):
        draws.append(
            Draw(
                draw_date=pd.Timestamp(row.draw_date).date(),
                numbers=tuple(int(getattr(row, c)) for c in NUMBER_COLUMNS),
                stars=tuple(int(getattr(row, c)) for c in STAR_COLUMNS),
            )
        )
    return draws


def draws_to_dataframe(draws: List[Draw]) -> pd.DataFrame:
    """Inverse of draws_from_dataframe"""
    rows = [
        [pd.Timestamp(d.draw_date)] + list(d.numbers) + list(d.stars)
        for d in draws
    ]
    return pd.DataFrame(rows, columns=DRAW_COLUMNS)
