import sqlite3
import os
from datetime import date
from typing import List, Optional, Set

import pandas as pd
from loguru import logger

from .config import load_config
from .exceptions import IssuedKeysUnavailable
from .loader import DRAW_COLUMNS, draws_from_dataframe
from .models import Draw, GeneratedCombination


def get_db_path() -> str:
    """Reads the database file path from the configuration file."""
    config = load_config()
    db_path = config.resolve_path(config.database_file)
    os.makedirs(os.path.dirname(db_path), exist_ok=True)
    return db_path


def get_db_connection() -> sqlite3.Connection:
    """
    Establishes a connection to the SQLite database.

    Returns:
        sqlite3.Connection: A connection object to the database.

    Raises:
        sqlite3.Error: If database connection fails
    """
    db_path = get_db_path()
    try:
        conn = sqlite3.connect(db_path, timeout=30)
        conn.execute("PRAGMA journal_mode=WAL")
        conn.execute("PRAGMA busy_timeout=5000")
        logger.debug(f"Connected to database at {db_path}")
        return conn
    except sqlite3.Error as e:
        logger.error(f"Error connecting to database at {db_path}: {e}")
        raise


def initialize_database():
    """Create the draws and issued_combinations tables. Idempotent."""
    try:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS draws (
                    draw_date TEXT PRIMARY KEY,
                    n1 INTEGER NOT NULL,
                    n2 INTEGER NOT NULL,
                    n3 INTEGER NOT NULL,
                    n4 INTEGER NOT NULL,
                    n5 INTEGER NOT NULL,
                    e1 INTEGER NOT NULL,
                    e2 INTEGER NOT NULL
                )
            """)
            cursor.execute("""
                CREATE TABLE IF NOT EXISTS issued_combinations (
                    id INTEGER PRIMARY KEY AUTOINCREMENT,
                    target_date TEXT NOT NULL,
                    numbers TEXT NOT NULL,
                    stars TEXT NOT NULL,
                    canonical_key TEXT NOT NULL,
                    created_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP,
                    UNIQUE (target_date, canonical_key)
                )
            """)
            cursor.execute(
                "CREATE INDEX IF NOT EXISTS idx_issued_target_date ON issued_combinations(target_date)"
            )
            conn.commit()
        logger.info("Database initialized successfully.")
    except sqlite3.Error as e:
        logger.error(f"Database error during initialization: {e}")
        raise


def bulk_insert_draws(df: pd.DataFrame) -> int:
    """
    Insert or replace a batch of draws.

    Args:
        df: DataFrame with columns [draw_date, n1..n5, e1, e2]

    Returns:
        Number of rows written
    """
    if df.empty:
        logger.info("No new draws to insert.")
        return 0

    rows = df[DRAW_COLUMNS].copy()
    rows["draw_date"] = pd.to_datetime(rows["draw_date"]).dt.strftime("%Y-%m-%d")
    try:
        with get_db_connection() as conn:
            conn.executemany(
                "INSERT OR REPLACE INTO draws (draw_date, n1, n2, n3, n4, n5, e1, e2) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                [tuple(r) for r in rows.itertuples(index=False, name=None)],
            )
            conn.commit()
        logger.info(f"Successfully upserted {len(rows)} draws.")
        return len(rows)
    except sqlite3.Error as e:
        logger.error(f"SQLite error during draw insert: {e}")
        raise


def get_latest_draw_date() -> Optional[str]:
    """Retrieve the most recent draw date from the database."""
    try:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute("SELECT MAX(draw_date) FROM draws")
            result = cursor.fetchone()
            return result[0] if result else None
    except sqlite3.Error as e:
        logger.error(f"Failed to get latest draw date: {e}")
        return None


def get_all_draws(max_date: str = None) -> pd.DataFrame:
    """Retrieve all draws, most recent first.

    Args:
        max_date: Optional date limit (YYYY-MM-DD). Only returns draws before this date.
    """
    try:
        with get_db_connection() as conn:
            if max_date:
                df = pd.read_sql_query(
                    "SELECT * FROM draws WHERE draw_date < ? ORDER BY draw_date DESC",
                    conn,
                    params=(max_date,),
                    parse_dates=["draw_date"],
                )
            else:
                df = pd.read_sql_query("SELECT * FROM draws ORDER BY draw_date DESC", conn, parse_dates=["draw_date"])
            logger.info(f"Successfully loaded {len(df)} draws from the database.")
            return df
    except sqlite3.Error as e:
        logger.error(f"SQLite error retrieving draws: {e}")
        return pd.DataFrame()
    except pd.errors.DatabaseError as e:
        logger.error(f"Pandas database error: {e}")
        return pd.DataFrame()


def get_history(max_date: str = None) -> List[Draw]:
    """History provider: deduplicated draws ordered most recent first."""
    return draws_from_dataframe(get_all_draws(max_date))


def get_issued_combinations(target_date: date) -> Set[str]:
    """
    Canonical keys already issued for a target draw date.

    Raises:
        IssuedKeysUnavailable: If the store cannot be read; an empty set
            would let already issued combinations through
    """
    try:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                "SELECT canonical_key FROM issued_combinations WHERE target_date = ?",
                (target_date.isoformat(),),
            )
            return {row[0] for row in cursor.fetchall()}
    except sqlite3.Error as e:
        logger.error(f"Failed to read issued combinations for {target_date}: {e}")
        raise IssuedKeysUnavailable(
            f"Issued combinations for {target_date} could not be read", target_date=target_date.isoformat()
        ) from e


def persist_combination(combination: GeneratedCombination, target_date: date) -> bool:
    """
    Store an accepted combination for its target date.

    Returns:
        True if stored, False if the key already existed for that date
    """
    try:
        with get_db_connection() as conn:
            cursor = conn.cursor()
            cursor.execute(
                """
                INSERT OR IGNORE INTO issued_combinations (target_date, numbers, stars, canonical_key)
                VALUES (?, ?, ?, ?)
                """,
                (
                    target_date.isoformat(),
                    ",".join(str(n) for n in combination.numbers),
                    ",".join(str(s) for s in combination.stars),
                    combination.canonical_key,
                ),
            )
            conn.commit()
            stored = cursor.rowcount == 1
        if stored:
            logger.info(f"Combination {combination.canonical_key} saved for {target_date}")
        else:
            logger.warning(f"Combination {combination.canonical_key} already issued for {target_date}")
        return stored
    except sqlite3.Error as e:
        logger.error(f"Failed to persist combination {combination.canonical_key}: {e}")
        raise
