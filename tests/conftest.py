import os
import sys
from datetime import date, timedelta

import numpy as np
import pytest

# Ensure repository root is on sys.path so `import vivier` works during tests
REPO_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if REPO_ROOT not in sys.path:
    sys.path.insert(0, REPO_ROOT)

from vivier.models import Draw, SignalFamily, WindowSpec  # noqa: E402

LATEST_DRAW = date(2026, 10, 13)


def draw_date(index: int) -> date:
    """Date of the index-th most recent draw (one draw every 4 days)"""
    return LATEST_DRAW - timedelta(days=4 * index)


def make_leader_history(size: int):
    """
    Even draws hold numbers 1-5 and stars 1-2; odd draws rotate through
    blocks 6-10, 11-15, ..., 46-50 and star pairs 3-4, ..., 11-12.
    """
    history = []
    for i in range(size):
        if i % 2 == 0:
            numbers, stars = (1, 2, 3, 4, 5), (1, 2)
        else:
            block = (i // 2) % 9
            numbers = tuple(range(6 + 5 * block, 11 + 5 * block))
            pair = (i // 2) % 5
            stars = (3 + 2 * pair, 4 + 2 * pair)
        history.append(Draw(draw_date(i), numbers, stars))
    return history


def make_random_history(size: int, seed: int = 7):
    rng = np.random.default_rng(seed)
    history = []
    for i in range(size):
        numbers = tuple(int(n) for n in rng.choice(np.arange(1, 51), size=5, replace=False))
        stars = tuple(int(s) for s in rng.choice(np.arange(1, 13), size=2, replace=False))
        history.append(Draw(draw_date(i), numbers, stars))
    return history


def all_windows():
    return {family: WindowSpec.all() for family in SignalFamily}


@pytest.fixture(scope="session")
def leader_history():
    return make_leader_history(2000)


@pytest.fixture(scope="session")
def random_history():
    return make_random_history(1200)


@pytest.fixture()
def test_db_path(tmp_path, monkeypatch):
    # Force the application to use a throwaway database file
    import vivier.database as db
    path = str(tmp_path / "vivier_test.db")
    monkeypatch.setattr(db, "get_db_path", lambda: path, raising=True)
    db.initialize_database()
    return path
