"""
Vivier - Window Resolution
==========================

Turns a WindowSpec into the concrete slice of a most-recent-first history.
"""

from datetime import date
from typing import List, Optional

import pandas as pd
from loguru import logger

from .exceptions import StatisticsUnavailable
from .models import Draw, SignalFamily, WindowSpec, WindowType, WindowUnit


def _cutoff(reference: date, value: int, unit: WindowUnit) -> date:
    ref = pd.Timestamp(reference)
    if unit is WindowUnit.WEEKS:
        return (ref - pd.DateOffset(weeks=value)).date()
    if unit is WindowUnit.MONTHS:
        return (ref - pd.DateOffset(months=value)).date()
    return (ref - pd.DateOffset(years=value)).date()


def resolve_window(
    history: List[Draw],
    spec: WindowSpec,
    reference_date: Optional[date] = None,
    family: Optional[SignalFamily] = None,
) -> List[Draw]:
    """
    Slice a history according to a window specification.

    Args:
        history: Draws ordered most recent first
        spec: Window specification
        reference_date: Date the calendar windows count back from (default: today)
        family: Only used to label errors

    Returns:
        The draws inside the window, still most recent first

    Raises:
        StatisticsUnavailable: If the window holds no usable draw, or a
            custom draw-count window asks for more draws than exist
    """
    label = family.value if family else None
    if not history:
        raise StatisticsUnavailable("Draw history is empty", family=label, window=spec.describe())

    if spec.type is WindowType.ALL:
        window = list(history)
    elif spec.type is WindowType.LAST_N_DRAWS:
        window = list(history[: max(0, spec.value or 0)])
    elif spec.type is WindowType.LAST_YEAR:
        cutoff = _cutoff(reference_date or date.today(), 1, WindowUnit.YEARS)
        window = [d for d in history if d.draw_date >= cutoff]
    else:
        if not spec.value or spec.value <= 0 or spec.unit is None:
            raise StatisticsUnavailable(
                f"Custom window needs a positive value and a unit, got {spec.describe()}",
                family=label, window=spec.describe(),
            )
        if spec.unit is WindowUnit.DRAWS:
            if spec.value > len(history):
                raise StatisticsUnavailable(
                    f"Custom window asks for {spec.value} draws but history holds {len(history)}",
                    family=label, window=spec.describe(),
                )
            window = list(history[: spec.value])
        else:
            cutoff = _cutoff(reference_date or date.today(), spec.value, spec.unit)
            window = [d for d in history if d.draw_date >= cutoff]

    if not window:
        raise StatisticsUnavailable(
            f"Window {spec.describe()} resolves to zero draws", family=label, window=spec.describe()
        )

    logger.debug(f"Window {spec.describe()} resolved to {len(window)} draws" + (f" ({label})" if label else ""))
    return window
