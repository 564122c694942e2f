from typing import List, Tuple


SECONDS_PER_DAY = 86400


def values_from_series(series: List[Tuple[float, float]]) -> List[float]:
    """Extract numeric values from a list of (timestamp, value) tuples.
    Drops NaNs and non-finite values.
    """
    vals: List[float] = []
    for ts, v in series:
        if v is None:
            continue
        try:
            fv = float(v)
        except (TypeError, ValueError):
            continue
        if fv != fv or fv in (float('inf'), float('-inf')):
            continue
        vals.append(fv)
    return vals


def daily_values(series: List[Tuple[float, float]]) -> List[float]:
    """Collapse a series into one value per UTC day, keeping the last sample of each day.

    Output is ordered oldest first, which is what the trend estimator expects.
    """
    by_day = {}
    for ts, v in sorted(series, key=lambda p: p[0]):
        cleaned = values_from_series([(ts, v)])
        if not cleaned:
            continue
        by_day[int(ts // SECONDS_PER_DAY)] = cleaned[0]
    return [by_day[day] for day in sorted(by_day)]
