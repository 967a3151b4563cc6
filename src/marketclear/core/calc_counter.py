"""Counter of calculation-graph evaluations."""

from __future__ import annotations


class CalcCounter:
    """Process-wide, monotonic count of full calculation passes.

    Only the code that invokes the calculation graph increments the counter;
    solver components read it for diagnostics and to bound total work.
    """

    def __init__(self) -> None:
        self._total = 0
        self._period_counts: dict[int, int] = {}
        self._current_period: int | None = None

    def start_period(self, period: int) -> None:
        """Attribute subsequent calculations to ``period``."""
        self._current_period = period
        self._period_counts.setdefault(period, 0)

    def increment(self) -> None:
        self._total += 1
        if self._current_period is not None:
            self._period_counts[self._current_period] += 1

    @property
    def total(self) -> int:
        return self._total

    def period_count(self, period: int) -> int:
        """Number of calculations made while solving ``period``."""
        return self._period_counts.get(period, 0)

    def __repr__(self) -> str:
        return f"CalcCounter(total={self._total})"
