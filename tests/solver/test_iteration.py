"""Tests for the iteration trail and ``is_improving``."""

from __future__ import annotations

import pytest

from marketclear.cascade import CalculationGraph
from marketclear.core import CalcCounter, MarketSet
from marketclear.solver import BisectAll, SolverComponent


def make_component() -> SolverComponent:
    return BisectAll(CalculationGraph(MarketSet()), CalcCounter())


def record(component: SolverComponent, values: list[float]) -> None:
    for value in values:
        component.add_iteration(component.name, value)


def test_improving_with_short_trail() -> None:
    component = make_component()
    record(component, [1.0, 1.0, 1.0])
    assert component.is_improving(2)


def test_improving_when_falling() -> None:
    component = make_component()
    record(component, [10.0, 9.0, 8.0, 7.0, 6.0, 5.0])
    assert component.is_improving(3)


def test_not_improving_on_plateau() -> None:
    component = make_component()
    record(component, [0.5] * 10)
    assert not component.is_improving(5)


def test_not_improving_when_oscillating() -> None:
    component = make_component()
    record(component, [1.0, 0.2, 1.0, 0.2, 1.0, 0.2])
    assert not component.is_improving(3)


def test_not_improving_when_rising() -> None:
    component = make_component()
    record(component, [1.0, 1.0, 2.0, 2.0])
    assert not component.is_improving(2)


def test_window_must_be_positive() -> None:
    with pytest.raises(ValueError):
        make_component().is_improving(0)


def test_start_method_clears_trail() -> None:
    component = make_component()
    record(component, [1.0, 0.5])
    assert [it.red for it in component.iterations] == [1.0, 0.5]
    assert component.iterations[0].name == "bisect_all"

    component.start_method()
    assert component.iterations == []
