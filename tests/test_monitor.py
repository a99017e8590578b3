"""Tests for the convergence monitor."""

import numpy as np
import pytest

from mgcmfd.solvers import ConvergenceMonitor, Status


def run(monitor, residuals):
    """Feed a residual sequence; returns the 1-based position that terminated it."""
    if monitor.init(residuals[0]):
        return 1
    for iteration, r in enumerate(residuals[1:], start=1):
        if monitor.check(iteration, r):
            return iteration + 1
    return None


class TestConvergenceMonitor:
    """Tests for success, divergence and the iteration budget."""

    def test_success_at_fourth_value(self):
        monitor = ConvergenceMonitor(0.01, 0.01, 100)
        position = run(monitor, [1.0, 0.5, 0.49, 0.001])
        assert position == 4
        assert monitor.status is Status.SUCCESS
        assert monitor.result().iterations == 3
        assert monitor.result().residuals == [1.0, 0.5, 0.49, 0.001]

    def test_initial_residual_below_absolute(self):
        monitor = ConvergenceMonitor(1e-8, 0.0, 10)
        assert monitor.init(1e-9)
        assert monitor.result().status is Status.SUCCESS
        assert monitor.result().iterations == 0

    def test_zero_initial_residual(self):
        monitor = ConvergenceMonitor(0.0, 0.0, 10)
        assert monitor.init(0.0)
        assert monitor.status is Status.SUCCESS

    def test_relative_tolerance(self):
        monitor = ConvergenceMonitor(0.0, 1e-3, 100)
        assert run(monitor, [10.0, 1.0, 0.009]) == 3
        assert monitor.status is Status.SUCCESS

    def test_divergence(self):
        monitor = ConvergenceMonitor(1e-10, 0.0, 100)
        assert run(monitor, [1.0, 0.5, 0.6]) == 3
        assert monitor.status is Status.DIVERGE

    def test_first_iteration_increase_tolerated(self):
        monitor = ConvergenceMonitor(1e-10, 0.0, 100)
        assert run(monitor, [1.0, 2.0, 1.5]) is None
        assert monitor.status is Status.RUNNING

    def test_divergence_disabled(self):
        monitor = ConvergenceMonitor(1e-10, 0.0, 3, monitor_diverge=False)
        assert run(monitor, [1.0, 0.5, 0.6, 0.7]) == 4
        assert monitor.status is Status.MAX_ITERATION

    def test_non_finite_is_divergence(self):
        monitor = ConvergenceMonitor(1e-10, 0.0, 100, monitor_diverge=False)
        assert run(monitor, [1.0, np.nan]) == 2
        assert monitor.status is Status.DIVERGE

    def test_non_finite_initial_residual(self):
        monitor = ConvergenceMonitor(1e-10, 0.0, 100)
        assert monitor.init(np.inf)
        assert monitor.result().status is Status.DIVERGE
        assert monitor.result().iterations == 0

    def test_result_of_unfinished_monitor(self):
        monitor = ConvergenceMonitor(1e-10, 0.0, 100)
        run(monitor, [1.0, 0.9])
        result = monitor.result()
        assert result.status is Status.MAX_ITERATION
        assert result.final_residual == pytest.approx(0.9)

    def test_logging_levels(self, caplog):
        monitor = ConvergenceMonitor(0.01, 0.0, 10, monitor_level=2, name="probe")
        with caplog.at_level("INFO", logger="mgcmfd.solvers.monitor"):
            run(monitor, [1.0, 0.001])
        assert "probe iteration" in caplog.text
        assert "converged" in caplog.text

    def test_dataframe(self):
        monitor = ConvergenceMonitor(0.01, 0.0, 10)
        run(monitor, [1.0, 0.5, 0.001])
        df = monitor.result().to_dataframe()
        assert list(df["iteration"]) == [0, 1, 2]
        assert df["residual"].iloc[-1] == 0.001
