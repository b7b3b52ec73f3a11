"""
Tests for the low-storage Runge-Kutta scheme.

Validates:
- A vanishing right-hand side leaves the fields bit-identical
- Linear decay matches the truncated Taylor amplification exactly
- Convergence order on a nonlinear scalar problem
- Real-axis stability limits of orders 1-4
"""

import math

import jax.numpy as jnp
import numpy as np
import pytest

from psmhd.spectral import WavenumberGrid
from psmhd.timestepping import (
    real_axis_stability_limit,
    runge_kutta_step,
    taylor_amplification,
)


class TestRungeKuttaStep:
    """Test suite for runge_kutta_step()."""

    @pytest.mark.parametrize("order", [1, 2, 3, 4])
    def test_zero_rhs_is_identity(self, order):
        rng = np.random.default_rng(0)
        fields = {
            "ps": jnp.asarray(rng.normal(size=(8, 5)) + 1j * rng.normal(size=(8, 5))),
            "az": jnp.asarray(rng.normal(size=(8, 5)) + 1j * rng.normal(size=(8, 5))),
        }

        def rhs(current):
            return {name: jnp.zeros_like(f) for name, f in current.items()}

        new = runge_kutta_step(fields, rhs, dt=0.1, order=order)
        for name in fields:
            np.testing.assert_array_equal(new[name], fields[name])

    @pytest.mark.parametrize("order", [1, 2, 3, 4])
    def test_linear_diffusion_matches_taylor(self, order):
        """∂f/∂t = -νk²f: one step multiplies each mode by Σ z^m/m!, z = -νk²dt."""
        grid = WavenumberGrid.create(16)
        nu, dt = 0.05, 0.02
        f0 = jnp.ones(grid.shape, dtype=complex)

        def rhs(current):
            return {"ps": -nu * grid.k2 * current["ps"]}

        new = runge_kutta_step({"ps": f0}, rhs, dt=dt, order=order)["ps"]

        z = -nu * np.asarray(grid.k2) * dt
        expected = sum(z**m / math.factorial(m) for m in range(order + 1))
        np.testing.assert_allclose(new, expected, rtol=1e-13)

    def test_input_not_modified(self):
        fields = {"ps": jnp.ones(4, dtype=complex)}
        runge_kutta_step(fields, lambda f: {"ps": 2.0 * f["ps"]}, dt=0.1, order=3)
        np.testing.assert_array_equal(fields["ps"], 1.0)

    def test_rhs_called_once_per_stage(self):
        calls = []

        def rhs(current):
            calls.append(1)
            return {"ps": current["ps"]}

        runge_kutta_step({"ps": jnp.ones(3)}, rhs, dt=0.1, order=4)
        assert len(calls) == 4

    @pytest.mark.parametrize("order", [1, 2, 3, 4])
    def test_convergence_order(self, order):
        """
        Global error on df/dt = -f².

        The nested stages reproduce the Taylor series only for linear
        problems; on a nonlinear one the scheme is second order for ord ≥ 2.
        """

        def rhs(current):
            return {"f": -current["f"] ** 2}

        def error(steps):
            dt = 0.5 / steps
            fields = {"f": jnp.asarray([1.0])}
            for _ in range(steps):
                fields = runge_kutta_step(fields, rhs, dt=dt, order=order)
            return abs(float(fields["f"][0]) - 1.0 / 1.5)

        rate = math.log2(error(20) / error(40))
        assert rate == pytest.approx(min(order, 2), abs=0.3)

    def test_invalid_order(self):
        with pytest.raises(ValueError, match="at least 1"):
            runge_kutta_step({"ps": jnp.ones(2)}, lambda f: f, dt=0.1, order=0)


class TestStability:
    """Amplification factor and its real-axis bound."""

    def test_taylor_amplification(self):
        assert taylor_amplification(0.0, 3) == 1.0
        assert taylor_amplification(-1.0, 1) == 0.0
        assert taylor_amplification(-1.0, 2) == pytest.approx(0.5)
        assert taylor_amplification(1.0, 4) == pytest.approx(1 + 1 + 0.5 + 1 / 6 + 1 / 24)

    @pytest.mark.parametrize(
        "order,limit", [(1, 2.0), (2, 2.0), (3, 2.5127), (4, 2.7853)]
    )
    def test_real_axis_limits(self, order, limit):
        assert real_axis_stability_limit(order) == pytest.approx(limit, abs=2e-3)

    def test_limit_is_stable(self):
        for order in (1, 2, 3, 4):
            x = real_axis_stability_limit(order)
            assert abs(taylor_amplification(-x, order)) <= 1.0 + 1e-9
            assert abs(taylor_amplification(-(x + 0.01), order)) > 1.0

    def test_invalid_order(self):
        with pytest.raises(ValueError):
            real_axis_stability_limit(0)
