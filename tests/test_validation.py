"""
Unit tests for parameter validation module.

Tests all validation functions including:
- Diffusive stability of the Runge-Kutta scheme
- Forcing and output cadences
- Rank count against the Fourier columns
- Config dict validation
"""

import pytest

from psmhd.validation import (
    ValidationResult,
    validate_config_dict,
    validate_decomposition,
    validate_diffusion_stability,
    validate_forcing_cadence,
    validate_output_cadence,
    validate_parameters,
)


class TestValidationResult:
    """Test ValidationResult dataclass."""

    def test_print_report_no_crash(self, capsys):
        """Ensure print_report doesn't crash."""
        result = ValidationResult(
            valid=False,
            warnings=["Test warning"],
            errors=["Test error"],
            suggestions=["Test suggestion"]
        )
        result.print_report()
        captured = capsys.readouterr()
        assert "ERRORS" in captured.out
        assert "WARNINGS" in captured.out
        assert "SUGGESTIONS" in captured.out

    def test_print_report_all_valid(self, capsys):
        ValidationResult(True, [], [], []).print_report()
        assert "All parameters valid" in capsys.readouterr().out

    def test_extend(self):
        result = ValidationResult(True, ["w"], [], [])
        result.extend(ValidationResult(False, [], ["e"], ["s"]))
        assert not result.valid
        assert result.warnings == ["w"]
        assert result.errors == ["e"]
        assert result.suggestions == ["s"]


class TestDiffusionStability:
    """Test validate_diffusion_stability() (n=96: kmax = 1024)."""

    def test_stable(self):
        result = validate_diffusion_stability(nu=1e-3, mu=1e-3, n=96, dt=1e-3, order=2)
        assert result.valid
        assert len(result.warnings) == 0

    def test_unstable(self):
        """z = 1e-2 · 1024 · 0.25 = 2.56 > 2."""
        result = validate_diffusion_stability(nu=1e-2, mu=0.0, n=96, dt=0.25, order=2)
        assert not result.valid
        assert "Diffusive instability" in result.errors[0]
        assert any("Reduce dt" in s for s in result.suggestions)

    def test_higher_order_widens_interval(self):
        """z = 2.56 is inside the order-4 interval (≈2.785) but close to its edge."""
        result = validate_diffusion_stability(nu=1e-2, mu=0.0, n=96, dt=0.25, order=4)
        assert result.valid
        assert len(result.warnings) == 1

    def test_near_limit_warning(self):
        """z = 1.8 is 90% of the order-2 interval."""
        result = validate_diffusion_stability(nu=1.7578125, mu=0.0, n=96, dt=1e-3, order=2)
        assert result.valid
        assert "close to the stability limit" in result.warnings[0]
        assert any("higher Runge-Kutta order" in s for s in result.suggestions)

    def test_largest_diffusivity_counts(self):
        result = validate_diffusion_stability(nu=1e-5, mu=1e-2, n=96, dt=0.25, order=2)
        assert not result.valid

    def test_inviscid_is_stable(self):
        result = validate_diffusion_stability(nu=0.0, mu=0.0, n=96, dt=1.0, order=1)
        assert result.valid


class TestCadences:
    """Forcing and output cadences."""

    def test_forcing_period_below_one_step(self):
        result = validate_forcing_cadence(cort=0.005, dt=0.01, rand=1)
        assert not result.valid
        assert "int(cort/dt) = 0" in result.errors[0]

    def test_white_noise_warning(self):
        result = validate_forcing_cadence(cort=0.015, dt=0.01, rand=1)
        assert result.valid
        assert "every step" in result.warnings[0]

    def test_fixed_forcing_no_warning(self):
        result = validate_forcing_cadence(cort=0.015, dt=0.01, rand=0)
        assert result.valid
        assert len(result.warnings) == 0

    def test_output_cadence_longer_than_run(self):
        result = validate_output_cadence(step=10, tstep=5, cstep=20, sstep=10)
        assert result.valid
        assert len(result.warnings) == 1
        assert "cstep" in result.warnings[0]


class TestDecomposition:
    """Test validate_decomposition()."""

    def test_enough_columns(self):
        assert validate_decomposition(n=8, size=5).valid

    def test_too_many_ranks(self):
        result = validate_decomposition(n=8, size=6)
        assert not result.valid
        assert "at most 5 ranks" in result.suggestions[0]


class TestValidateParameters:
    """Test validate_parameters()."""

    def test_all_valid(self):
        result = validate_parameters(
            dt=1e-3, nu=1e-3, mu=1e-3, n=64, order=2, step=1000,
            cort=0.1, rand=1, tstep=10, cstep=100, sstep=100, size=4,
        )
        assert result.valid
        assert len(result.warnings) == 0

    def test_errors_accumulate(self):
        result = validate_parameters(
            dt=0.25, nu=1e-2, mu=0.0, n=96, order=2, cort=0.1, size=100,
        )
        assert not result.valid
        assert len(result.errors) == 3

    def test_no_forcing_check_without_cort(self):
        result = validate_parameters(dt=1e-3, nu=1e-3, mu=0.0, n=64)
        assert result.valid


class TestValidateConfigDict:
    """Test validate_config_dict()."""

    def test_valid_config(self):
        config = {
            "grid": {"n": 64},
            "physics": {"variant": "mhd", "nu": 1e-3, "mu": 1e-3},
            "time": {"dt": 1e-3, "step": 100, "order": 2},
            "output": {"tstep": 10, "cstep": 50, "sstep": 50},
        }
        result = validate_config_dict(config)
        assert result.valid

    def test_empty_config(self):
        """Defaults are a valid (if short) run."""
        assert validate_config_dict({}).valid
        assert validate_config_dict(None).valid

    def test_schema_error_reported_by_field(self):
        result = validate_config_dict({"grid": {"n": 63}})
        assert not result.valid
        assert result.errors[0].startswith("grid.n:")

    def test_unknown_field(self):
        result = validate_config_dict({"physics": {"eta": 1.0}})
        assert not result.valid
        assert "physics.eta" in result.errors[0]

    def test_hd_ignores_resistivity(self):
        config = {"physics": {"variant": "hd", "nu": 1e-3, "mu": 100.0}}
        assert validate_config_dict(config).valid

        config["physics"]["variant"] = "mhd"
        assert not validate_config_dict(config).valid

    def test_rank_count(self):
        config = {"grid": {"n": 8}, "initial_condition": {"kind": "zero"}}
        assert validate_config_dict(config, size=5).valid
        assert not validate_config_dict(config, size=6).valid
