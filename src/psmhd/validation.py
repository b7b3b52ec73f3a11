"""
Parameter Validation

Checks a run's parameters before anything is allocated, so that obviously
unstable or inconsistent runs are rejected up front with a readable report.

Key checks:
- Diffusive stability of the truncated-Taylor RK scheme: the fastest decaying
  resolved mode has z = -max(ν, μ)·kmax·dt, which must lie inside the real-axis
  stability interval of order ``ord`` (2 for ord ≤ 2, ≈2.51 for 3, ≈2.79 for 4)
- Forcing cadence: int(cort/dt) ≥ 1
- Output cadences shorter than the run
- Rank count against the number of Fourier columns

The advective CFL limit depends on the evolving flow and is not checked here.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional

from pydantic import ValidationError

from psmhd.config import SimulationConfig
from psmhd.physics import Variant
from psmhd.timestepping import real_axis_stability_limit

# Warn when the stiffest mode uses more than this fraction of the stability interval
STABILITY_WARNING_RATIO = 0.8


@dataclass
class ValidationResult:
    """Result of parameter validation."""

    valid: bool
    warnings: List[str]
    errors: List[str]
    suggestions: List[str]

    def print_report(self):
        """Print human-readable validation report."""
        if self.valid and not self.warnings:
            print("✓ All parameters valid")
            return

        if self.errors:
            print("\n❌ ERRORS (must fix):")
            for err in self.errors:
                print(f"  • {err}")

        if self.warnings:
            print("\n⚠️  WARNINGS (recommended fixes):")
            for warn in self.warnings:
                print(f"  • {warn}")

        if self.suggestions:
            print("\n💡 SUGGESTIONS:")
            for sug in self.suggestions:
                print(f"  • {sug}")

    def extend(self, other: "ValidationResult") -> None:
        self.warnings.extend(other.warnings)
        self.errors.extend(other.errors)
        self.suggestions.extend(other.suggestions)
        self.valid = not self.errors


def validate_diffusion_stability(
    nu: float,
    mu: float,
    n: int,
    dt: float,
    order: int,
) -> ValidationResult:
    """
    Check that the most damped resolved mode is stable under the RK scheme.

    Parameters
    ----------
    nu, mu : float
        Viscosity and magnetic diffusivity
    n : int
        Linear resolution (kmax = (n/3)²)
    dt : float
        Time step
    order : int
        Runge-Kutta order

    Returns
    -------
    ValidationResult
    """
    errors = []
    warnings_list = []
    suggestions = []

    diffusivity = max(nu, mu)
    kmax = (n / 3.0) ** 2
    z = diffusivity * kmax * dt
    limit = real_axis_stability_limit(order)

    if z > limit:
        errors.append(
            f"Diffusive instability: max(ν, μ)·kmax·dt = {z:.3f} > {limit:.3f} "
            f"(stability limit of order {order})"
        )
        if diffusivity > 0.0:
            suggestions.append(
                f"Reduce dt to < {limit / (diffusivity * kmax):.3e} "
                f"or max(ν, μ) to < {limit / (kmax * dt):.3e}"
            )
    elif z > STABILITY_WARNING_RATIO * limit:
        warnings_list.append(
            f"Diffusion close to the stability limit: max(ν, μ)·kmax·dt = {z:.3f} "
            f"({z / limit:.0%} of {limit:.3f})"
        )
        if order < 4:
            suggestions.append("A higher Runge-Kutta order widens the stability interval")

    return ValidationResult(len(errors) == 0, warnings_list, errors, suggestions)


def validate_forcing_cadence(cort: float, dt: float, rand: int) -> ValidationResult:
    """The forcing period int(cort/dt) must be at least one step."""
    errors = []
    warnings_list = []
    suggestions = []

    period = int(cort / dt)
    if period < 1:
        errors.append(f"Forcing period int(cort/dt) = {period} < 1 (cort={cort}, dt={dt})")
        suggestions.append(f"Set cort ≥ dt = {dt}")
    elif rand == 1 and period == 1:
        warnings_list.append("Forcing phase is redrawn every step (white-noise forcing)")

    return ValidationResult(len(errors) == 0, warnings_list, errors, suggestions)


def validate_output_cadence(
    step: int,
    tstep: int,
    cstep: int,
    sstep: int,
) -> ValidationResult:
    """Warn about outputs that would only happen at step 0."""
    warnings_list = []
    for name, cadence in (("tstep", tstep), ("cstep", cstep), ("sstep", sstep)):
        if cadence > step:
            warnings_list.append(
                f"{name} = {cadence} exceeds the run length ({step} steps): "
                f"only step 0 is written"
            )
    return ValidationResult(True, warnings_list, [], [])


def validate_decomposition(n: int, size: int) -> ValidationResult:
    errors = []
    suggestions = []
    if size > n // 2 + 1:
        errors.append(
            f"{size} ranks for only {n // 2 + 1} Fourier columns (n={n})"
        )
        suggestions.append(f"Run on at most {n // 2 + 1} ranks")
    return ValidationResult(len(errors) == 0, [], errors, suggestions)


def validate_parameters(
    dt: float,
    nu: float,
    mu: float,
    n: int,
    order: int = 2,
    step: int = 0,
    cort: Optional[float] = None,
    rand: int = 0,
    tstep: int = 1,
    cstep: int = 1,
    sstep: int = 1,
    size: int = 1,
) -> ValidationResult:
    """
    Comprehensive parameter validation.

    Checks:
    1. Diffusive stability of the RK scheme
    2. Forcing cadence (if a correlation time is given)
    3. Output cadences
    4. Rank count

    Returns
    -------
    ValidationResult
        Combined validation result
    """
    result = ValidationResult(True, [], [], [])
    result.extend(validate_diffusion_stability(nu, mu, n, dt, order))
    if cort is not None:
        result.extend(validate_forcing_cadence(cort, dt, rand))
    result.extend(validate_output_cadence(step, tstep, cstep, sstep))
    result.extend(validate_decomposition(n, size))
    return result


def validate_config_dict(config: Dict, size: int = 1) -> ValidationResult:
    """
    Validate a configuration dictionary (the parsed YAML file).

    The dictionary is first checked against ``SimulationConfig``; schema
    errors are reported one per offending field. A well-formed config is then
    run through ``validate_parameters``.

    Example
    -------
    >>> config = {"grid": {"n": 64}, "physics": {"nu": 1e-3}, "time": {"dt": 1e-3}}
    >>> result = validate_config_dict(config)
    >>> result.print_report()
    """
    try:
        sim = SimulationConfig.model_validate(config or {})
    except ValidationError as e:
        errors = []
        for error in e.errors():
            location = ".".join(str(part) for part in error["loc"]) or "config"
            errors.append(f"{location}: {error['msg']}")
        return ValidationResult(False, [], errors, [])

    return validate_parameters(
        dt=sim.time.dt,
        nu=sim.physics.nu,
        mu=0.0 if sim.physics.variant == Variant.HD else sim.physics.mu,
        n=sim.grid.n,
        order=sim.time.order,
        step=sim.time.step,
        cort=sim.forcing.cort,
        rand=sim.forcing.rand,
        tstep=sim.output.tstep,
        cstep=sim.output.cstep,
        sstep=sim.output.sstep,
        size=size,
    )
