"""
Configuration of a run: pydantic models loaded from and saved to YAML.

A configuration file mirrors the nested sections below:

    name: hd_decay
    grid: {n: 64, dim: 2}
    physics: {variant: hd, nu: 0.001}
    time: {dt: 0.001, step: 1000, order: 2}
    forcing: {kind: band, f0: 0.1, kdn: 2, kup: 3, rand: 1, cort: 0.1}
    initial_condition: {kind: random, amplitude: 1.0}
    output: {tstep: 10, cstep: 500, sstep: 100, output_dir: output}
    restart: {stat: 0}
    precision: double

Every field has a default, so a file only lists what it changes. Invalid
values raise ``pydantic.ValidationError`` when the file is loaded, before any
field is allocated.

Example:
    >>> config = SimulationConfig.from_yaml("configs/hd_forced.yaml")
    >>> print(config.summary())
    >>> config.to_yaml(config.get_output_dir() / "config.yaml")
"""

from pathlib import Path
from typing import Literal, Optional, Tuple, Union

import jax
import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from psmhd.physics import EVALUATORS, Variant


class GridConfig(BaseModel):
    """Resolution n^dim of the periodic box [0, 2π)^dim."""

    model_config = ConfigDict(extra="forbid")

    n: int = Field(64, gt=0, description="Linear resolution (even)")
    dim: int = Field(2, ge=2, le=3, description="Spatial dimension")

    @field_validator("n")
    @classmethod
    def validate_even(cls, v: int) -> int:
        if v % 2 != 0:
            raise ValueError(f"Grid size must be even, got {v}")
        return v

    @property
    def kmax(self) -> float:
        return (self.n / 3.0) ** 2


class PhysicsConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    variant: Variant = Field(Variant.HD, description="Equation system")
    nu: float = Field(1e-3, ge=0.0, description="Kinematic viscosity")
    mu: float = Field(1e-3, ge=0.0, description="Magnetic diffusivity")
    b0: float = Field(0.0, description="Uniform magnetic field along x (mhdb)")
    ep: float = Field(0.0, ge=0.0, description="Hall-effect amplitude (hmhd)")


class TimeConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    dt: float = Field(1e-3, gt=0.0, description="Time step")
    step: int = Field(100, ge=0, description="Total number of steps")
    order: int = Field(2, ge=1, description="Runge-Kutta order (number of sub-stages)")


class ForcingConfig(BaseModel):
    """
    Forcing spectrum and its phase randomization.

    ``period = int(cort / dt)`` steps separate two phase updates; with
    ``rand = 0`` the spectrum is never rotated.
    """

    model_config = ConfigDict(extra="forbid")

    kind: Literal["none", "band", "mode"] = "none"
    f0: float = Field(0.0, ge=0.0, description="Mechanical forcing amplitude")
    m0: float = Field(0.0, ge=0.0, description="Electromotive forcing amplitude")
    kdn: float = Field(1.0, gt=0.0, description="Lower edge of the forced band")
    kup: float = Field(2.0, gt=0.0, description="Upper edge of the forced band")
    kx: int = Field(1, description="Forced mode (kind=mode)")
    ky: int = 0
    kz: int = 0
    rand: Literal[0, 1] = Field(0, description="1 redraws the phase every period")
    cort: float = Field(1.0, gt=0.0, description="Correlation time of the forcing")
    corr: float = Field(0.0, ge=0.0, le=1.0, description="Phase correlation of mk with fk")
    seed: int = Field(0, ge=0)

    @model_validator(mode="after")
    def validate_band(self) -> "ForcingConfig":
        if self.kdn > self.kup:
            raise ValueError(f"Forcing band is empty: kdn={self.kdn} > kup={self.kup}")
        return self


class InitialConditionConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    kind: Literal["zero", "mode", "random", "orszag_tang"] = "random"
    amplitude: float = Field(1.0, ge=0.0, description="Velocity amplitude")
    magnetic_amplitude: float = Field(0.0, ge=0.0)
    kx: int = 1
    ky: int = 0
    kz: int = 0
    kdn: float = Field(1.0, gt=0.0)
    kup: float = Field(2.0, gt=0.0)
    seed: int = Field(0, ge=0)

    @model_validator(mode="after")
    def validate_band(self) -> "InitialConditionConfig":
        if self.kdn > self.kup:
            raise ValueError(f"Initial band is empty: kdn={self.kdn} > kup={self.kup}")
        return self


class OutputConfig(BaseModel):
    """Output cadences (in steps) and destination."""

    model_config = ConfigDict(extra="forbid")

    tstep: int = Field(10, ge=1, description="Global quantities every tstep steps")
    cstep: int = Field(100, ge=1, description="Checkpoint every cstep steps")
    sstep: int = Field(100, ge=1, description="Spectra every sstep steps")
    output_dir: str = "output"
    benchmark: bool = Field(False, description="Skip all output and time the loop")


class RestartConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")

    stat: int = Field(0, ge=0, description="Checkpoint index to restart from (0: fresh start)")


class SimulationConfig(BaseModel):
    """
    Complete run configuration.

    Attributes:
        name: Run name (used in summaries)
        description: Free-form text
        grid, physics, time, forcing, initial_condition, output, restart:
            Configuration sections
        precision: ``double`` enables 64-bit JAX arrays
    """

    model_config = ConfigDict(extra="forbid")

    name: str = "psmhd_run"
    description: Optional[str] = None
    grid: GridConfig = Field(default_factory=GridConfig)
    physics: PhysicsConfig = Field(default_factory=PhysicsConfig)
    time: TimeConfig = Field(default_factory=TimeConfig)
    forcing: ForcingConfig = Field(default_factory=ForcingConfig)
    initial_condition: InitialConditionConfig = Field(default_factory=InitialConditionConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)
    restart: RestartConfig = Field(default_factory=RestartConfig)
    precision: Literal["single", "double"] = "double"

    @model_validator(mode="after")
    def validate_consistency(self) -> "SimulationConfig":
        variant, dim = self.physics.variant, self.grid.dim
        if (variant, dim) not in EVALUATORS:
            raise ValueError(f"Variant '{variant.value}' is not available in {dim}D")

        kmax = self.grid.kmax
        if self.forcing.kind == "band" and self.forcing.kup**2 >= kmax:
            raise ValueError(
                f"Forcing band kup={self.forcing.kup} reaches the dealiasing cutoff "
                f"sqrt(kmax)={kmax**0.5:.2f}"
            )
        if self.initial_condition.kind == "random" and self.initial_condition.kup**2 >= kmax:
            raise ValueError(
                f"Initial band kup={self.initial_condition.kup} reaches the dealiasing "
                f"cutoff sqrt(kmax)={kmax**0.5:.2f}"
            )
        if self.initial_condition.kind == "orszag_tang" and variant == Variant.HD:
            raise ValueError("The Orszag-Tang vortex needs a magnetic variant")

        if self.forcing_period() < 1:
            raise ValueError(
                f"Forcing correlation time cort={self.forcing.cort} is shorter than "
                f"one step dt={self.time.dt}"
            )
        return self

    # -------------------------------------------------------------------------
    # Derived quantities
    # -------------------------------------------------------------------------

    def forcing_period(self) -> int:
        """Steps between forcing updates, rounded down."""
        return int(self.forcing.cort / self.time.dt)

    def forcing_mode(self) -> Tuple[int, ...]:
        return self._mode(self.forcing.kx, self.forcing.ky, self.forcing.kz)

    def initial_mode(self) -> Tuple[int, ...]:
        ic = self.initial_condition
        return self._mode(ic.kx, ic.ky, ic.kz)

    def _mode(self, kx: int, ky: int, kz: int) -> Tuple[int, ...]:
        return (kx, ky) if self.grid.dim == 2 else (kx, ky, kz)

    def get_output_dir(self, create: bool = True) -> Path:
        path = Path(self.output.output_dir)
        if create:
            path.mkdir(parents=True, exist_ok=True)
        return path

    def apply_precision(self) -> None:
        """Select 32- or 64-bit JAX arrays; call before any array is created."""
        jax.config.update("jax_enable_x64", self.precision == "double")

    # -------------------------------------------------------------------------
    # YAML
    # -------------------------------------------------------------------------

    @classmethod
    def from_yaml(cls, path: Union[str, Path]) -> "SimulationConfig":
        """
        Load and validate a configuration file.

        Raises:
            FileNotFoundError: If the file does not exist
            pydantic.ValidationError: If a value is invalid
        """
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Config file not found: {path}")
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls.model_validate(data)

    def to_yaml(self, path: Union[str, Path]) -> None:
        with open(path, "w") as f:
            yaml.safe_dump(self.model_dump(mode="json"), f, sort_keys=False)

    def summary(self) -> str:
        """Human-readable summary of the run."""
        lines = [
            "=" * 70,
            f"Run: {self.name}",
        ]
        if self.description:
            lines.append(f"  {self.description}")
        lines += [
            "=" * 70,
            f"Grid:      {self.grid.n}^{self.grid.dim}, kmax = {self.grid.kmax:.1f}",
            f"Physics:   {self.physics.variant.value}, nu = {self.physics.nu:g}, "
            f"mu = {self.physics.mu:g}, b0 = {self.physics.b0:g}, ep = {self.physics.ep:g}",
            f"Time:      dt = {self.time.dt:g}, step = {self.time.step}, order = {self.time.order}",
            f"Forcing:   {self.forcing.kind}, f0 = {self.forcing.f0:g}, m0 = {self.forcing.m0:g}, "
            f"rand = {self.forcing.rand}, period = {self.forcing_period()} steps",
            f"Initial:   {self.initial_condition.kind}, amplitude = {self.initial_condition.amplitude:g}",
            f"Output:    tstep = {self.output.tstep}, cstep = {self.output.cstep}, "
            f"sstep = {self.output.sstep} -> {self.output.output_dir}",
        ]
        if self.output.benchmark:
            lines.append("Benchmark: output disabled")
        if self.restart.stat > 0:
            lines.append(f"Restart:   from checkpoint {self.restart.stat}")
        lines.append("=" * 70)
        return "\n".join(lines)


# =============================================================================
# Templates
# =============================================================================


def hd_decay_config(n: int = 64) -> SimulationConfig:
    """Freely decaying 2D turbulence from a random large-scale flow."""
    return SimulationConfig(
        name="hd_decay",
        description="Decaying 2D Navier-Stokes turbulence",
        grid=GridConfig(n=n),
        physics=PhysicsConfig(variant=Variant.HD, nu=2e-3),
        time=TimeConfig(dt=1e-3, step=4000, order=2),
        initial_condition=InitialConditionConfig(kind="random", amplitude=1.0, kdn=1, kup=3),
        output=OutputConfig(tstep=10, cstep=500, sstep=100, output_dir="output/hd_decay"),
    )


def hd_forced_config(n: int = 64) -> SimulationConfig:
    """Forced 2D turbulence with a randomly re-phased forcing band."""
    return SimulationConfig(
        name="hd_forced",
        description="Forced 2D Navier-Stokes turbulence",
        grid=GridConfig(n=n),
        physics=PhysicsConfig(variant=Variant.HD, nu=2e-3),
        time=TimeConfig(dt=1e-3, step=10000, order=2),
        forcing=ForcingConfig(kind="band", f0=0.5, kdn=3, kup=4, rand=1, cort=0.1, seed=1),
        initial_condition=InitialConditionConfig(kind="zero"),
        output=OutputConfig(tstep=10, cstep=1000, sstep=250, output_dir="output/hd_forced"),
    )


def mhd_forced_config(n: int = 64) -> SimulationConfig:
    """Forced 2D MHD with partially correlated mechanical and electromotive forcing."""
    return SimulationConfig(
        name="mhd_forced",
        description="Forced 2D MHD turbulence",
        grid=GridConfig(n=n),
        physics=PhysicsConfig(variant=Variant.MHD, nu=2e-3, mu=2e-3),
        time=TimeConfig(dt=1e-3, step=5000, order=3),
        forcing=ForcingConfig(
            kind="band", f0=0.5, m0=0.2, kdn=2, kup=3, rand=1, cort=0.05, corr=0.5, seed=3
        ),
        initial_condition=InitialConditionConfig(kind="random", amplitude=0.1, magnetic_amplitude=0.1),
        output=OutputConfig(tstep=10, cstep=1000, sstep=250, output_dir="output/mhd_forced"),
    )


def orszag_tang_config(n: int = 128) -> SimulationConfig:
    """The Orszag-Tang vortex (standard 2D MHD benchmark)."""
    return SimulationConfig(
        name="orszag_tang",
        description="Orszag-Tang vortex",
        grid=GridConfig(n=n),
        physics=PhysicsConfig(variant=Variant.MHD, nu=1e-3, mu=1e-3),
        time=TimeConfig(dt=1e-3, step=1000, order=4),
        initial_condition=InitialConditionConfig(kind="orszag_tang"),
        output=OutputConfig(tstep=10, cstep=250, sstep=100, output_dir="output/orszag_tang"),
    )


def hall_mhd_config(n: int = 64) -> SimulationConfig:
    """Decaying 2.5D Hall-MHD."""
    return SimulationConfig(
        name="hall_mhd",
        description="Decaying 2.5D Hall-MHD turbulence",
        grid=GridConfig(n=n),
        physics=PhysicsConfig(variant=Variant.HMHD, nu=2e-3, mu=2e-3, ep=0.1),
        time=TimeConfig(dt=5e-4, step=2000, order=4),
        initial_condition=InitialConditionConfig(
            kind="random", amplitude=0.5, magnetic_amplitude=0.5, kdn=1, kup=3
        ),
        output=OutputConfig(tstep=10, cstep=500, sstep=100, output_dir="output/hall_mhd"),
    )


def hd3d_config(n: int = 32) -> SimulationConfig:
    """Forced 3D Navier-Stokes turbulence."""
    return SimulationConfig(
        name="hd3d",
        description="Forced 3D Navier-Stokes turbulence",
        grid=GridConfig(n=n, dim=3),
        physics=PhysicsConfig(variant=Variant.HD, nu=1e-2),
        time=TimeConfig(dt=5e-3, step=1000, order=2),
        forcing=ForcingConfig(kind="band", f0=0.5, kdn=1, kup=2, rand=1, cort=0.5, seed=5),
        initial_condition=InitialConditionConfig(kind="random", amplitude=0.5, kdn=1, kup=2),
        output=OutputConfig(tstep=10, cstep=500, sstep=100, output_dir="output/hd3d"),
    )


TEMPLATES = {
    "hd_decay": hd_decay_config,
    "hd_forced": hd_forced_config,
    "mhd_forced": mhd_forced_config,
    "orszag_tang": orszag_tang_config,
    "hall_mhd": hall_mhd_config,
    "hd3d": hd3d_config,
}
