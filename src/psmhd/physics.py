"""
Right-hand-side evaluators for the incompressible HD, MHD and Hall-MHD systems.

Each solver variant is one class implementing the same contract: given the
Fourier coefficients of its evolved fields (at one Runge-Kutta sub-stage) and
the forcing spectra, return ∂/∂t of every field. The variant is a closed set
(``Variant``) chosen once from the configuration; only the fields of the
selected variant are ever allocated.

2D variants use the streamfunction / flux-function formulation:
- velocity u = ∇×(ψ ẑ) (+ vz ẑ in 2.5D), vorticity ω = -∇²ψ → ω̂ = k²ψ̂
- magnetic field b = ∇×(a ẑ) (+ bz ẑ), current j = -∇²a → ĵ = k²â

The nonlinearity is the Poisson bracket {f,g} = ∂x f ∂y g - ∂y f ∂x g,
evaluated pseudo-spectrally: derivatives in Fourier space, products in
physical space, and back. Every RHS coefficient outside the resolved band
tiny ≤ k² < kmax is zero, which both dealiases the quadratic products and
keeps the k=0 mode out of the division by k².

Equations (Fourier space, ν viscosity, μ resistivity):
- HD:    ∂ψ/∂t = {ψ,ω}/k² - νk²ψ + f/k²
- MHD:   ∂ψ/∂t = ({ψ,ω} + {j,a})/k² - νk²ψ + f/k²
         ∂a/∂t = {ψ,a} - μk²a + m
- MHDB:  MHD with a uniform field b0 x̂: + b0 ∂x j in the vorticity equation,
         + b0 ∂x ψ in the induction equation
- HMHD:  2.5D Hall-MHD with Hall amplitude ε (ep):
         ∂vz/∂t = {ψ,vz} + {bz,a} - νk²vz
         ∂a/∂t  = {ψ - ε bz, a} - μk²a + m
         ∂bz/∂t = {ψ,bz} + {vz,a} - ε{j,a} - μk²bz
- HD 3D: ∂u/∂t = P(u×ω) - νk²u + f, P = I - kkᵀ/k² (solenoidal projection)

Reference:
    - Mininni, Rosenberg, Reddy & Pouquet (2011) Parallel Computing 37:316
    - Gómez, Mininni & Dmitruk (2005) Physica Scripta T116:123 (Hall-MHD)
"""

from enum import Enum
from typing import ClassVar, Dict, List, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array

from psmhd.diagnostics import shell_spectrum
from psmhd.spectral import (
    WavenumberGrid,
    derivative_x,
    derivative_y,
    enforce_hermitian,
    inverse_laplacian,
    resolved_mask,
)
from psmhd.transform import SlabTransform

Fields = Dict[str, Array]


class Variant(str, Enum):
    """Closed set of equation systems the engine can advance."""

    HD = "hd"
    MHD = "mhd"
    MHDB = "mhdb"
    HMHD = "hmhd"


# =============================================================================
# Pointwise kernels (JIT-compiled)
# =============================================================================


@jax.jit
def poisson_product(f_x: Array, f_y: Array, g_x: Array, g_y: Array) -> Array:
    """Physical-space Poisson bracket {f,g} = ∂x f ∂y g - ∂y f ∂x g."""
    return f_x * g_y - f_y * g_x


@jax.jit
def streamfunction_rhs(
    nonlinear: Array,
    psi: Array,
    forcing: Array,
    k2: Array,
    kmax: float,
    tiny: float,
    nu: float,
) -> Array:
    """
    ∂ψ/∂t from the vorticity equation: (NL + f)/k² - νk²ψ on the resolved band.

    Args:
        nonlinear: Fourier transform of the vorticity-equation source terms
        psi: Streamfunction (or flux function) coefficients
        forcing: Vorticity forcing spectrum
        k2, kmax, tiny: Wavenumber grid quantities
        nu: Diffusion coefficient
    """
    mask = resolved_mask(k2, kmax, tiny)
    value = inverse_laplacian(nonlinear + forcing, k2, tiny) - nu * k2 * psi
    return jnp.where(mask, value, 0.0)


@jax.jit
def direct_rhs(
    nonlinear: Array,
    field: Array,
    forcing: Array,
    k2: Array,
    kmax: float,
    tiny: float,
    diffusivity: float,
) -> Array:
    """∂f/∂t = NL - D k² f + forcing on the resolved band."""
    mask = resolved_mask(k2, kmax, tiny)
    return jnp.where(mask, nonlinear - diffusivity * k2 * field + forcing, 0.0)


@jax.jit
def _curl(ux: Array, uy: Array, uz: Array, kx: Array, k: Array):
    ikx = 1j * kx
    iky = 1j * k[:, jnp.newaxis]
    ikz = 1j * k[:, jnp.newaxis, jnp.newaxis]
    return (
        iky * uz - ikz * uy,
        ikz * ux - ikx * uz,
        ikx * uy - iky * ux,
    )


@jax.jit
def _cross(ax: Array, ay: Array, az: Array, bx: Array, by: Array, bz: Array):
    return (
        ay * bz - az * by,
        az * bx - ax * bz,
        ax * by - ay * bx,
    )


@jax.jit
def _project(cx: Array, cy: Array, cz: Array, kx: Array, k: Array, k2: Array, tiny: float):
    """Solenoidal projection c - k (k·c)/k², guarded at k=0."""
    kx3 = kx
    ky3 = k[:, jnp.newaxis]
    kz3 = k[:, jnp.newaxis, jnp.newaxis]
    k_dot_c = inverse_laplacian(kx3 * cx + ky3 * cy + kz3 * cz, k2, tiny)
    return cx - kx3 * k_dot_c, cy - ky3 * k_dot_c, cz - kz3 * k_dot_c


# =============================================================================
# Global reductions
# =============================================================================


def spectral_inner(
    f: Array,
    g: Array,
    grid: WavenumberGrid,
    comm,
    power: int = 0,
) -> float:
    """
    Domain average ⟨F·G⟩ from Fourier coefficients, reduced over all ranks.

    Uses Parseval's theorem on the half spectrum with unnormalized
    coefficients: ⟨F G⟩ = Σ w k^(2p) Re(f̂* ĝ) / N², where w doubles every
    column with 0 < kx < n/2 and N = n^dim. ``power`` selects which derivative
    is paired: p=0 the fields themselves, p=1 their gradients (velocity from a
    streamfunction), p=2 their Laplacians (vorticity, current).
    """
    local = jnp.sum(grid.weights * grid.k2**power * jnp.real(jnp.conj(f) * g))
    total = comm.allreduce(float(local))
    return total / float(grid.npoints) ** 2


def spectral_energy(
    fields: Sequence[Array],
    grid: WavenumberGrid,
    comm,
    power: int = 0,
) -> float:
    """
    Energy ½ Σ⟨|F|²⟩ of a set of fields.

    ``power`` follows the ``kin`` convention of GHOST's normalization:
    power=1 is the kinetic (or magnetic) energy of a streamfunction (flux
    function), power=0 the energy of the fields themselves, power=2 the
    enstrophy (squared current).
    """
    return 0.5 * sum(spectral_inner(f, f, grid, comm, power) for f in fields)


def normalize(
    fields: Sequence[Array],
    amplitude: float,
    grid: WavenumberGrid,
    comm,
    power: int = 0,
) -> List[Array]:
    """
    Rescale fields so that their joint ``spectral_energy`` equals amplitude².

    Args:
        fields: Fourier coefficients of the fields to rescale together
        amplitude: Target amplitude (energy = amplitude²)
        grid: Wavenumber grid of the local slab
        comm: Communicator (the energy is a global reduction)
        power: Energy convention, see ``spectral_energy``

    Returns:
        List of rescaled fields, same order as the input

    Raises:
        ValueError: If the fields carry no energy
    """
    current = spectral_energy(fields, grid, comm, power)
    if current <= 0.0:
        raise ValueError("Cannot normalize fields with zero energy")
    scale = amplitude / np.sqrt(current)
    return [f * scale for f in fields]


# =============================================================================
# Evaluators
# =============================================================================


class RHSEvaluator:
    """
    Base class of the per-variant right-hand-side evaluators.

    Subclasses declare which fields they evolve, which forcing spectra they
    consume (``forcing_groups``: the first group receives the primary random
    phase, the second group the correlated one), and implement ``rhs``.

    Args:
        grid: Wavenumber grid of the local slab
        transform: Slab transform sharing the grid's decomposition
        nu: Kinematic viscosity
        mu: Magnetic diffusivity
        b0: Uniform magnetic field along x (MHDB)
        ep: Hall-effect amplitude (HMHD)
    """

    variant: ClassVar[Variant]
    dim: ClassVar[int] = 2
    field_names: ClassVar[Tuple[str, ...]]
    forcing_groups: ClassVar[Tuple[Tuple[str, ...], ...]]
    # name -> ((field, energy power), ...)
    spectrum_fields: ClassVar[Dict[str, Tuple[Tuple[str, int], ...]]]

    def __init__(
        self,
        grid: WavenumberGrid,
        transform: SlabTransform,
        nu: float = 0.0,
        mu: float = 0.0,
        b0: float = 0.0,
        ep: float = 0.0,
    ):
        if grid.dim != self.dim:
            raise ValueError(
                f"{type(self).__name__} needs a {self.dim}D grid, got dim={grid.dim}"
            )
        self.grid = grid
        self.transform = transform
        self.comm = transform.comm
        self.nu = nu
        self.mu = mu
        self.b0 = b0
        self.ep = ep

    @property
    def forcing_names(self) -> Tuple[str, ...]:
        return tuple(name for group in self.forcing_groups for name in group)

    def zeros(self) -> Fields:
        """Zero evolved fields."""
        return {name: self.grid.zeros() for name in self.field_names}

    def zero_forcing(self) -> Fields:
        return {name: self.grid.zeros() for name in self.forcing_names}

    def rhs(self, fields: Fields, forcing: Fields) -> Fields:
        raise NotImplementedError

    def global_quantities(self, fields: Fields, forcing: Fields) -> Dict[str, float]:
        raise NotImplementedError

    def spectra(self, fields: Fields) -> Dict[str, np.ndarray]:
        """Shell spectra named by ``spectrum_fields`` (collective)."""
        return {
            name: sum(
                shell_spectrum([fields[field]], self.grid, self.comm, power)
                for field, power in entries
            )
            for name, entries in self.spectrum_fields.items()
        }

    # -------------------------------------------------------------------------
    # Transform helpers
    # -------------------------------------------------------------------------

    def _gradient(self, f_hat: Array) -> Tuple[Array, Array]:
        """(∂x f, ∂y f) in physical space, descaled."""
        return (
            self.transform.to_physical(derivative_x(f_hat, self.grid.kx)),
            self.transform.to_physical(derivative_y(f_hat, self.grid.k)),
        )

    def _inner(self, f: Array, g: Array, power: int = 0) -> float:
        return spectral_inner(f, g, self.grid, self.comm, power)


class HD2D(RHSEvaluator):
    """Two-dimensional Navier-Stokes in the streamfunction formulation."""

    variant = Variant.HD
    field_names = ("ps",)
    forcing_groups = (("fk",),)
    spectrum_fields = {"kspectrum": (("ps", 1),)}

    def rhs(self, fields: Fields, forcing: Fields) -> Fields:
        grid = self.grid
        ps = fields["ps"]

        ps_x, ps_y = self._gradient(ps)
        w_x, w_y = self._gradient(grid.k2 * ps)
        nonlinear = self.transform.forward(poisson_product(ps_x, ps_y, w_x, w_y))

        return {
            "ps": streamfunction_rhs(
                nonlinear, ps, forcing["fk"], grid.k2, grid.kmax, grid.tiny, self.nu
            )
        }

    def global_quantities(self, fields: Fields, forcing: Fields) -> Dict[str, float]:
        ps = fields["ps"]
        return {
            "energy": 0.5 * self._inner(ps, ps, 1),
            "enstrophy": 0.5 * self._inner(ps, ps, 2),
            "injection": self._inner(ps, forcing["fk"], 0),
        }


class MHD2D(RHSEvaluator):
    """Two-dimensional incompressible MHD (ψ, a)."""

    variant = Variant.MHD
    field_names = ("ps", "az")
    forcing_groups = (("fk",), ("mk",))
    spectrum_fields = {
        "kspectrum": (("ps", 1),),
        "mspectrum": (("az", 1),),
    }

    def _linear_coupling(self, ps: Array, az: Array) -> Tuple[Array, Array]:
        """Extra linear terms (vorticity source, induction source); none here."""
        return 0.0, 0.0

    def rhs(self, fields: Fields, forcing: Fields) -> Fields:
        grid = self.grid
        ps, az = fields["ps"], fields["az"]

        ps_x, ps_y = self._gradient(ps)
        w_x, w_y = self._gradient(grid.k2 * ps)
        j_x, j_y = self._gradient(grid.k2 * az)
        a_x, a_y = self._gradient(az)

        # Advection of vorticity plus the Lorentz force {j, a}
        vorticity_source = self.transform.forward(
            poisson_product(ps_x, ps_y, w_x, w_y) + poisson_product(j_x, j_y, a_x, a_y)
        )
        induction_source = self.transform.forward(poisson_product(ps_x, ps_y, a_x, a_y))

        extra_w, extra_a = self._linear_coupling(ps, az)

        return {
            "ps": streamfunction_rhs(
                vorticity_source + extra_w, ps, forcing["fk"],
                grid.k2, grid.kmax, grid.tiny, self.nu,
            ),
            "az": direct_rhs(
                induction_source + extra_a, az, forcing["mk"],
                grid.k2, grid.kmax, grid.tiny, self.mu,
            ),
        }

    def global_quantities(self, fields: Fields, forcing: Fields) -> Dict[str, float]:
        ps, az = fields["ps"], fields["az"]
        return {
            "kinetic": 0.5 * self._inner(ps, ps, 1),
            "magnetic": 0.5 * self._inner(az, az, 1),
            "enstrophy": 0.5 * self._inner(ps, ps, 2),
            "current": 0.5 * self._inner(az, az, 2),
            "cross_helicity": self._inner(ps, az, 1),
            "injection_kinetic": self._inner(ps, forcing["fk"], 0),
            "injection_magnetic": self._inner(az, forcing["mk"], 1),
        }


class MHDB2D(MHD2D):
    """
    2D MHD around a uniform magnetic field b0 x̂.

    The total flux function is a + b0·y, so the brackets pick up the linear
    terms {j, b0 y} = b0 ∂x j and {ψ, b0 y} = b0 ∂x ψ.
    """

    variant = Variant.MHDB

    def _linear_coupling(self, ps: Array, az: Array) -> Tuple[Array, Array]:
        return (
            self.b0 * derivative_x(self.grid.k2 * az, self.grid.kx),
            self.b0 * derivative_x(ps, self.grid.kx),
        )


class HallMHD2D(RHSEvaluator):
    """
    2.5D Hall-MHD: in-plane (ψ, a) plus out-of-plane vz and bz.

    The Hall term replaces the field-line advecting velocity by u - ε j, whose
    in-plane streamfunction is ψ - ε bz and out-of-plane component vz - ε j.
    """

    variant = Variant.HMHD
    field_names = ("ps", "az", "vz", "bz")
    forcing_groups = (("fk",), ("mk",))
    spectrum_fields = {
        "kspectrum": (("ps", 1), ("vz", 0)),
        "mspectrum": (("az", 1), ("bz", 0)),
    }

    def rhs(self, fields: Fields, forcing: Fields) -> Fields:
        grid = self.grid
        ps, az, vz, bz = fields["ps"], fields["az"], fields["vz"], fields["bz"]

        ps_x, ps_y = self._gradient(ps)
        w_x, w_y = self._gradient(grid.k2 * ps)
        j_x, j_y = self._gradient(grid.k2 * az)
        a_x, a_y = self._gradient(az)
        vz_x, vz_y = self._gradient(vz)
        bz_x, bz_y = self._gradient(bz)

        ja = poisson_product(j_x, j_y, a_x, a_y)
        bza = poisson_product(bz_x, bz_y, a_x, a_y)

        forward = self.transform.forward
        vorticity_source = forward(poisson_product(ps_x, ps_y, w_x, w_y) + ja)
        vz_source = forward(poisson_product(ps_x, ps_y, vz_x, vz_y) + bza)
        induction_source = forward(poisson_product(ps_x, ps_y, a_x, a_y) - self.ep * bza)
        bz_source = forward(
            poisson_product(ps_x, ps_y, bz_x, bz_y)
            + poisson_product(vz_x, vz_y, a_x, a_y)
            - self.ep * ja
        )

        k2, kmax, tiny = grid.k2, grid.kmax, grid.tiny
        return {
            "ps": streamfunction_rhs(vorticity_source, ps, forcing["fk"], k2, kmax, tiny, self.nu),
            "az": direct_rhs(induction_source, az, forcing["mk"], k2, kmax, tiny, self.mu),
            "vz": direct_rhs(vz_source, vz, 0.0, k2, kmax, tiny, self.nu),
            "bz": direct_rhs(bz_source, bz, 0.0, k2, kmax, tiny, self.mu),
        }

    def global_quantities(self, fields: Fields, forcing: Fields) -> Dict[str, float]:
        ps, az, vz, bz = fields["ps"], fields["az"], fields["vz"], fields["bz"]
        return {
            "kinetic": 0.5 * (self._inner(ps, ps, 1) + self._inner(vz, vz, 0)),
            "magnetic": 0.5 * (self._inner(az, az, 1) + self._inner(bz, bz, 0)),
            "kinetic_z": 0.5 * self._inner(vz, vz, 0),
            "magnetic_z": 0.5 * self._inner(bz, bz, 0),
            "current": 0.5 * self._inner(az, az, 2),
            "injection_kinetic": self._inner(ps, forcing["fk"], 0),
            "injection_magnetic": self._inner(az, forcing["mk"], 1),
        }


class HD3D(RHSEvaluator):
    """Three-dimensional Navier-Stokes in rotational form."""

    variant = Variant.HD
    dim = 3
    field_names = ("vx", "vy", "vz")
    forcing_groups = (("fx", "fy", "fz"),)
    spectrum_fields = {"kspectrum": (("vx", 0), ("vy", 0), ("vz", 0))}

    def rhs(self, fields: Fields, forcing: Fields) -> Fields:
        grid = self.grid
        u = (fields["vx"], fields["vy"], fields["vz"])
        w = _curl(*u, grid.kx, grid.k)

        to_physical = self.transform.to_physical
        u_phys = [to_physical(c) for c in u]
        w_phys = [to_physical(c) for c in w]
        lamb = [self.transform.forward(c) for c in _cross(*u_phys, *w_phys)]

        f = (forcing["fx"], forcing["fy"], forcing["fz"])
        source = _project(
            lamb[0] + f[0], lamb[1] + f[1], lamb[2] + f[2],
            grid.kx, grid.k, grid.k2, grid.tiny,
        )
        zero = jnp.zeros_like(u[0])
        return {
            name: direct_rhs(s, c, zero, grid.k2, grid.kmax, grid.tiny, self.nu)
            for name, s, c in zip(self.field_names, source, u)
        }

    def project(self, fields: Fields) -> Fields:
        """Remove the compressive part of a vector field given as (x, y, z) components."""
        grid = self.grid
        names = tuple(fields)
        if len(names) != 3:
            raise ValueError(f"Expected three vector components, got {names}")
        projected = _project(
            *(fields[name] for name in names), grid.kx, grid.k, grid.k2, grid.tiny
        )
        return dict(zip(names, projected))

    def global_quantities(self, fields: Fields, forcing: Fields) -> Dict[str, float]:
        grid = self.grid
        u = [fields[name] for name in self.field_names]
        w = _curl(*u, grid.kx, grid.k)
        f = [forcing[name] for name in self.forcing_names]
        return {
            "energy": 0.5 * sum(self._inner(c, c, 0) for c in u),
            "enstrophy": 0.5 * sum(self._inner(c, c, 0) for c in w),
            "helicity": sum(self._inner(a, b, 0) for a, b in zip(u, w)),
            "injection": sum(self._inner(a, b, 0) for a, b in zip(u, f)),
        }


EVALUATORS = {
    (Variant.HD, 2): HD2D,
    (Variant.HD, 3): HD3D,
    (Variant.MHD, 2): MHD2D,
    (Variant.MHDB, 2): MHDB2D,
    (Variant.HMHD, 2): HallMHD2D,
}


def create_evaluator(
    variant: Variant,
    grid: WavenumberGrid,
    transform: SlabTransform,
    **parameters: float,
) -> RHSEvaluator:
    """
    Instantiate the evaluator of ``variant`` for the grid's dimension.

    Raises:
        ValueError: If the variant has no evaluator in that dimension
    """
    key = (Variant(variant), grid.dim)
    if key not in EVALUATORS:
        raise ValueError(
            f"Variant '{Variant(variant).value}' is not available in {grid.dim}D"
        )
    return EVALUATORS[key](grid, transform, **parameters)


# =============================================================================
# Initialization
# =============================================================================


def single_mode(
    grid: WavenumberGrid,
    amplitude: float,
    mode: Sequence[int],
) -> Array:
    """
    Fourier coefficients of amplitude·cos(k·x) for one integer wavevector.

    The coefficients are set directly (no transform), so every other mode is
    exactly zero. A mode with kx < 0 is stored as its conjugate partner; on
    the kx = 0 column both members of the conjugate pair are set.

    Args:
        grid: Wavenumber grid of the local slab
        amplitude: Physical amplitude of the cosine
        mode: (kx, ky) in 2D, (kx, ky, kz) in 3D

    Returns:
        Spectral field on the local slab (zeros on ranks not owning kx)
    """
    if len(mode) != grid.dim:
        raise ValueError(f"Mode {tuple(mode)} does not match a {grid.dim}D grid")
    kx, *rest = (int(m) for m in mode)
    if kx < 0:
        kx, rest = -kx, [-m for m in rest]
    if kx >= grid.n // 2 or any(abs(m) >= grid.n // 2 for m in rest):
        raise ValueError(f"Mode {tuple(mode)} is not representable on n={grid.n}")

    field = grid.zeros()
    if not grid.kx_start <= kx < grid.kx_stop:
        return field

    # Leading axes are [kz, ky] in 3D, [ky] in 2D
    index = tuple(m % grid.n for m in reversed(rest))
    partner = tuple((-m) % grid.n for m in reversed(rest))
    column = kx - grid.kx_start
    value = 0.5 * amplitude * grid.npoints

    if kx == 0 and index == partner:
        return field.at[index + (column,)].set(2.0 * value)
    field = field.at[index + (column,)].add(value)
    if kx == 0:
        field = field.at[partner + (column,)].add(value)
    return field


def random_band(
    grid: WavenumberGrid,
    kdn: float,
    kup: float,
    key: Array,
) -> Array:
    """
    Unit-modulus random phases on the shell kdn ≤ |k| ≤ kup.

    Each kx column draws from ``fold_in(key, kx)``, so the result does not
    depend on how many ranks share the spectrum. The kx=0 boundary is
    symmetrized so the field is real in physical space.
    """
    columns = jnp.arange(grid.kx_start, grid.kx_stop)
    shape = (grid.n,) * (grid.dim - 1)

    def draw(column):
        return jax.random.uniform(
            jax.random.fold_in(key, column), shape=shape, maxval=2.0 * jnp.pi
        )

    phases = jnp.moveaxis(jax.vmap(draw)(columns), 0, -1)
    k = jnp.sqrt(grid.k2)
    band = (k >= kdn) & (k <= kup)
    field = jnp.where(band, jnp.exp(1j * phases), 0.0)
    return enforce_hermitian(field, grid)


def initial_condition(
    evaluator: RHSEvaluator,
    kind: str,
    amplitude: float = 1.0,
    magnetic_amplitude: float = 0.0,
    mode: Optional[Sequence[int]] = None,
    kdn: float = 1.0,
    kup: float = 2.0,
    seed: int = 0,
) -> Fields:
    """
    Build the initial Fourier fields of a fresh run.

    Kinds:
        zero: all fields vanish
        mode: a single cosine mode of the velocity field (and of the flux
            function when ``magnetic_amplitude`` is non-zero)
        random: random-phase band kdn ≤ |k| ≤ kup normalized to kinetic
            energy amplitude² (and magnetic energy magnetic_amplitude²)
        orszag_tang: ψ = 2(cos x + cos y), a = cos 2x + 2 cos y (MHD only)

    Returns:
        Dict of spectral fields keyed by the evaluator's field names
    """
    grid, comm = evaluator.grid, evaluator.comm
    fields = evaluator.zeros()

    if kind == "zero":
        return fields

    if kind == "mode":
        if mode is None:
            raise ValueError("Initial condition 'mode' needs a wavevector")
        velocity = evaluator.field_names[0]
        fields[velocity] = single_mode(grid, amplitude, mode)
        if "az" in fields and magnetic_amplitude != 0.0:
            fields["az"] = single_mode(grid, magnetic_amplitude, mode)

    elif kind == "random":
        key = jax.random.PRNGKey(seed)
        if grid.dim == 3:
            keys = jax.random.split(key, 3)
            u = [random_band(grid, kdn, kup, k) for k in keys]
            u = list(evaluator.project(dict(zip(evaluator.field_names, u))).values())
            u = normalize(u, amplitude, grid, comm, power=0)
            fields.update(zip(evaluator.field_names, u))
        else:
            key_u, key_b = jax.random.split(key)
            if amplitude != 0.0:
                (fields["ps"],) = normalize(
                    [random_band(grid, kdn, kup, key_u)], amplitude, grid, comm, power=1
                )
            if "az" in fields and magnetic_amplitude != 0.0:
                (fields["az"],) = normalize(
                    [random_band(grid, kdn, kup, key_b)], magnetic_amplitude, grid, comm, power=1
                )

    elif kind == "orszag_tang":
        if "az" not in fields:
            raise ValueError("The Orszag-Tang vortex needs a magnetic variant")
        fields["ps"] = single_mode(grid, 2.0, (1, 0)) + single_mode(grid, 2.0, (0, 1))
        fields["az"] = single_mode(grid, 1.0, (2, 0)) + single_mode(grid, 2.0, (0, 1))

    else:
        raise ValueError(f"Unknown initial condition '{kind}'")

    if grid.dim == 3:
        fields = evaluator.project(fields)
    return fields
