"""
Stochastic large-scale forcing with a finite correlation time.

The forcing spectrum is built once at startup (a random-phase band or a single
mode) and then held fixed in amplitude. With ``rand = 1`` it is re-phased every
``period = int(cort/dt)`` steps: every Fourier coefficient of the first forcing
group is multiplied by a phasor p1 = e^{iθ1}, and the second group (if the
variant has one, e.g. the electromotive forcing of MHD) by
p2 = corr·p1 + (1 - corr)·e^{iθ2}, which partially correlates the two.

A shift x → x + δ of a real field multiplies ĉ(k) by e^{-ik·δ}; a uniform
phasor p on the half spectrum is the same kind of operation, except on the
kx = 0 boundary where the conjugate partner of every stored mode is stored
too. There the partner is multiplied by conj(p) so the forcing stays real.

State machine (per step, driven by the run loop):
    HOLD   → forcing_countdown < period, or rand = 0
    UPDATE → countdown reached period and rand = 1: draw, broadcast, rotate

The phases are drawn on rank 0 from ``fold_in(PRNGKey(seed), update_index)``
and broadcast, so every rank applies the identical rotation and a restarted
run continues the same phase sequence.
"""

from enum import Enum
from functools import partial
from typing import List, Optional, Sequence, Tuple

import jax
import jax.numpy as jnp
from jax import Array

from psmhd.physics import Fields, RHSEvaluator, normalize, random_band, single_mode
from psmhd.spectral import WavenumberGrid, conjugate_pair_masks


class ForcingState(str, Enum):
    HOLD = "hold"
    UPDATE = "update"


# =============================================================================
# Rotation kernel
# =============================================================================


@partial(jax.jit, static_argnames=["owns_boundary"])
def rotate_spectrum(
    field: Array,
    phasor: complex,
    upper: Array,
    partner: Array,
    owns_boundary: bool,
) -> Array:
    """
    Multiply a spectral field by a phasor, Hermitian-consistently.

    Args:
        field: Spectral field on the local slab (kx last)
        phasor: Complex factor applied to every kx > 0 column
        upper: Boundary modes multiplied by ``phasor``
        partner: Boundary modes multiplied by ``conj(phasor)``
        owns_boundary: Whether the slab holds the kx = 0 column/plane

    Returns:
        Rotated field. Self-conjugate boundary modes (in both masks) are
        multiplied by |p|², so they stay real.
    """
    rotated = field * phasor
    if owns_boundary:
        factor = jnp.where(upper, phasor, 1.0) * jnp.where(partner, jnp.conj(phasor), 1.0)
        rotated = rotated.at[..., 0].set(field[..., 0] * factor)
    return rotated


# =============================================================================
# Controller
# =============================================================================


class ForcingController:
    """
    Owner of the forcing spectra and of their periodic phase updates.

    Args:
        forcing: Initial forcing spectra keyed by field name
        groups: Forcing groups (tuple of names per group, at most two)
        grid: Wavenumber grid of the local slab
        comm: Communicator (phases are broadcast from rank 0)
        rand: 0 keeps the spectrum fixed, 1 redraws the phase every period
        period: Steps between updates, int(cort/dt)
        seed: Seed of the phase sequence
        corr: Correlation of the second group's phase with the first, in [0, 1]

    Example:
        >>> controller = ForcingController(
        ...     forcing, evaluator.forcing_groups, grid, comm,
        ...     rand=1, period=config.forcing_period(), seed=7, corr=0.5,
        ... )
        >>> state = controller.advance(run_state)   # once per step
        >>> forcing = controller.forcing
    """

    def __init__(
        self,
        forcing: Fields,
        groups: Sequence[Sequence[str]],
        grid: WavenumberGrid,
        comm,
        rand: int = 0,
        period: int = 1,
        seed: int = 0,
        corr: float = 0.0,
    ):
        if rand not in (0, 1):
            raise ValueError(f"rand must be 0 or 1, got {rand}")
        if period < 1:
            raise ValueError(f"Forcing period must be at least one step, got {period}")
        if not 0.0 <= corr <= 1.0:
            raise ValueError(f"corr must lie in [0, 1], got {corr}")
        if not 1 <= len(groups) <= 2:
            raise ValueError(f"Expected one or two forcing groups, got {len(groups)}")
        missing = [name for group in groups for name in group if name not in forcing]
        if missing:
            raise ValueError(f"Missing forcing fields: {missing}")

        self.forcing = dict(forcing)
        self.groups = tuple(tuple(group) for group in groups)
        self.grid = grid
        self.comm = comm
        self.rand = rand
        self.period = period
        self.seed = seed
        self.corr = corr

        upper, partner = conjugate_pair_masks(grid.n, grid.dim)
        self._upper = jnp.asarray(upper)
        self._partner = jnp.asarray(partner)
        self._key = jax.random.PRNGKey(seed)

    def draw_phases(self, update_index: int) -> Tuple[float, float]:
        """
        Two phases in [0, 2π) for update number ``update_index``.

        Drawn on rank 0 and broadcast (collective).
        """
        phases: Optional[Tuple[float, float]] = None
        if self.comm.Get_rank() == 0:
            key = jax.random.fold_in(self._key, update_index)
            theta = jax.random.uniform(key, shape=(2,), maxval=2.0 * jnp.pi)
            phases = (float(theta[0]), float(theta[1]))
        return self.comm.bcast(phases, root=0)

    def phasors(self, theta1: float, theta2: float) -> List[complex]:
        """Phasor applied to each forcing group."""
        p1 = complex(jnp.exp(1j * theta1))
        p2 = complex(jnp.exp(1j * theta2))
        correlated = self.corr * p1 + (1.0 - self.corr) * p2
        return [p1, correlated][: len(self.groups)]

    def rotate(self, phasors: Sequence[complex]) -> None:
        """Rotate every forcing field of group g by ``phasors[g]``."""
        for group, phasor in zip(self.groups, phasors):
            for name in group:
                self.forcing[name] = rotate_spectrum(
                    self.forcing[name],
                    phasor,
                    self._upper,
                    self._partner,
                    owns_boundary=self.grid.owns_kx_zero,
                )

    def advance(self, run_state) -> ForcingState:
        """
        Per-step forcing update.

        When ``run_state.forcing_countdown`` has reached the period the
        countdown is reset; with rand = 1 a new phase is drawn, broadcast and
        applied, and ``run_state.forcing_updates`` is incremented.
        """
        if run_state.forcing_countdown < self.period:
            return ForcingState.HOLD

        run_state.forcing_countdown = 0
        if self.rand == 0:
            return ForcingState.HOLD

        theta1, theta2 = self.draw_phases(run_state.forcing_updates)
        self.rotate(self.phasors(theta1, theta2))
        run_state.forcing_updates += 1
        return ForcingState.UPDATE


# =============================================================================
# Forcing spectra
# =============================================================================


def forcing_spectrum(
    evaluator: RHSEvaluator,
    kind: str,
    f0: float = 0.0,
    m0: float = 0.0,
    kdn: float = 1.0,
    kup: float = 2.0,
    mode: Optional[Sequence[int]] = None,
    seed: int = 0,
) -> Fields:
    """
    Build the initial forcing spectra of a variant.

    Kinds:
        none: every forcing field is zero
        band: random phases on kdn ≤ |k| ≤ kup; the vorticity (3D: velocity)
            forcing is normalized to ½⟨f²⟩ = f0², the electromotive forcing
            ``mk`` to ½⟨|∇m|²⟩ = m0²
        mode: a single cosine mode of amplitude f0 (and m0 for ``mk``)

    Returns:
        Dict keyed by the evaluator's forcing names
    """
    grid, comm = evaluator.grid, evaluator.comm
    forcing = evaluator.zero_forcing()
    primary = evaluator.forcing_groups[0]

    if kind == "none":
        return forcing

    if kind == "band":
        keys = jax.random.split(jax.random.PRNGKey(seed), len(primary) + 1)
        if f0 != 0.0:
            spectra = [random_band(grid, kdn, kup, key) for key in keys[: len(primary)]]
            if grid.dim == 3:
                spectra = list(evaluator.project(dict(zip(primary, spectra))).values())
            forcing.update(zip(primary, normalize(spectra, f0, grid, comm, power=0)))
        if "mk" in forcing and m0 != 0.0:
            (forcing["mk"],) = normalize(
                [random_band(grid, kdn, kup, keys[-1])], m0, grid, comm, power=1
            )

    elif kind == "mode":
        if mode is None:
            raise ValueError("Forcing 'mode' needs a wavevector")
        forcing[primary[0]] = single_mode(grid, f0, mode)
        if "mk" in forcing:
            forcing["mk"] = single_mode(grid, m0, mode)
        if grid.dim == 3:
            forcing = evaluator.project(forcing)

    else:
        raise ValueError(f"Unknown forcing kind '{kind}'")

    return forcing
