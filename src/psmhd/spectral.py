"""
Wavenumber grid and spectral operators on the locally owned Fourier slab.

This module provides the Fourier-space infrastructure shared by every solver
variant:
- WavenumberGrid: Pydantic model holding the signed wavenumbers, the local
  squared-magnitude array k², the dealiasing cutoff and Parseval weights
- Spectral derivatives (∂x, ∂y, ∂z) computed as multiplication by ik
- The dealiasing conditional (tiny ≤ k² < kmax) applied at point of use
- Guarded inversion of the Laplacian (the k=0 mode is never divided)
- Hermitian-symmetry bookkeeping for the kx=0 boundary column/plane

Array layout (local slab of a rank, kx axis last and decomposed):
- 2D: [ky (n), kx (nkx)]
- 3D: [kz (n), ky (n), kx (nkx)]

The domain is the periodic box [0, 2π)^dim, so wavenumbers are integers.
"""

from typing import Optional, Tuple

import jax
import jax.numpy as jnp
import numpy as np
from jax import Array
from pydantic import BaseModel, ConfigDict, Field, field_validator

from psmhd.decomposition import DomainDecomposition

# Numerical floor separating the k=0 mode from resolved modes
TINY = 1e-5


def signed_wavenumbers(n: int) -> np.ndarray:
    """
    Standard FFT ordering of integer wavenumbers.

    Index m < n/2 maps to m, index m ≥ n/2 maps to m - n:
    [0, 1, ..., n/2-1, -n/2, ..., -1]
    """
    m = np.arange(n)
    return np.where(m < n // 2, m, m - n).astype(float)


class WavenumberGrid(BaseModel):
    """
    Immutable wavenumber grid restricted to one rank's Fourier slab.

    Attributes:
        n: Linear resolution (even, same in every direction)
        dim: Spatial dimension (2 or 3)
        kx_start: First owned index of the kx axis
        kx_stop: One past the last owned index of the kx axis
        k: Signed wavenumbers for the full (non-decomposed) axes, shape [n]
        kx: Non-negative wavenumbers of the owned kx slab, shape [nkx]
        k2: Squared wavenumber magnitude on the owned slab
        weights: Parseval weights of the half spectrum, shape [nkx]
            (1 on kx=0 and the Nyquist column, 2 elsewhere)
        kmax: Dealiasing cutoff on k², (n/3)²
        tiny: Floor on k² below which a mode counts as k=0

    Example:
        >>> grid = WavenumberGrid.create(n=32)
        >>> grid.k2.shape
        (32, 17)
        >>> float(grid.k2[1, 2])  # ky=1, kx=2
        5.0
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    n: int = Field(gt=0, description="Linear resolution")
    dim: int = Field(ge=2, le=3, description="Spatial dimension")
    kx_start: int = Field(ge=0)
    kx_stop: int = Field(ge=0)
    k: Array = Field(description="Signed wavenumbers [n]")
    kx: Array = Field(description="Owned non-negative kx [nkx]")
    k2: Array = Field(description="Local squared wavenumber magnitude")
    weights: Array = Field(description="Parseval weights over the owned kx")
    kmax: float = Field(gt=0.0)
    tiny: float = Field(gt=0.0)

    @field_validator("n")
    @classmethod
    def validate_even(cls, v: int) -> int:
        """Grid size must be even for the rfft Nyquist layout."""
        if v % 2 != 0:
            raise ValueError(f"Grid size must be even, got {v}")
        return v

    @classmethod
    def create(
        cls,
        n: int,
        dim: int = 2,
        decomposition: Optional[DomainDecomposition] = None,
    ) -> "WavenumberGrid":
        """
        Build the grid for the slab owned under ``decomposition``.

        Without a decomposition the whole kx range [0, n/2] is local (single
        rank). Every rank derives the same 1-D arrays and only its own slab
        of k².

        Args:
            n: Linear resolution (positive, even)
            dim: 2 or 3
            decomposition: Slab ownership; ``None`` means the full range

        Returns:
            WavenumberGrid with k, kx, k2, weights and the cutoff
        """
        if n <= 0 or n % 2 != 0:
            raise ValueError(f"Grid size must be a positive even number, got n={n}")
        if dim not in (2, 3):
            raise ValueError(f"Dimension must be 2 or 3, got dim={dim}")
        if decomposition is not None and decomposition.n != n:
            raise ValueError(
                f"Decomposition built for n={decomposition.n}, grid requested n={n}"
            )

        kx_range = decomposition.kx_slice if decomposition is not None else slice(0, n // 2 + 1)

        k = signed_wavenumbers(n)
        kx = np.arange(n // 2 + 1, dtype=float)[kx_range]

        if dim == 2:
            k2 = k[:, np.newaxis] ** 2 + kx[np.newaxis, :] ** 2
        else:
            k2 = (
                k[:, np.newaxis, np.newaxis] ** 2
                + k[np.newaxis, :, np.newaxis] ** 2
                + kx[np.newaxis, np.newaxis, :] ** 2
            )

        weights = np.where((kx == 0.0) | (kx == n // 2), 1.0, 2.0)

        return cls(
            n=n,
            dim=dim,
            kx_start=kx_range.start,
            kx_stop=kx_range.stop,
            k=jnp.asarray(k),
            kx=jnp.asarray(kx),
            k2=jnp.asarray(k2),
            weights=jnp.asarray(weights),
            kmax=(n / 3.0) ** 2,
            tiny=TINY,
        )

    @property
    def nkx(self) -> int:
        return self.kx_stop - self.kx_start

    @property
    def shape(self) -> Tuple[int, ...]:
        """Shape of a local spectral field."""
        return (self.n,) * (self.dim - 1) + (self.nkx,)

    @property
    def npoints(self) -> int:
        """Total number of physical grid points, n^dim."""
        return self.n**self.dim

    @property
    def owns_kx_zero(self) -> bool:
        return self.kx_start == 0 and self.nkx > 0

    def zeros(self, dtype=complex) -> Array:
        """Zero spectral field on the local slab."""
        return jnp.zeros(self.shape, dtype=dtype)


# =============================================================================
# Spectral Derivatives (JIT-compiled)
# =============================================================================


@jax.jit
def derivative_x(field_fourier: Array, kx: Array) -> Array:
    """
    Compute ∂f/∂x in Fourier space: ∂f/∂x → i·kx·f̂(k).

    kx runs along the last (decomposed) axis in both 2D and 3D layouts.
    """
    return 1j * kx * field_fourier


@jax.jit
def derivative_y(field_fourier: Array, k: Array) -> Array:
    """
    Compute ∂f/∂y in Fourier space: ∂f/∂y → i·ky·f̂(k).

    ky runs along axis -2 ([ky, kx] in 2D, [kz, ky, kx] in 3D).
    """
    return 1j * k[:, jnp.newaxis] * field_fourier


@jax.jit
def derivative_z(field_fourier: Array, k: Array) -> Array:
    """Compute ∂f/∂z in Fourier space (3D only, kz along axis -3)."""
    return 1j * k[:, jnp.newaxis, jnp.newaxis] * field_fourier


# =============================================================================
# Dealiasing and Laplacian inversion (JIT-compiled)
# =============================================================================


@jax.jit
def resolved_mask(k2: Array, kmax: float, tiny: float) -> Array:
    """
    Boolean conditional selecting the resolved band tiny ≤ k² < kmax.

    Modes at or above the cutoff are aliased by quadratic products; the k=0
    mode is excluded because the streamfunction formulation divides by k².
    Evaluated wherever it is needed instead of being stored on the grid.
    """
    return (k2 >= tiny) & (k2 < kmax)


@jax.jit
def inverse_laplacian(field_fourier: Array, k2: Array, tiny: float) -> Array:
    """
    Divide by k² with the k=0 mode guarded (returns 0 there).

    Solves -∇²ψ = ω for ψ given ω̂, i.e. ψ̂ = ω̂ / k².
    """
    zero_mode = k2 < tiny
    safe_k2 = jnp.where(zero_mode, 1.0, k2)
    return jnp.where(zero_mode, 0.0, field_fourier / safe_k2)


@jax.jit
def dealias(field_fourier: Array, k2: Array, kmax: float, tiny: float) -> Array:
    """Zero every mode outside the resolved band (k=0 included)."""
    return jnp.where(resolved_mask(k2, kmax, tiny), field_fourier, 0.0)


# =============================================================================
# Hermitian symmetry of the kx=0 boundary
# =============================================================================


def _negate_indices(a: np.ndarray) -> np.ndarray:
    """Reindex every axis by m → (-m) mod n."""
    for axis in range(a.ndim):
        a = np.roll(np.flip(a, axis=axis), 1, axis=axis)
    return a


def conjugate_pair_masks(n: int, dim: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Split the kx=0 boundary column (2D) or plane (3D) into conjugate halves.

    For a real field, the coefficient at (kz, ky, 0) is the complex conjugate
    of the one at (-kz, -ky, 0). ``upper`` marks one member of every pair,
    ``partner`` marks the conjugate member. Self-conjugate modes (every index 0
    or n/2) are in both masks; the k=0 mode is in neither.

    Returns:
        (upper, partner) boolean arrays of shape [n] (2D) or [n, n] (3D),
        indexed like the leading axes of a spectral field
    """
    m = np.arange(n)
    positive = (m >= 1) & (m < n // 2)
    # Indices equal to their own negation
    fixed = (m == 0) | (m == n // 2)
    if dim == 2:
        upper = positive | (fixed & (m != 0))
    else:
        # [kz, ky]: ky in the positive half, or ky fixed and kz in the positive half
        ky_pos, ky_fixed = positive[np.newaxis, :], fixed[np.newaxis, :]
        kz_pos, kz_fixed = positive[:, np.newaxis], fixed[:, np.newaxis]
        origin = (m == 0)[:, np.newaxis] & (m == 0)[np.newaxis, :]
        upper = ky_pos | (ky_fixed & kz_pos) | (ky_fixed & kz_fixed & ~origin)
    partner = _negate_indices(upper)
    return upper, partner


def enforce_hermitian(field_fourier: Array, grid: WavenumberGrid) -> Array:
    """
    Project the kx=0 boundary onto Hermitian-symmetric data.

    Replaces every boundary coefficient c(m) by (c(m) + conj(c(-m)))/2, so that
    c(-m) = conj(c(m)) afterwards and the k=0 mode is real. Columns with kx>0
    are untouched; ranks not owning kx=0 return the field unchanged.
    """
    if not grid.owns_kx_zero:
        return field_fourier
    boundary = np.asarray(field_fourier[..., 0])
    symmetric = 0.5 * (boundary + np.conj(_negate_indices(boundary)))
    return field_fourier.at[..., 0].set(jnp.asarray(symmetric))


def is_hermitian(field_fourier: Array, grid: WavenumberGrid, atol: float = 0.0) -> bool:
    """Check c(-m) = conj(c(m)) on the kx=0 boundary (True off that rank)."""
    if not grid.owns_kx_zero:
        return True
    boundary = np.asarray(field_fourier[..., 0])
    return bool(np.allclose(_negate_indices(boundary), np.conj(boundary), rtol=0.0, atol=atol))
