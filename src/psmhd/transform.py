"""
Slab-decomposed real FFT between physical and Fourier space.

The physical array of a rank holds a contiguous block of rows along the first
axis and every point along the others; the Fourier array holds every ky (and
kz) but only a contiguous block of the non-negative kx. A transform therefore
is: local FFTs along the resident axes, one global all-to-all exchange that
trades row blocks for kx blocks, and a final FFT along the axis that just
became resident.

    physical [rows_local, (n,) n]  --rfft x (fft y)-->  [rows_local, (n,) n/2+1]
        --alltoall-->  [n, (n,) nkx_local]  --fft along axis 0-->  spectral

Normalization: neither direction is scaled. An inverse followed by a forward
transform multiplies the coefficients by n^dim, so fields leaving the engine
in physical space must be multiplied by 1/n^dim (see ``normalization``).

The exchange goes through the communicator's ``alltoall`` and is a
collective: every rank of the communicator must call the same transform.
"""

from typing import Tuple

import jax.numpy as jnp
import numpy as np
from jax import Array

from psmhd.decomposition import DomainDecomposition


def world_comm():
    """Return ``MPI.COMM_WORLD`` (mpi4py is imported on first use)."""
    from mpi4py import MPI

    return MPI.COMM_WORLD


class SlabTransform:
    """
    Forward/inverse transform pair for one decomposition.

    Args:
        decomposition: Slab ownership of this rank
        dim: Spatial dimension (2 or 3)
        comm: Communicator with mpi4py's lower-case ``alltoall``

    Example:
        >>> dec = DomainDecomposition.create(n=64, size=comm.Get_size(), rank=comm.Get_rank())
        >>> fft = SlabTransform(dec, dim=2, comm=comm)
        >>> f_hat = fft.forward(f_physical)          # [64, nkx_local]
        >>> f_back = fft.inverse(f_hat) / fft.normalization
    """

    def __init__(self, decomposition: DomainDecomposition, dim: int, comm):
        if dim not in (2, 3):
            raise ValueError(f"Dimension must be 2 or 3, got dim={dim}")
        if decomposition.size != comm.Get_size():
            raise ValueError(
                f"Decomposition built for {decomposition.size} ranks, "
                f"communicator has {comm.Get_size()}"
            )
        self.decomposition = decomposition
        self.dim = dim
        self.comm = comm
        self.n = decomposition.n
        self._resident_axes = tuple(range(1, dim))

    @property
    def normalization(self) -> float:
        """Scale factor n^dim picked up by an inverse-forward round trip."""
        return float(self.n**self.dim)

    @property
    def physical_shape(self) -> Tuple[int, ...]:
        return (self.decomposition.nrows,) + (self.n,) * (self.dim - 1)

    @property
    def spectral_shape(self) -> Tuple[int, ...]:
        return (self.n,) * (self.dim - 1) + (self.decomposition.nkx,)

    def forward(self, field_physical: Array) -> Array:
        """
        Physical → Fourier (unnormalized).

        Args:
            field_physical: Real array, shape ``physical_shape``

        Returns:
            Complex array, shape ``spectral_shape``
        """
        local = np.asarray(field_physical)
        if local.shape != self.physical_shape:
            raise ValueError(
                f"Physical field shape {local.shape} does not match slab {self.physical_shape}"
            )

        partial = np.fft.rfftn(local, axes=self._resident_axes)
        blocks = [
            np.ascontiguousarray(partial[..., s]) for s in self.decomposition.kx_slices
        ]
        received = self.comm.alltoall(blocks)
        gathered = np.concatenate(received, axis=0)
        return jnp.asarray(np.fft.fft(gathered, axis=0))

    def inverse(self, field_fourier: Array) -> Array:
        """
        Fourier → physical (unnormalized, scaled by n^dim).

        Args:
            field_fourier: Complex array, shape ``spectral_shape``

        Returns:
            Real array, shape ``physical_shape``
        """
        local = np.asarray(field_fourier)
        if local.shape != self.spectral_shape:
            raise ValueError(
                f"Fourier field shape {local.shape} does not match slab {self.spectral_shape}"
            )

        partial = np.fft.ifft(local, axis=0, norm="forward")
        blocks = [
            np.ascontiguousarray(partial[s]) for s in self.decomposition.row_slices
        ]
        received = self.comm.alltoall(blocks)
        gathered = np.concatenate(received, axis=-1)
        physical = np.fft.irfftn(
            gathered,
            s=(self.n,) * (self.dim - 1),
            axes=self._resident_axes,
            norm="forward",
        )
        return jnp.asarray(physical)

    def to_physical(self, field_fourier: Array) -> Array:
        """Inverse transform descaled by 1/n^dim (true physical values)."""
        return self.inverse(field_fourier) / self.normalization
