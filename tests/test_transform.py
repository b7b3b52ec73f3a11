"""
Tests for the slab-decomposed transform.

Validates:
- Unnormalized round trip (inverse∘forward = n^dim)
- Agreement with numpy's real FFT on a single rank
- Identical spectra on 1, 2 and 3 ranks (2D and 3D)
- Shape checks and communicator consistency
"""

import numpy as np
import pytest

from psmhd.decomposition import DomainDecomposition
from psmhd.physics import single_mode
from psmhd.spectral import WavenumberGrid
from psmhd.transform import SlabTransform


def _transform(n, dim, comm):
    dec = DomainDecomposition.create(n, size=comm.Get_size(), rank=comm.Get_rank())
    return SlabTransform(dec, dim, comm)


def _random_field(n, dim, seed=0):
    return np.random.default_rng(seed).normal(size=(n,) * dim)


class TestSingleRank:
    """Serial transform."""

    @pytest.mark.parametrize("dim", [2, 3])
    def test_matches_numpy_rfftn(self, comm, dim):
        n = 8
        fft = _transform(n, dim, comm)
        f = _random_field(n, dim)
        np.testing.assert_allclose(fft.forward(f), np.fft.rfftn(f), atol=1e-10)

    @pytest.mark.parametrize("dim", [2, 3])
    def test_round_trip_scales_by_n_dim(self, comm, dim):
        n = 8
        fft = _transform(n, dim, comm)
        f = _random_field(n, dim, seed=1)

        assert fft.normalization == float(n**dim)
        np.testing.assert_allclose(fft.inverse(fft.forward(f)), n**dim * f, atol=1e-9)
        np.testing.assert_allclose(fft.to_physical(fft.forward(f)), f, atol=1e-12)

    def test_single_mode_is_cosine(self, comm):
        """Coefficients from single_mode give A cos(kx x + ky y) in physical space."""
        n = 16
        fft = _transform(n, 2, comm)
        grid = WavenumberGrid.create(n)
        y, x = np.meshgrid(*(2 * np.pi * np.arange(n) / n,) * 2, indexing="ij")

        for mode in [(1, 0), (0, 2), (2, -3), (-1, 1)]:
            f = fft.to_physical(single_mode(grid, 0.7, mode))
            expected = 0.7 * np.cos(mode[0] * x + mode[1] * y)
            np.testing.assert_allclose(f, expected, atol=1e-12)

    def test_shape_mismatch(self, comm):
        fft = _transform(8, 2, comm)
        with pytest.raises(ValueError, match="does not match"):
            fft.forward(np.zeros((8, 6)))
        with pytest.raises(ValueError, match="does not match"):
            fft.inverse(np.zeros((8, 4), dtype=complex))

    def test_communicator_size_mismatch(self, comm):
        dec = DomainDecomposition.create(8, size=2, rank=0)
        with pytest.raises(ValueError, match="ranks"):
            SlabTransform(dec, 2, comm)


class TestDistributed:
    """Thread-backed multi-rank transforms against the serial result."""

    @pytest.mark.parametrize("size", [2, 3])
    @pytest.mark.parametrize("dim", [2, 3])
    def test_forward_matches_serial(self, comm, spmd, size, dim):
        n = 8
        f = _random_field(n, dim, seed=3)
        reference = np.asarray(_transform(n, dim, comm).forward(f))

        def body(c):
            fft = _transform(n, dim, c)
            local = f[fft.decomposition.row_slice]
            return fft.decomposition.kx_slice, np.asarray(fft.forward(local))

        for kx_slice, spectral in spmd(size, body):
            np.testing.assert_allclose(spectral, reference[..., kx_slice], atol=1e-10)

    @pytest.mark.parametrize("size", [2, 4])
    def test_round_trip_distributed(self, spmd, size):
        n = 16
        f = _random_field(n, 2, seed=4)

        def body(c):
            fft = _transform(n, 2, c)
            local = f[fft.decomposition.row_slice]
            return local, np.asarray(fft.to_physical(fft.forward(local)))

        for local, back in spmd(size, body):
            np.testing.assert_allclose(back, local, atol=1e-12)
