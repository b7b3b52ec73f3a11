"""
Tests for the slab domain decomposition.

Validates:
- partition() covers the range with contiguous, balanced blocks
- DomainDecomposition ownership of Fourier columns and physical rows
- Rejection of odd grids and of more ranks than Fourier columns
"""

import pytest
from pydantic import ValidationError

from psmhd.decomposition import DomainDecomposition, partition


class TestPartition:
    """Test suite for partition()."""

    def test_even_split(self):
        slices = partition(12, 4)
        assert slices == [slice(0, 3), slice(3, 6), slice(6, 9), slice(9, 12)]

    def test_remainder_goes_to_lowest_parts(self):
        """10 = 3 + 3 + 2 + 2."""
        lengths = [s.stop - s.start for s in partition(10, 4)]
        assert lengths == [3, 3, 2, 2]

    @pytest.mark.parametrize("total,parts", [(17, 1), (17, 3), (33, 5), (5, 8)])
    def test_contiguous_cover(self, total, parts):
        """Slices tile [0, total) without gaps or overlap."""
        slices = partition(total, parts)
        assert len(slices) == parts
        assert slices[0].start == 0
        assert slices[-1].stop == total
        for a, b in zip(slices[:-1], slices[1:]):
            assert a.stop == b.start
        lengths = [s.stop - s.start for s in slices]
        assert max(lengths) - min(lengths) <= 1

    def test_invalid_arguments(self):
        with pytest.raises(ValueError, match="positive"):
            partition(10, 0)
        with pytest.raises(ValueError, match="negative"):
            partition(-1, 2)


class TestDomainDecomposition:
    """Test suite for DomainDecomposition."""

    def test_single_rank_owns_everything(self):
        dec = DomainDecomposition.create(n=32)
        assert dec.kx_slice == slice(0, 17)
        assert dec.row_slice == slice(0, 32)
        assert dec.nkx == 17
        assert dec.nrows == 32
        assert dec.owns_kx_zero

    def test_three_ranks(self):
        """n=32: 17 Fourier columns as 6+6+5, 32 rows as 11+11+10."""
        dec = DomainDecomposition.create(n=32, size=3, rank=1)
        assert dec.kx_slice == slice(6, 12)
        assert dec.row_slice == slice(11, 22)
        assert not dec.owns_kx_zero

        last = DomainDecomposition.create(n=32, size=3, rank=2)
        assert last.nkx == 5
        assert last.nrows == 10

    def test_only_rank_zero_owns_kx_zero(self):
        owners = [
            DomainDecomposition.create(n=16, size=4, rank=r).owns_kx_zero for r in range(4)
        ]
        assert owners == [True, False, False, False]

    def test_same_layout_on_every_rank(self):
        """Every rank sees the full list of slices, so exchanges agree."""
        decs = [DomainDecomposition.create(n=16, size=3, rank=r) for r in range(3)]
        assert all(d.kx_slices == decs[0].kx_slices for d in decs)
        assert all(d.row_slices == decs[0].row_slices for d in decs)

    def test_odd_grid_rejected(self):
        with pytest.raises(ValueError, match="even"):
            DomainDecomposition.create(n=31)

    def test_too_many_ranks(self):
        """n=8 has 5 Fourier columns."""
        DomainDecomposition.create(n=8, size=5, rank=4)
        with pytest.raises(ValueError, match="Fourier columns"):
            DomainDecomposition.create(n=8, size=6, rank=0)

    def test_rank_out_of_range(self):
        with pytest.raises(ValidationError):
            DomainDecomposition.create(n=16, size=2, rank=2)

    def test_immutable(self):
        dec = DomainDecomposition.create(n=16)
        with pytest.raises(ValidationError):
            dec.rank = 1
