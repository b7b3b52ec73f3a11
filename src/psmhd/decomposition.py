"""
Slab domain decomposition across MPI ranks.

The Fourier coefficient array is split along the non-negative kx axis
(the rfft axis, ``n//2 + 1`` entries), and the physical array along its first
axis (``n`` rows). Each rank owns one contiguous block of each. The two
partitions are independent; the slab transform swaps between them with a
single all-to-all exchange.

Ranges are 0-based half-open Python slices. The block sizes differ by at most
one and the remainder goes to the lowest ranks, so a given ``(n, size)`` pair
always produces the same layout (restarts on the same rank count see the same
slabs).
"""

from typing import List, Tuple

from pydantic import BaseModel, ConfigDict, Field, model_validator


def partition(total: int, parts: int) -> List[slice]:
    """
    Split ``range(total)`` into ``parts`` contiguous slices.

    The first ``total % parts`` slices get ``ceil(total/parts)`` entries, the
    rest ``floor(total/parts)``. Slices may be empty when ``parts > total``.

    Example:
        >>> partition(10, 4)
        [slice(0, 3, None), slice(3, 6, None), slice(6, 8, None), slice(8, 10, None)]
    """
    if total < 0:
        raise ValueError(f"Cannot partition a negative range, got total={total}")
    if parts <= 0:
        raise ValueError(f"Number of parts must be positive, got {parts}")

    base, remainder = divmod(total, parts)
    slices = []
    start = 0
    for p in range(parts):
        length = base + (1 if p < remainder else 0)
        slices.append(slice(start, start + length))
        start += length
    return slices


class DomainDecomposition(BaseModel):
    """
    Immutable description of which slabs a rank owns.

    Attributes:
        n: Linear grid size (same in every direction)
        size: Number of ranks in the communicator
        rank: This rank's id
        kx_slices: Fourier-axis slice of every rank (covers ``[0, n//2+1)``)
        row_slices: Physical-axis slice of every rank (covers ``[0, n)``)

    Example:
        >>> dec = DomainDecomposition.create(n=32, size=3, rank=1)
        >>> dec.kx_slice, dec.row_slice
        (slice(6, 12, None), slice(11, 22, None))
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    n: int = Field(gt=0)
    size: int = Field(gt=0)
    rank: int = Field(ge=0)
    kx_slices: Tuple[slice, ...]
    row_slices: Tuple[slice, ...]

    @model_validator(mode="after")
    def _check_rank(self) -> "DomainDecomposition":
        if self.rank >= self.size:
            raise ValueError(f"rank {self.rank} out of range for {self.size} ranks")
        return self

    @classmethod
    def create(cls, n: int, size: int = 1, rank: int = 0) -> "DomainDecomposition":
        """
        Build the decomposition for rank ``rank`` of ``size``.

        Raises:
            ValueError: If ``n`` is not a positive even number, or if there are
                more ranks than Fourier columns (some ranks would own nothing).
        """
        if n <= 0 or n % 2 != 0:
            raise ValueError(f"Grid size must be a positive even number, got n={n}")
        if size > n // 2 + 1:
            raise ValueError(
                f"Cannot decompose n={n} over {size} ranks: only {n // 2 + 1} "
                f"Fourier columns are available"
            )
        return cls(
            n=n,
            size=size,
            rank=rank,
            kx_slices=tuple(partition(n // 2 + 1, size)),
            row_slices=tuple(partition(n, size)),
        )

    @property
    def kx_slice(self) -> slice:
        """Owned range of the Fourier decomposition axis."""
        return self.kx_slices[self.rank]

    @property
    def row_slice(self) -> slice:
        """Owned range of the physical decomposition axis."""
        return self.row_slices[self.rank]

    @property
    def nkx(self) -> int:
        return self.kx_slice.stop - self.kx_slice.start

    @property
    def nrows(self) -> int:
        return self.row_slice.stop - self.row_slice.start

    @property
    def owns_kx_zero(self) -> bool:
        """True on the rank holding the ``kx = 0`` boundary column."""
        return self.kx_slice.start == 0 and self.nkx > 0
