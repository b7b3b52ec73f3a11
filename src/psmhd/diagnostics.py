"""
Diagnostic output: shell-averaged spectra and the global-quantity balance log.

The engine decides *when* to output; this module computes and writes *what*:
- shell_spectrum: energy per integer shell |k| ∈ [s-1/2, s+1/2), reduced over ranks
- BalanceLog: one line of integrated quantities per trigger in ``balance.txt``
- write_spectrum: two-column text file (shell, energy)

Only rank 0 touches the file system; the reductions are collective, so every
rank must call ``shell_spectrum`` together.

Example usage:
    >>> spectrum = shell_spectrum([ps], grid, comm, power=1)
    >>> write_spectrum(output_dir / "kspectrum.0003.txt", spectrum, rank=comm.Get_rank())
"""

from pathlib import Path
from typing import Dict, Sequence, Union

import numpy as np
from jax import Array

from psmhd.spectral import WavenumberGrid


# =============================================================================
# Spectra
# =============================================================================


def shell_spectrum(
    fields: Sequence[Array],
    grid: WavenumberGrid,
    comm,
    power: int = 0,
) -> np.ndarray:
    """
    Shell-averaged energy spectrum E(k) of a set of fields.

    E(s) = ½ Σ_{round(|k|)=s} w k^(2p) |f̂|² / N², summed over ``fields``,
    so that Σ_s E(s) equals ``spectral_energy`` restricted to |k| < n/2 + 1/2.

    Args:
        fields: Spectral fields on the local slab
        grid: Wavenumber grid of the slab
        comm: Communicator; the shells are summed over every rank
        power: Power of k² weighting each mode (1 for streamfunctions)

    Returns:
        Array of length n/2 + 1 indexed by shell number
    """
    nshells = grid.n // 2 + 1
    shells = np.rint(np.sqrt(np.asarray(grid.k2))).astype(int)
    weight = np.asarray(grid.weights * grid.k2**power)

    local = np.zeros(nshells)
    for f in fields:
        density = weight * np.abs(np.asarray(f)) ** 2
        inside = shells < nshells
        local += np.bincount(shells[inside], weights=density[inside], minlength=nshells)

    total = comm.allreduce(local)
    return 0.5 * np.asarray(total) / float(grid.npoints) ** 2


def write_spectrum(path: Union[str, Path], spectrum: np.ndarray, rank: int = 0) -> None:
    """Write ``spectrum`` as (shell, energy) columns; no-op off rank 0."""
    if rank != 0:
        return
    shells = np.arange(len(spectrum))
    np.savetxt(path, np.column_stack([shells, spectrum]), fmt=["%d", "%.15e"])


def read_spectrum(path: Union[str, Path]) -> np.ndarray:
    """Energy column of a file written by ``write_spectrum``."""
    return np.loadtxt(path, ndmin=2)[:, 1]


# =============================================================================
# Global quantities
# =============================================================================


class BalanceLog:
    """
    Append-only text log of integrated quantities (``balance.txt``).

    Each line holds the step, the time and one column per quantity, in the
    order given by ``names``. The header line starts with ``#``. A fresh run
    truncates the file; a restarted run appends to it.

    Args:
        path: Output file
        names: Column names (keys of the evaluator's ``global_quantities``)
        rank: Rank of the caller; only rank 0 writes
        append: Keep existing content (restart)

    Example:
        >>> log = BalanceLog(out / "balance.txt", ["energy", "enstrophy"], rank=0)
        >>> log.record(0, 0.0, {"energy": 0.5, "enstrophy": 1.0})
    """

    def __init__(
        self,
        path: Union[str, Path],
        names: Sequence[str],
        rank: int = 0,
        append: bool = False,
    ):
        self.path = Path(path)
        self.names = list(names)
        self.rank = rank

        if rank == 0 and not (append and self.path.exists()):
            with open(self.path, "w") as f:
                f.write("# step time " + " ".join(self.names) + "\n")

    def record(self, step: int, time: float, quantities: Dict[str, float]) -> None:
        if self.rank != 0:
            return
        values = " ".join(f"{quantities[name]:.15e}" for name in self.names)
        with open(self.path, "a") as f:
            f.write(f"{step:d} {time:.15e} {values}\n")


def read_balance(path: Union[str, Path]) -> Dict[str, np.ndarray]:
    """
    Load ``balance.txt`` back into named columns.

    Returns:
        Dict with ``step``, ``time`` and one entry per logged quantity
    """
    path = Path(path)
    with open(path) as f:
        header = f.readline().lstrip("#").split()
    data = np.loadtxt(path, ndmin=2)
    columns: Dict[str, np.ndarray] = {}
    for i, name in enumerate(header):
        columns[name] = data[:, i] if data.size else np.array([])
    columns["step"] = columns["step"].astype(int)
    return columns
