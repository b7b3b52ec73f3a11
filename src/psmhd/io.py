"""
HDF5 checkpoints for output and restart.

A checkpoint holds every evolved field and every forcing field in physical
space, descaled by 1/n^dim so the stored values are the true field values,
together with the run counters needed to resume the loop exactly where it
stopped.

File layout (``checkpoint.NNNN.h5``):
    /fields/<name>     float64 [n, n(, n)]  evolved fields (ps, az, vx, ...)
    /forcing/<name>    float64 [n, n(, n)]  forcing fields (fk, mk, fx, ...)
    /run_state         attrs: step, time, countdowns, file indices
    /metadata          attrs: user metadata (non-scalars stored as str)
    attrs: version, timestamp, n, dim, variant

Writing gathers the row slabs on rank 0, which writes the file; reading is
independent on every rank (each rank reads only its own rows).

Example:
    >>> save_checkpoint(path, fields, forcing, transform, state.model_dump(), "hd")
    >>> fields_phys, forcing_phys, state, meta = load_checkpoint(
    ...     path, rows=decomposition.row_slice, n=64, dim=2, variant="hd"
    ... )
"""

from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional, Tuple, Union

import h5py
import numpy as np

from psmhd.transform import SlabTransform

IO_FORMAT_VERSION = "1.0"


def checkpoint_path(output_dir: Union[str, Path], index: int) -> Path:
    """``output_dir/checkpoint.NNNN.h5`` (indices start at 1)."""
    return Path(output_dir) / f"checkpoint.{index:04d}.h5"


def _write_group(group: h5py.Group, arrays: Dict[str, np.ndarray]) -> None:
    for name, data in arrays.items():
        group.create_dataset(name, data=data, compression="gzip", compression_opts=4)


def save_checkpoint(
    path: Union[str, Path],
    fields: Dict[str, Any],
    forcing: Dict[str, Any],
    transform: SlabTransform,
    run_state: Dict[str, Any],
    variant: str,
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Write a checkpoint of the spectral ``fields`` and ``forcing``.

    Collective: every rank transforms and sends its slab, rank 0 writes.

    Args:
        path: Output file (overwritten)
        fields: Evolved spectral fields on the local slab
        forcing: Forcing spectral fields on the local slab
        transform: Slab transform (also provides the communicator)
        run_state: Run counters to store (``RunState.model_dump()``)
        variant: Solver variant name
        metadata: Optional user metadata; non-scalar values are stored as str
    """
    comm = transform.comm
    slabs = {
        group: {name: np.asarray(transform.to_physical(f)) for name, f in arrays.items()}
        for group, arrays in (("fields", fields), ("forcing", forcing))
    }
    gathered = comm.gather(slabs, root=0)

    if comm.Get_rank() == 0:
        with h5py.File(path, "w") as f:
            f.attrs["version"] = IO_FORMAT_VERSION
            f.attrs["timestamp"] = datetime.now().isoformat()
            f.attrs["n"] = transform.n
            f.attrs["dim"] = transform.dim
            f.attrs["variant"] = variant

            for group in ("fields", "forcing"):
                arrays = {
                    name: np.concatenate([part[group][name] for part in gathered], axis=0)
                    for name in slabs[group]
                }
                _write_group(f.create_group(group), arrays)

            state = f.create_group("run_state")
            for key, value in run_state.items():
                state.attrs[key] = value

            meta = f.create_group("metadata")
            for key, value in (metadata or {}).items():
                if isinstance(value, (int, float, str, bool, np.number)):
                    meta.attrs[key] = value
                else:
                    meta.attrs[key] = str(value)

    comm.Barrier()


def load_checkpoint(
    path: Union[str, Path],
    rows: Optional[slice] = None,
    n: Optional[int] = None,
    dim: Optional[int] = None,
    variant: Optional[str] = None,
) -> Tuple[Dict[str, np.ndarray], Dict[str, np.ndarray], Dict[str, Any], Dict[str, Any]]:
    """
    Read the physical-space rows ``rows`` of a checkpoint.

    Args:
        path: Checkpoint file
        rows: Physical row slab to read (default: every row)
        n, dim, variant: Expected grid and variant; checked when given

    Returns:
        (fields, forcing, run_state, metadata): physical local slabs keyed by
        name, the stored run counters, and the file metadata (``version``,
        ``timestamp``, ``n``, ``dim``, ``variant`` plus user entries)

    Raises:
        FileNotFoundError: If the checkpoint does not exist
        ValueError: If the file format, grid or variant does not match
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Checkpoint not found: {path}")

    rows = rows if rows is not None else slice(None)
    with h5py.File(path, "r") as f:
        metadata: Dict[str, Any] = {
            "version": str(f.attrs["version"]),
            "timestamp": str(f.attrs["timestamp"]),
            "n": int(f.attrs["n"]),
            "dim": int(f.attrs["dim"]),
            "variant": str(f.attrs["variant"]),
        }
        if metadata["version"] != IO_FORMAT_VERSION:
            raise ValueError(
                f"Checkpoint format {metadata['version']} is not supported "
                f"(expected {IO_FORMAT_VERSION})"
            )
        for key, expected in (("n", n), ("dim", dim), ("variant", variant)):
            if expected is not None and metadata[key] != expected:
                raise ValueError(
                    f"Checkpoint {path.name} has {key}={metadata[key]}, run expects {expected}"
                )

        fields = {name: np.asarray(ds[rows]) for name, ds in f["fields"].items()}
        forcing = {name: np.asarray(ds[rows]) for name, ds in f["forcing"].items()}
        run_state = {key: value.item() if hasattr(value, "item") else value
                     for key, value in f["run_state"].attrs.items()}
        metadata.update(
            {key: value.item() if hasattr(value, "item") else value
             for key, value in f["metadata"].attrs.items()}
        )

    return fields, forcing, run_state, metadata
