"""
Tests for HDF5 checkpoint I/O.

This module tests checkpoint save/load operations, including:
- Roundtrip accuracy (spectral → physical file → spectral)
- Run counters and metadata preservation
- Error handling (missing files, grid/variant/version mismatch)
- Partial reads of a rank's row slab
- Gathered writes from several ranks
"""

import h5py
import numpy as np
import pytest

from psmhd.decomposition import DomainDecomposition
from psmhd.forcing import forcing_spectrum
from psmhd.io import IO_FORMAT_VERSION, checkpoint_path, load_checkpoint, save_checkpoint
from psmhd.physics import Variant, create_evaluator, initial_condition
from psmhd.run import RunState
from psmhd.spectral import WavenumberGrid
from psmhd.transform import SlabTransform

N = 16


# =============================================================================
# Fixtures
# =============================================================================


def make_evaluator(comm, n=N):
    dec = DomainDecomposition.create(n, size=comm.Get_size(), rank=comm.Get_rank())
    grid = WavenumberGrid.create(n, 2, dec)
    return create_evaluator(Variant.MHD, grid, SlabTransform(dec, 2, comm))


def make_state(evaluator):
    fields = initial_condition(
        evaluator, "random", amplitude=0.5, magnetic_amplitude=0.3, kdn=1, kup=4, seed=11
    )
    forcing = forcing_spectrum(evaluator, "band", f0=0.2, m0=0.1, kdn=2, kup=3, seed=12)
    return fields, forcing


@pytest.fixture
def evaluator(comm):
    return make_evaluator(comm)


@pytest.fixture
def state(evaluator):
    return make_state(evaluator)


@pytest.fixture
def run_state():
    return RunState(step=40, time=0.04, timet=0, timec=0, times=3, tind=2, sind=4,
                    forcing_countdown=1, forcing_updates=7)


# =============================================================================
# Checkpoint Tests
# =============================================================================


def test_checkpoint_path():
    assert checkpoint_path("out", 3).name == "checkpoint.0003.h5"
    assert checkpoint_path("out", 12).parent.name == "out"


def test_checkpoint_roundtrip(evaluator, state, run_state, tmp_path):
    """Save then load recovers the spectral fields and the counters."""
    fields, forcing = state
    path = tmp_path / "checkpoint.0001.h5"

    save_checkpoint(path, fields, forcing, evaluator.transform, run_state.model_dump(), "mhd")
    fields_phys, forcing_phys, loaded, metadata = load_checkpoint(path, n=N, dim=2, variant="mhd")

    forward = evaluator.transform.forward
    for name in ("ps", "az"):
        np.testing.assert_allclose(forward(fields_phys[name]), fields[name], atol=1e-10)
    for name in ("fk", "mk"):
        np.testing.assert_allclose(forward(forcing_phys[name]), forcing[name], atol=1e-10)

    assert RunState(**loaded) == run_state
    assert metadata["version"] == IO_FORMAT_VERSION
    assert metadata["variant"] == "mhd"
    assert metadata["n"] == N
    assert metadata["dim"] == 2


def test_checkpoint_stores_physical_values(evaluator, state, run_state, tmp_path):
    """Datasets hold the descaled physical fields."""
    fields, forcing = state
    path = tmp_path / "checkpoint.0001.h5"
    save_checkpoint(path, fields, forcing, evaluator.transform, run_state.model_dump(), "mhd")

    with h5py.File(path, "r") as f:
        ps = f["fields/ps"][:]
        assert f["fields/ps"].compression == "gzip"
        assert set(f["fields"]) == {"ps", "az"}
        assert set(f["forcing"]) == {"fk", "mk"}

    assert ps.shape == (N, N)
    np.testing.assert_allclose(ps, evaluator.transform.to_physical(fields["ps"]), atol=1e-14)


def test_checkpoint_with_metadata(evaluator, state, run_state, tmp_path):
    fields, forcing = state
    path = tmp_path / "checkpoint.0001.h5"
    metadata = {"name": "mhd_test", "dt": 1e-3, "tags": [1, 2]}

    save_checkpoint(
        path, fields, forcing, evaluator.transform, run_state.model_dump(), "mhd", metadata
    )
    _, _, _, loaded = load_checkpoint(path)

    assert loaded["name"] == "mhd_test"
    assert loaded["dt"] == pytest.approx(1e-3)
    assert loaded["tags"] == "[1, 2]"
    assert "timestamp" in loaded


def test_checkpoint_overwrite(evaluator, state, run_state, tmp_path):
    fields, forcing = state
    path = tmp_path / "checkpoint.0001.h5"
    transform = evaluator.transform

    save_checkpoint(path, fields, forcing, transform, run_state.model_dump(), "mhd")
    doubled = {name: 2.0 * f for name, f in fields.items()}
    save_checkpoint(path, doubled, forcing, transform, run_state.model_dump(), "mhd")

    fields_phys, _, _, _ = load_checkpoint(path)
    np.testing.assert_allclose(transform.forward(fields_phys["ps"]), doubled["ps"], atol=1e-10)


def test_checkpoint_row_slab(evaluator, state, run_state, tmp_path):
    fields, forcing = state
    path = tmp_path / "checkpoint.0001.h5"
    save_checkpoint(path, fields, forcing, evaluator.transform, run_state.model_dump(), "mhd")

    full, _, _, _ = load_checkpoint(path)
    part, _, _, _ = load_checkpoint(path, rows=slice(4, 9))

    assert part["az"].shape == (5, N)
    np.testing.assert_array_equal(part["az"], full["az"][4:9])


def test_checkpoint_file_not_found(tmp_path):
    with pytest.raises(FileNotFoundError, match="Checkpoint not found"):
        load_checkpoint(tmp_path / "checkpoint.0009.h5")


@pytest.mark.parametrize(
    "expected", [{"n": 32}, {"dim": 3}, {"variant": "hd"}]
)
def test_checkpoint_mismatch(evaluator, state, run_state, tmp_path, expected):
    fields, forcing = state
    path = tmp_path / "checkpoint.0001.h5"
    save_checkpoint(path, fields, forcing, evaluator.transform, run_state.model_dump(), "mhd")

    with pytest.raises(ValueError, match="run expects"):
        load_checkpoint(path, **expected)


def test_version_mismatch(evaluator, state, run_state, tmp_path):
    fields, forcing = state
    path = tmp_path / "checkpoint.0001.h5"
    save_checkpoint(path, fields, forcing, evaluator.transform, run_state.model_dump(), "mhd")
    with h5py.File(path, "a") as f:
        f.attrs["version"] = "0.1"

    with pytest.raises(ValueError, match="not supported"):
        load_checkpoint(path)


def test_checkpoint_gathered_from_ranks(comm, spmd, tmp_path):
    """A 3-rank write produces the same file content as a serial one."""
    serial = make_evaluator(comm)
    fields, forcing = make_state(serial)
    serial_path = tmp_path / "serial.h5"
    save_checkpoint(serial_path, fields, forcing, serial.transform, {"step": 0}, "mhd")

    parallel_path = tmp_path / "parallel.h5"

    def body(c):
        ev = make_evaluator(c)
        local_fields, local_forcing = make_state(ev)
        save_checkpoint(parallel_path, local_fields, local_forcing, ev.transform, {"step": 0}, "mhd")

    spmd(3, body)

    expected, expected_forcing, _, _ = load_checkpoint(serial_path)
    actual, actual_forcing, state, _ = load_checkpoint(parallel_path)
    for name in expected:
        np.testing.assert_allclose(actual[name], expected[name], atol=1e-12)
    for name in expected_forcing:
        np.testing.assert_allclose(actual_forcing[name], expected_forcing[name], atol=1e-12)
    assert state == {"step": 0}
