"""
Shared fixtures: 64-bit JAX and in-process communicators.

``SerialComm`` is a single-rank communicator. ``run_spmd(size, fn)`` runs
``fn(comm)`` on ``size`` threads, each holding a ``ThreadComm`` of one rank,
so the collective code paths (alltoall, bcast, allreduce, gather, Barrier)
are exercised exactly as under ``mpirun -n size`` without an MPI launcher.
Both implement the subset of mpi4py's lower-case API used by psmhd.
"""

import threading

import jax
import pytest

jax.config.update("jax_enable_x64", True)


class SerialComm:
    """Communicator of a single rank."""

    def Get_rank(self):
        return 0

    def Get_size(self):
        return 1

    def bcast(self, obj, root=0):
        return obj

    def alltoall(self, blocks):
        assert len(blocks) == 1
        return list(blocks)

    def allreduce(self, value):
        return value

    def gather(self, obj, root=0):
        return [obj]

    def Barrier(self):
        pass

    def Abort(self, errorcode=1):
        raise RuntimeError(f"Abort({errorcode})")


class _World:
    def __init__(self, size):
        self.size = size
        self.barrier = threading.Barrier(size, timeout=120)
        self.slots = [None] * size


class ThreadComm:
    """One rank of a thread-backed communicator."""

    def __init__(self, world, rank):
        self.world = world
        self.rank = rank

    def Get_rank(self):
        return self.rank

    def Get_size(self):
        return self.world.size

    def _allgather(self, value):
        self.world.slots[self.rank] = value
        self.world.barrier.wait()
        values = list(self.world.slots)
        self.world.barrier.wait()
        return values

    def bcast(self, obj, root=0):
        return self._allgather(obj)[root]

    def alltoall(self, blocks):
        assert len(blocks) == self.world.size
        everything = self._allgather(blocks)
        return [everything[src][self.rank] for src in range(self.world.size)]

    def allreduce(self, value):
        values = self._allgather(value)
        total = values[0]
        for v in values[1:]:
            total = total + v
        return total

    def gather(self, obj, root=0):
        values = self._allgather(obj)
        return values if self.rank == root else None

    def Barrier(self):
        self.world.barrier.wait()

    def Abort(self, errorcode=1):
        self.world.barrier.abort()
        raise RuntimeError(f"Abort({errorcode})")


def run_spmd(size, fn):
    """
    Run ``fn(comm)`` on ``size`` ranks and return the per-rank results.

    The first exception raised on any rank is re-raised in the caller.
    """
    world = _World(size)
    results = [None] * size
    errors = [None] * size

    def target(rank):
        try:
            results[rank] = fn(ThreadComm(world, rank))
        except BaseException as e:
            errors[rank] = e
            world.barrier.abort()

    threads = [threading.Thread(target=target, args=(r,)) for r in range(size)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    primary = [e for e in errors if e is not None and not isinstance(e, threading.BrokenBarrierError)]
    if primary:
        raise primary[0]
    for e in errors:
        if e is not None:
            raise e
    return results


@pytest.fixture
def comm():
    return SerialComm()


@pytest.fixture
def spmd():
    """The ``run_spmd`` helper as a fixture."""
    return run_spmd
