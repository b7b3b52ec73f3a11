"""
psmhd: distributed pseudo-spectral solver for incompressible HD, MHD and Hall-MHD

Advances two- and three-dimensional incompressible flows on the periodic box
[0, 2π)^dim. Derivatives are computed exactly in Fourier space, nonlinear
products in physical space, and the Fourier coefficients are advanced with a
low-storage Runge-Kutta scheme of configurable order.

Solver variants:
- hd:   Navier-Stokes (2D streamfunction, 3D rotational form)
- mhd:  2D incompressible MHD (streamfunction ψ, flux function a)
- mhdb: 2D MHD around a uniform magnetic field b0 x̂
- hmhd: 2.5D Hall-MHD (ψ, a, vz, bz)

Key features:
- Slab decomposition of the Fourier array across MPI ranks (mpi4py)
- 2/3-rule dealiasing applied where the right-hand side is formed
- Periodically re-phased stochastic forcing, synchronized across ranks
- HDF5 checkpoints with exact restart
- JAX-compiled spectral kernels
"""

__version__ = "0.1.0"

from psmhd.decomposition import DomainDecomposition, partition

from psmhd.spectral import (
    WavenumberGrid,
    derivative_x,
    derivative_y,
    derivative_z,
    dealias,
    inverse_laplacian,
    resolved_mask,
    enforce_hermitian,
)

from psmhd.transform import SlabTransform, world_comm

from psmhd.physics import (
    Variant,
    RHSEvaluator,
    HD2D,
    HD3D,
    MHD2D,
    MHDB2D,
    HallMHD2D,
    create_evaluator,
    spectral_energy,
    normalize,
    initial_condition,
)

from psmhd.forcing import ForcingController, ForcingState, forcing_spectrum

from psmhd.timestepping import runge_kutta_step, taylor_amplification

from psmhd.config import SimulationConfig

from psmhd.run import RunContext, RunResult, RunState, run

__all__ = [
    "__version__",
    # Decomposition and spectral infrastructure
    "DomainDecomposition",
    "partition",
    "WavenumberGrid",
    "derivative_x",
    "derivative_y",
    "derivative_z",
    "dealias",
    "inverse_laplacian",
    "resolved_mask",
    "enforce_hermitian",
    "SlabTransform",
    "world_comm",
    # Physics
    "Variant",
    "RHSEvaluator",
    "HD2D",
    "HD3D",
    "MHD2D",
    "MHDB2D",
    "HallMHD2D",
    "create_evaluator",
    "spectral_energy",
    "normalize",
    "initial_condition",
    # Forcing
    "ForcingController",
    "ForcingState",
    "forcing_spectrum",
    # Time integration and run loop
    "runge_kutta_step",
    "taylor_amplification",
    "SimulationConfig",
    "RunContext",
    "RunResult",
    "RunState",
    "run",
]
