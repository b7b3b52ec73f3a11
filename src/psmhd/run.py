"""
Run loop: fresh start or restart, then the per-step sequence.

For every step t from the start index to ``time.step`` (inclusive):
    a. forcing update (phase redraw when the forcing period has elapsed)
    b. checkpoint when the binary-output countdown reached ``cstep``
    c. global quantities when the countdown reached ``tstep``
    d. spectra when the countdown reached ``sstep``
    e. one Runge-Kutta step
    f. every countdown advances by one (e and f are skipped at t = step)

All triggers of a step are evaluated before any output is written, so a
checkpoint taken at step t stores the counters after that step's output
phase. A restart from it reloads the fields, the forcing and those counters
and resumes at t without repeating a–d, which makes a restarted run
reproduce the continuous one.

Every rank executes the same sequence; each output and each RK sub-stage
contains collective operations.

Example:
    >>> config = SimulationConfig.from_yaml("configs/hd_forced.yaml")
    >>> result = run(config)                 # MPI.COMM_WORLD
    >>> result.state.step
    5000
"""

import time as _time
import warnings
from dataclasses import dataclass
from typing import Optional

from pydantic import BaseModel, Field

from psmhd.config import SimulationConfig
from psmhd.decomposition import DomainDecomposition
from psmhd.diagnostics import BalanceLog, write_spectrum
from psmhd.forcing import ForcingController, forcing_spectrum
from psmhd.io import checkpoint_path, load_checkpoint, save_checkpoint
from psmhd.physics import Fields, RHSEvaluator, Variant, create_evaluator, initial_condition
from psmhd.spectral import WavenumberGrid
from psmhd.timestepping import runge_kutta_step
from psmhd.transform import SlabTransform, world_comm
from psmhd.validation import validate_parameters


class RunState(BaseModel):
    """
    Scalar counters of a run, mutated once per step.

    Attributes:
        step: Index of the current step
        time: Simulation time, step·dt
        timet, timec, times: Steps since the last global-quantity output,
            checkpoint and spectrum output
        tind, sind: Index of the last checkpoint and spectrum file written
        forcing_countdown: Steps since the last forcing update
        forcing_updates: Number of phase redraws so far
    """

    step: int = Field(0, ge=0)
    time: float = 0.0
    timet: int = Field(0, ge=0)
    timec: int = Field(0, ge=0)
    times: int = Field(0, ge=0)
    tind: int = Field(0, ge=0)
    sind: int = Field(0, ge=0)
    forcing_countdown: int = Field(0, ge=0)
    forcing_updates: int = Field(0, ge=0)

    @classmethod
    def fresh(cls, tstep: int, cstep: int, sstep: int) -> "RunState":
        """Counters of a new run, primed so that step 0 is written."""
        return cls(timet=tstep, timec=cstep, times=sstep)

    def tick(self, dt: float) -> None:
        self.step += 1
        self.time = self.step * dt
        self.timet += 1
        self.timec += 1
        self.times += 1
        self.forcing_countdown += 1


class RunContext:
    """
    Everything a run shares across steps, built once at startup.

    Attributes:
        config: Validated configuration
        comm: Communicator
        decomposition: Slabs owned by this rank
        grid: Wavenumber grid of the Fourier slab
        transform: Slab transform
        evaluator: Right-hand side of the selected variant
    """

    def __init__(
        self,
        config: SimulationConfig,
        comm,
        decomposition: DomainDecomposition,
        grid: WavenumberGrid,
        transform: SlabTransform,
        evaluator: RHSEvaluator,
    ):
        self.config = config
        self.comm = comm
        self.decomposition = decomposition
        self.grid = grid
        self.transform = transform
        self.evaluator = evaluator

    @classmethod
    def create(cls, config: SimulationConfig, comm) -> "RunContext":
        config.apply_precision()
        n, dim = config.grid.n, config.grid.dim
        decomposition = DomainDecomposition.create(n, size=comm.Get_size(), rank=comm.Get_rank())
        grid = WavenumberGrid.create(n, dim, decomposition)
        transform = SlabTransform(decomposition, dim, comm)
        physics = config.physics
        evaluator = create_evaluator(
            physics.variant, grid, transform,
            nu=physics.nu, mu=physics.mu, b0=physics.b0, ep=physics.ep,
        )
        return cls(config, comm, decomposition, grid, transform, evaluator)

    @property
    def rank(self) -> int:
        return self.comm.Get_rank()


@dataclass
class RunResult:
    """Final spectral fields and counters of a completed run."""

    fields: Fields
    forcing: Fields
    state: RunState
    context: RunContext
    elapsed: Optional[float] = None


# =============================================================================
# Startup
# =============================================================================


def _check_parameters(config: SimulationConfig, size: int, verbose: bool) -> None:
    result = validate_parameters(
        dt=config.time.dt,
        nu=config.physics.nu,
        mu=0.0 if config.physics.variant == Variant.HD else config.physics.mu,
        n=config.grid.n,
        order=config.time.order,
        step=config.time.step,
        cort=config.forcing.cort,
        rand=config.forcing.rand,
        tstep=config.output.tstep,
        cstep=config.output.cstep,
        sstep=config.output.sstep,
        size=size,
    )
    if verbose:
        for message in result.warnings:
            warnings.warn(message, stacklevel=3)
    if not result.valid:
        raise ValueError("Invalid configuration: " + "; ".join(result.errors))


def _fresh_start(ctx: RunContext):
    config, evaluator = ctx.config, ctx.evaluator
    ic = config.initial_condition
    fields = initial_condition(
        evaluator,
        ic.kind,
        amplitude=ic.amplitude,
        magnetic_amplitude=ic.magnetic_amplitude,
        mode=config.initial_mode(),
        kdn=ic.kdn,
        kup=ic.kup,
        seed=ic.seed,
    )
    fc = config.forcing
    forcing = forcing_spectrum(
        evaluator,
        fc.kind,
        f0=fc.f0,
        m0=fc.m0,
        kdn=fc.kdn,
        kup=fc.kup,
        mode=config.forcing_mode(),
        seed=fc.seed,
    )
    out = config.output
    return fields, forcing, RunState.fresh(out.tstep, out.cstep, out.sstep)


def _restart(ctx: RunContext):
    config, evaluator = ctx.config, ctx.evaluator
    path = checkpoint_path(config.output.output_dir, config.restart.stat)
    fields_phys, forcing_phys, state, _ = load_checkpoint(
        path,
        rows=ctx.decomposition.row_slice,
        n=config.grid.n,
        dim=config.grid.dim,
        variant=config.physics.variant.value,
    )
    missing = [name for name in evaluator.field_names if name not in fields_phys]
    missing += [name for name in evaluator.forcing_names if name not in forcing_phys]
    if missing:
        raise ValueError(f"Checkpoint {path.name} lacks fields {missing}")

    forward = ctx.transform.forward
    fields = {name: forward(fields_phys[name]) for name in evaluator.field_names}
    forcing = {name: forward(forcing_phys[name]) for name in evaluator.forcing_names}
    return fields, forcing, RunState(**state)


# =============================================================================
# Loop
# =============================================================================


def run(
    config: SimulationConfig,
    comm=None,
    verbose: bool = True,
) -> RunResult:
    """
    Execute a run described by ``config``.

    Args:
        config: Validated configuration
        comm: Communicator (default: MPI.COMM_WORLD)
        verbose: Print progress on rank 0

    Returns:
        RunResult with the final spectral fields, forcing and counters
        (``elapsed`` is the loop wall-clock time on rank 0 in benchmark mode)

    Raises:
        ValueError: Invalid parameters, or a checkpoint that does not match
        FileNotFoundError: Restart index without a checkpoint
    """
    comm = comm if comm is not None else world_comm()
    _check_parameters(config, comm.Get_size(), verbose and comm.Get_rank() == 0)

    ctx = RunContext.create(config, comm)
    evaluator = ctx.evaluator
    rank = ctx.rank
    out = config.output
    dt, total, order = config.time.dt, config.time.step, config.time.order
    restarted = config.restart.stat > 0
    benchmark = out.benchmark
    say = verbose and rank == 0

    if say:
        print(config.summary())

    if restarted:
        fields, forcing, state = _restart(ctx)
        if say:
            print(f"✓ Restarted from checkpoint {config.restart.stat} at step {state.step}")
    else:
        fields, forcing, state = _fresh_start(ctx)
        if say:
            print(f"✓ Initialized '{config.initial_condition.kind}' fields, "
                  f"'{config.forcing.kind}' forcing")

    controller = ForcingController(
        forcing,
        evaluator.forcing_groups,
        ctx.grid,
        comm,
        rand=config.forcing.rand,
        period=config.forcing_period(),
        seed=config.forcing.seed,
        corr=config.forcing.corr,
    )

    balance = None
    if not benchmark:
        output_dir = config.get_output_dir(create=rank == 0)
        comm.Barrier()
        if rank == 0 and not restarted:
            config.to_yaml(output_dir / "config.yaml")
        names = list(evaluator.global_quantities(fields, controller.forcing))
        balance = BalanceLog(output_dir / "balance.txt", names, rank=rank, append=restarted)

    def rhs(current: Fields) -> Fields:
        return evaluator.rhs(current, controller.forcing)

    comm.Barrier()
    start_time = _time.perf_counter() if rank == 0 else None

    start = state.step
    for t in range(start, total + 1):
        resuming = restarted and t == start

        if not resuming:
            controller.advance(state)

        if not benchmark and not resuming:
            write_checkpoint = state.timec >= out.cstep
            write_balance = state.timet >= out.tstep
            write_spectra = state.times >= out.sstep
            if write_checkpoint:
                state.timec = 0
                state.tind += 1
            if write_balance:
                state.timet = 0
            if write_spectra:
                state.times = 0
                state.sind += 1

            if write_checkpoint:
                save_checkpoint(
                    checkpoint_path(output_dir, state.tind),
                    fields,
                    controller.forcing,
                    ctx.transform,
                    state.model_dump(),
                    config.physics.variant.value,
                    metadata={"name": config.name, "dt": dt},
                )
            if write_balance:
                quantities = evaluator.global_quantities(fields, controller.forcing)
                balance.record(t, state.time, quantities)
                if say:
                    summary = "  ".join(f"{k} = {v:.6e}" for k, v in list(quantities.items())[:2])
                    print(f"  step {t:6d}  t = {state.time:.4f}  {summary}")
            if write_spectra:
                for name, spectrum in evaluator.spectra(fields).items():
                    write_spectrum(output_dir / f"{name}.{state.sind:04d}.txt", spectrum, rank)

        if t < total:
            fields = runge_kutta_step(fields, rhs, dt, order)
            state.tick(dt)

    comm.Barrier()
    elapsed = None
    if benchmark and rank == 0:
        elapsed = _time.perf_counter() - start_time
        if verbose:
            steps = total - start
            print(f"✓ Benchmark: {steps} steps in {elapsed:.3f} s "
                  f"({elapsed / max(steps, 1):.3e} s/step) on {comm.Get_size()} ranks")
    elif say:
        print(f"✓ Completed {total - start} steps (t = {state.time:.4f})")

    return RunResult(fields, controller.forcing, state, ctx, elapsed)
