# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

import logging
import threading
from functools import partial
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING, Union

import torch
from bayesgraph.config import Options
from bayesgraph.inference.monte_carlo_samples import MonteCarloSamples
from bayesgraph.inference.sampler import Sampler
from bayesgraph.inference.utils import (
    _execute_in_new_thread,
    seed as set_seed,
    VerboseLevel,
)
from bayesgraph.model.initialize_fn import init_from_prior, InitializeFn
from bayesgraph.model.utils import LogLevel
from torch import multiprocessing as mp
from tqdm.auto import tqdm
from tqdm.notebook import tqdm as notebook_tqdm
from typing_extensions import Literal

if TYPE_CHECKING:
    from bayesgraph.inference.mcmc_configuration import SamplerAssignment
    from bayesgraph.model.graph import Graph


LOGGER = logging.getLogger("bayesgraph.inference")

Inits = Union[Mapping[str, object], Sequence[Mapping[str, object]], None]
ChainResult = Tuple[Dict[str, torch.Tensor], Dict[str, torch.Tensor]]


def _single_chain_run(
    graph: Graph,
    assignments: Sequence[SamplerAssignment],
    order: Sequence[int],
    monitors: Sequence[str],
    options: Options,
    niter: int,
    burnin: int,
    thin: int,
    inits: Inits,
    initialize_fn: InitializeFn,
    verbose: VerboseLevel,
    record_log_likelihood: bool,
    stop_event: Optional[threading.Event],
    chain_id: int,
    seed: Optional[int] = None,
) -> ChainResult:
    """
    Run a single chain on a private copy of ``graph``. Return the recorded
    values of the monitors and the log likelihoods of the data nodes, stacked
    along the first dimension.
    """
    if seed is not None:
        set_seed(seed)

        # A hack to fix the issue where tqdm doesn't render progress bar correctly in
        # subprocess in Jupyter notebook (https://github.com/tqdm/tqdm/issues/485)
        if verbose == VerboseLevel.LOAD_BAR and issubclass(tqdm, notebook_tqdm):
            print(" ", end="", flush=True)

    chain_graph = graph.copy()
    if isinstance(inits, Sequence):
        inits = inits[chain_id]
    chain_graph.initialize(inits, initialize_fn)
    chain_graph.lock_data()
    samplers = [a.build(chain_graph, options.jit_backend) for a in assignments]
    LOGGER.log(
        LogLevel.DEBUG_SAMPLER.value,
        f"Chain {chain_id}: " + "; ".join(repr(s) for s in samplers),
    )

    data_nodes = chain_graph.data_nodes if record_log_likelihood else ()
    samples: Dict[str, List[torch.Tensor]] = {name: [] for name in monitors}
    log_likelihoods: Dict[str, List[torch.Tensor]] = {name: [] for name in data_nodes}

    sampler = Sampler(chain_graph, samplers, order, niter, stop_event)
    # Main inference loop
    for sweep in tqdm(
        sampler,
        total=niter,
        desc="Sweeps",
        disable=verbose == VerboseLevel.OFF,
        position=chain_id,
    ):
        if sweep <= burnin or (sweep - burnin) % thin != 0:
            continue
        for name in monitors:
            samples[name].append(chain_graph[name].clone())
        for name in data_nodes:
            log_likelihoods[name].append(chain_graph.get_node(name).log_prob.clone())

    for s in samplers:
        if s.adaptive:
            LOGGER.log(LogLevel.DEBUG_SAMPLER.value, f"Chain {chain_id}: final {s!r}")

    def stack(values: List[torch.Tensor], shape: torch.Size) -> torch.Tensor:
        if values:
            return torch.stack(values)
        return torch.empty((0,) + tuple(shape), dtype=torch.float64)

    return (
        {n: stack(v, chain_graph.get_node(n).shape) for n, v in samples.items()},
        {n: stack(v, torch.Size([])) for n, v in log_likelihoods.items()},
    )


def _num_rows(result: ChainResult) -> Optional[int]:
    """Number of recorded sweeps of a chain, None if it recorded nothing."""
    for recorded in result:
        for value in recorded.values():
            return value.shape[0]
    return None


class MCMC:
    """
    Runs the samplers of an ``MCMCConfiguration`` over one or more independent
    chains. Built by ``MCMCConfiguration.build``.

    Args:
        graph: The model graph. Chains run on copies, so it is never modified.
        assignments: Sampler assignments; every chain builds its own samplers
            from them.
        order: Indices into ``assignments`` run in one sweep.
        monitors: Nodes whose values are recorded.
        options: Options of the run.
    """

    # maximum value of a seed
    _MAX_SEED_VAL: int = 2**32 - 1

    def __init__(
        self,
        graph: Graph,
        assignments: Sequence[SamplerAssignment],
        order: Optional[Sequence[int]] = None,
        monitors: Optional[Sequence[str]] = None,
        options: Optional[Options] = None,
    ):
        self.graph = graph
        self.assignments = tuple(assignments)
        self.order = tuple(range(len(self.assignments)) if order is None else order)
        self.monitors = tuple(graph.latent_nodes if monitors is None else monitors)
        self.options = options or graph.options
        self._stop_event = threading.Event()

    def stop(self) -> None:
        """Request the run to end after the current sweep. Chains that have not
        started are skipped. Only applies to chains run in this process."""
        LOGGER.info("Stop requested; finishing the current sweep.")
        self._stop_event.set()

    @property
    def stop_requested(self) -> bool:
        return self._stop_event.is_set()

    def run(
        self,
        niter: int,
        burnin: int = 0,
        thin: int = 1,
        num_chains: int = 1,
        inits: Inits = None,
        initialize_fn: InitializeFn = init_from_prior,
        seed: Optional[int] = None,
        verbose: VerboseLevel = VerboseLevel.LOAD_BAR,
        run_in_parallel: bool = False,
        mp_context: Optional[Literal["fork", "spawn", "forkserver"]] = None,
        record_log_likelihood: bool = True,
    ) -> MonteCarloSamples:
        """
        Performs inference and returns a ``MonteCarloSamples`` object with the
        recorded sweeps. Sweep ``i`` (1-based) is recorded when ``i > burnin``
        and ``(i - burnin) % thin == 0``.

        Args:
            niter: Total number of sweeps per chain, burn-in included.
            burnin: Number of initial sweeps that are not recorded.
            thin: Record one sweep out of ``thin``.
            num_chains: Number of independent chains.
            inits: Initial values, either shared by all chains or one mapping
                per chain. Latent nodes without one are set by ``initialize_fn``.
            initialize_fn: Initialization strategy for the remaining nodes.
            seed: Seed of the first chain; chain ``c`` uses ``seed + 31 * c``.
            verbose: Whether to display the progress bar or not.
            run_in_parallel: Whether to run multiple chains in parallel (with multiple
                processes) or not. The graph must then be picklable.
            mp_context: The ``multiprocessing`` start method, such as "spawn" or
                "forkserver", used for parallel inference.
            record_log_likelihood: Record the log densities of the data nodes.
        """
        if niter < 0 or burnin < 0:
            raise ValueError("niter and burnin must be non-negative.")
        if num_chains < 1:
            raise ValueError(
                f"num_chains must be a positive integer, got {num_chains}."
            )
        if thin < 1:
            raise ValueError(f"thin must be a positive integer, got {thin}.")
        if isinstance(inits, Sequence) and len(inits) != num_chains:
            raise ValueError(
                f"Got {len(inits)} sets of initial values for {num_chains} chains."
            )
        self._stop_event.clear()

        single_chain_run = partial(
            _single_chain_run,
            self.graph,
            self.assignments,
            self.order,
            self.monitors,
            self.options,
            niter,
            burnin,
            thin,
            inits,
            initialize_fn,
            verbose,
            record_log_likelihood,
        )
        if seed is None and run_in_parallel:
            # We'd like to explicitly set a different seed for each process to avoid
            # duplicating the same RNG state for all chains
            seed = int(torch.randint(self._MAX_SEED_VAL, ()).item())
        seeds = [
            None if seed is None else (seed + 31 * chain_id) % self._MAX_SEED_VAL
            for chain_id in range(num_chains)
        ]

        if not run_in_parallel:
            chain_results: List[ChainResult] = []
            for chain_id in range(num_chains):
                if self.stop_requested:
                    break
                chain_results.append(
                    single_chain_run(self._stop_event, chain_id, seeds[chain_id])
                )
        else:
            ctx = mp.get_context(mp_context)
            # run single chain inference in a new thread in subprocesses to avoid
            # forking corrupted internal states
            # (https://github.com/pytorch/pytorch/issues/17199)
            worker = partial(_execute_in_new_thread, single_chain_run, None)

            with ctx.Pool(
                processes=num_chains, initializer=tqdm.set_lock, initargs=(ctx.Lock(),)
            ) as p:
                chain_results = p.starmap(worker, enumerate(seeds))

        all_samples, all_log_likelihoods = zip(*chain_results)
        rows = [_num_rows(result) for result in chain_results]
        if self.stop_requested and any(r is not None for r in rows):
            # chains cut short by stop() are truncated to the shortest one
            num_rows = min(r for r in rows if r is not None)
            all_samples = [{k: v[:num_rows] for k, v in s.items()} for s in all_samples]
            all_log_likelihoods = [
                {k: v[:num_rows] for k, v in ll.items()} for ll in all_log_likelihoods
            ]
            LOGGER.info(
                f"Run stopped with {len(all_samples)} chain(s) of {num_rows} rows."
            )

        observations = None
        if record_log_likelihood:
            observations = {name: self.graph[name] for name in self.graph.data_nodes}
        return MonteCarloSamples(
            list(all_samples),
            list(all_log_likelihoods) if record_log_likelihood else None,
            observations,
        )
