# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import warnings

import pytest
import torch
from bayesgraph import MCMCConfiguration, Options, register_sampler, VerboseLevel
from bayesgraph.examples.conjugate_models import linear_regression, normal_normal
from bayesgraph.inference import Sampler
from bayesgraph.inference.samplers import BaseSampler, RandomWalkSampler


@register_sampler("test_callback_RW")
class CallbackRandomWalk(RandomWalkSampler):
    """RW sampler calling ``on_run`` before every update."""

    kind = "test_callback_RW"

    def setup_sampler(self, graph, on_run=None, **options):
        self.on_run = on_run
        super().setup_sampler(graph, **options)

    def run(self):
        self.on_run()
        return super().run()


@register_sampler("test_failing")
class FailingSampler(BaseSampler):
    """Fails with a factorization error every other call."""

    kind = "test_failing"

    def setup_sampler(self, graph, message="", **options):
        self.message = message
        self.num_calls = 0
        super().setup_sampler(graph, **options)

    def run(self):
        self.num_calls += 1
        if self.num_calls % 2:
            raise RuntimeError(self.message)


def rw_configuration(**options):
    graph = normal_normal(options=Options(use_conjugacy=False))
    conf = MCMCConfiguration(graph, **options)
    return conf


def test_recorded_rows():
    mcmc = rw_configuration().build()
    samples = mcmc.run(niter=1000, burnin=100, verbose=VerboseLevel.OFF)
    assert samples["x"].shape == (1, 900)
    assert samples.get_num_samples() == 900

    samples = mcmc.run(niter=1000, burnin=100, thin=3, verbose=VerboseLevel.OFF)
    assert samples.get_num_samples() == 300

    samples = mcmc.run(niter=50, burnin=50, verbose=VerboseLevel.OFF)
    assert samples["x"].shape == (1, 0)


def test_chains_and_log_likelihoods():
    mcmc = rw_configuration().build()
    samples = mcmc.run(niter=200, num_chains=3, verbose=VerboseLevel.OFF)
    assert samples["x"].shape == (3, 200)
    assert samples.get_log_likelihoods("y").shape == (3, 200)
    assert samples.observations["y"].item() == 2.0

    samples = mcmc.run(niter=20, record_log_likelihood=False, verbose=VerboseLevel.OFF)
    assert samples.log_likelihoods is None


def test_graph_is_not_modified():
    graph = normal_normal()
    MCMCConfiguration(graph).build().run(niter=20, verbose=VerboseLevel.OFF)
    assert torch.isnan(graph["x"])
    assert not graph.data_locked


def test_inits_per_chain():
    mcmc = rw_configuration().build()
    samples = mcmc.run(
        niter=1,
        num_chains=2,
        inits=[{"x": 100.0}, {"x": -100.0}],
        verbose=VerboseLevel.OFF,
    )
    x = samples["x"]
    # one RW step from far out in the tails
    assert x[0, 0] > 50 and x[1, 0] < -50
    with pytest.raises(ValueError):
        mcmc.run(niter=1, num_chains=3, inits=[{"x": 0.0}], verbose=VerboseLevel.OFF)


def test_invalid_arguments():
    mcmc = rw_configuration().build()
    with pytest.raises(ValueError):
        mcmc.run(niter=-1)
    with pytest.raises(ValueError):
        mcmc.run(niter=10, thin=0)
    with pytest.raises(ValueError):
        mcmc.run(niter=10, num_chains=0)


def test_seed_reproducibility():
    mcmc = rw_configuration().build()
    first = mcmc.run(niter=100, num_chains=2, seed=7, verbose=VerboseLevel.OFF)
    second = mcmc.run(niter=100, num_chains=2, seed=7, verbose=VerboseLevel.OFF)
    assert torch.equal(first["x"], second["x"])
    # chains are seeded differently
    assert not torch.equal(first["x"][0], first["x"][1])


def test_monitors_data_nodes():
    conf = rw_configuration(monitors=["x", "y"])
    samples = conf.build().run(niter=10, verbose=VerboseLevel.OFF)
    assert list(samples.keys()) == ["x", "y"]
    assert bool((samples["y"] == 2.0).all())


def test_monitors_deterministic_nodes():
    x = [0.0, 1.0, 2.0]
    conf = MCMCConfiguration(linear_regression(x, [0.1, 1.2, 1.9]))
    conf.add_monitors("mu")
    samples = conf.build().run(niter=20, verbose=VerboseLevel.OFF)
    assert list(samples.keys()) == ["beta", "mu"]
    beta = samples["beta"]
    assert samples["mu"].shape == (1, 20, 3)
    expected = beta[..., :1] + beta[..., 1:] * torch.tensor(x, dtype=torch.float64)
    assert torch.allclose(samples["mu"], expected)


def test_stop():
    holder = {"calls": 0}

    def on_run():
        holder["calls"] += 1
        if holder["calls"] == 50:
            holder["mcmc"].stop()

    conf = rw_configuration()
    conf.remove_samplers("x")
    conf.add_sampler("x", "test_callback_RW", on_run=on_run)
    mcmc = conf.build()
    holder["mcmc"] = mcmc
    samples = mcmc.run(niter=1000, num_chains=2, verbose=VerboseLevel.OFF)
    assert mcmc.stop_requested
    assert samples.num_chains == 1
    assert samples.get_num_samples() == 50
    assert holder["calls"] == 50


def test_stop_without_monitors():
    holder = {"calls": 0}

    def on_run():
        holder["calls"] += 1
        if holder["calls"] == 1050:
            holder["mcmc"].stop()

    conf = rw_configuration()
    conf.set_monitors([])
    conf.remove_samplers("x")
    conf.add_sampler("x", "test_callback_RW", on_run=on_run)
    mcmc = conf.build()
    holder["mcmc"] = mcmc
    samples = mcmc.run(niter=1000, num_chains=2, verbose=VerboseLevel.OFF)
    assert len(samples) == 0
    assert samples.num_chains == 2
    # the complete first chain is cut to the length of the second
    assert samples.get_log_likelihoods("y").shape == (2, 50)


def test_factorization_failures_are_rejections():
    conf = rw_configuration()
    conf.remove_samplers("x")
    conf.add_sampler(
        "x", "test_failing", message="cholesky: the input is not positive-definite"
    )
    with pytest.warns(RuntimeWarning):
        samples = conf.build().run(niter=10, verbose=VerboseLevel.OFF)
    assert samples.get_num_samples() == 10

    conf.remove_samplers()
    conf.add_sampler("x", "test_failing", message="something else")
    with pytest.raises(RuntimeError):
        conf.build().run(niter=10, verbose=VerboseLevel.OFF)


def test_sampler_generator():
    graph = normal_normal()
    graph.initialize()
    conf = rw_configuration()
    samplers = [a.build(graph) for a in conf.assignments]
    sampler = Sampler(graph, samplers, conf.execution_order, num_sweeps=5)
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        sweeps = list(sampler)
    assert sweeps == [1, 2, 3, 4, 5]
    assert samplers[0].num_proposed == 5
