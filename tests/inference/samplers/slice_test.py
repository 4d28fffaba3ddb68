# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import pytest
import torch
from bayesgraph import MCMCConfiguration, VerboseLevel
from bayesgraph.examples.conjugate_models import normal_normal
from bayesgraph.exceptions import ConfigurationConflictError
from bayesgraph.inference.samplers import SliceSampler
from bayesgraph.inference.sampler import Sampler
from bayesgraph.model import build_graph, Deterministic, NodeDeclaration, stochastic


def test_continuous_posterior():
    graph = normal_normal(y=2.0)
    conf = MCMCConfiguration(graph)
    conf.remove_samplers("x")
    conf.add_sampler("x", "slice")
    samples = conf.build().run(niter=4000, burnin=500, verbose=VerboseLevel.OFF)
    x = samples["x"]
    assert abs(x.mean().item() - 1.0) < 0.05
    assert abs(x.var().item() - 0.5) < 0.1


def test_discrete_node():
    graph = build_graph(
        [
            stochastic("n", "poisson", rate=3.0),
            stochastic("k", "binomial", total_count="n", probs=0.5),
        ],
        data={"k": 2.0},
    )
    conf = MCMCConfiguration(graph)
    [sampler] = conf.get_samplers("n")
    assert sampler.kind == "slice"
    samples = conf.build().run(
        niter=4000, burnin=500, inits={"n": 4.0}, verbose=VerboseLevel.OFF
    )
    n = samples["n"]
    assert torch.equal(n, torch.floor(n))
    assert bool((n >= 2).all())
    # n - k is Poisson(1.5) a posteriori
    assert abs(n.mean().item() - 3.5) < 0.15


def test_vector_node_updates_every_element():
    graph = build_graph([stochastic("v", "normal", loc=torch.zeros(3), scale=1.0)])
    graph.initialize()
    sampler = SliceSampler(graph, "v")
    before = graph["v"].clone()
    sampler()
    after = graph["v"]
    assert bool((before != after).all())
    assert torch.allclose(graph.get_log_prob("v"), graph.calculate("v"))


def test_width_adaptation():
    graph = normal_normal()
    graph.initialize()
    sampler = SliceSampler(graph, "x", width=50.0, adapt_interval=20)
    for _ in range(200):
        sampler()
    assert sampler.times_adapted == 10
    assert sampler.width < 50.0
    sampler.reset()
    assert sampler.width == 50.0


def test_undefined_state_is_left_alone():
    graph = normal_normal()
    sampler = SliceSampler(graph, "x")
    # x was never initialized; there is no slice to sample from
    sampler()
    assert torch.isnan(graph["x"])


def test_invalid_targets():
    graph = build_graph(
        [
            stochastic(
                "v",
                "mvnormal",
                loc=torch.zeros(2),
                covariance_matrix=torch.eye(2),
            )
        ]
    )
    with pytest.raises(ConfigurationConflictError):
        SliceSampler(graph, "v")
    with pytest.raises(ConfigurationConflictError):
        SliceSampler(normal_normal(), "x", step_size=1.0)


def test_failed_factorization_restores_state():
    flip = torch.tensor([[0.0, 1.0], [1.0, 0.0]], dtype=torch.float64)
    graph = build_graph(
        [
            stochastic("s", "normal", loc=0.0, scale=1.0),
            NodeDeclaration(
                "cov",
                Deterministic(
                    lambda s: torch.eye(2, dtype=torch.float64) + s * flip, ["s"]
                ),
            ),
            stochastic("y", "mvnormal", loc=torch.zeros(2), covariance_matrix="cov"),
        ],
        data={"y": torch.tensor([0.5, -0.3])},
        inits={"s": 0.0},
    )
    graph.initialize()
    log_probs = {name: graph.get_log_prob(name) for name in ["s", "y"]}
    # stepping out with this width reaches |s| >= 1, where cov is not
    # positive-definite
    sampler = SliceSampler(graph, "s", width=50.0)
    with pytest.warns(RuntimeWarning, match="Update rejected"):
        assert next(Sampler(graph, [sampler], [0], num_sweeps=1)) == 1
    assert graph["s"].item() == 0.0
    assert torch.equal(graph["cov"], torch.eye(2, dtype=torch.float64))
    for name, log_prob in log_probs.items():
        assert torch.equal(graph.get_log_prob(name), log_prob)
    assert torch.isfinite(graph.calculate())
