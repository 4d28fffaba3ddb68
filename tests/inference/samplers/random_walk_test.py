# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import pytest
import torch
from bayesgraph import MCMCConfiguration, Options, VerboseLevel
from bayesgraph.examples.conjugate_models import normal_normal
from bayesgraph.exceptions import ConfigurationConflictError
from bayesgraph.inference.samplers import RandomWalkSampler
from bayesgraph.inference.samplers.random_walk import adaptation_factor
from bayesgraph.model import build_graph, Deterministic, NodeDeclaration, stochastic


def state(graph):
    return {n: (graph[n], graph.get_node(n).log_prob) for n in graph.nodes}


def assert_same_state(graph, before):
    for name, (value, log_prob) in before.items():
        assert torch.equal(graph[name], value), name
        assert torch.equal(graph.get_node(name).log_prob, log_prob), name


def test_normal_normal_posterior():
    graph = normal_normal(y=2.0, options=Options(use_conjugacy=False))
    conf = MCMCConfiguration(graph)
    assert conf.get_samplers()[0].kind == "RW"
    samples = conf.build().run(niter=10000, burnin=1000, verbose=VerboseLevel.OFF)
    x = samples["x"]
    assert x.shape == (1, 9000)
    assert abs(x.mean().item() - 1.0) < 0.05
    assert abs(x.var().item() - 0.5) < 0.1


def test_rejection_restores_state_exactly():
    graph = normal_normal()
    graph.initialize()
    sampler = RandomWalkSampler(graph, "x", scale=1e3, adaptive=False)
    rejections = 0
    for _ in range(20):
        before = state(graph)
        if not sampler():
            rejections += 1
            assert_same_state(graph, before)
    assert rejections > 0
    assert sampler.num_proposed == 20
    assert sampler.acceptance_rate == (20 - rejections) / 20


def test_failed_evaluation_restores_state():
    def fragile(x):
        if float(x) > 5:
            raise RuntimeError("evaluation failed")
        return x

    graph = build_graph(
        [
            stochastic("x", "normal", loc=0.0, scale=1.0),
            NodeDeclaration("f", Deterministic(fragile, ["x"])),
            stochastic("y", "normal", loc="f", scale=1.0),
        ],
        data={"y": 0.0},
        inits={"x": 0.0},
    )
    graph.initialize()
    sampler = RandomWalkSampler(graph, "x", scale=1e3, adaptive=False)
    for _ in range(100):
        before = state(graph)
        try:
            sampler()
        except RuntimeError:
            break
    else:
        pytest.fail("no proposal failed")
    assert_same_state(graph, before)


def test_log_scale():
    graph = build_graph(
        [
            stochastic("s", "gamma", concentration=3.0, rate=2.0),
            stochastic("y", "normal", loc=0.0, scale="s"),
        ],
        data={"y": 0.7},
    )
    conf = MCMCConfiguration(graph, defaults=False)
    conf.add_sampler("s", "RW", log=True)
    samples = conf.build().run(niter=3000, burnin=500, verbose=VerboseLevel.OFF)
    assert bool((samples["s"] > 0).all())

    with pytest.raises(ConfigurationConflictError):
        RandomWalkSampler(normal_normal(), "x", log=True)


def test_requires_single_continuous_node():
    graph = build_graph([stochastic("n", "poisson", rate=3.0)])
    with pytest.raises(ConfigurationConflictError):
        RandomWalkSampler(graph, "n")
    graph = build_graph(
        [
            stochastic("a", "normal", loc=0.0, scale=1.0),
            stochastic("b", "normal", loc=0.0, scale=1.0),
        ]
    )
    with pytest.raises(ConfigurationConflictError):
        RandomWalkSampler(graph, ["a", "b"])
    with pytest.raises(ConfigurationConflictError):
        RandomWalkSampler(graph, "a", step=0.1)


def test_adaptation():
    assert adaptation_factor(0) == pytest.approx(3 ** -0.8)
    graph = normal_normal()
    graph.initialize()
    graph.lock_data()
    sampler = RandomWalkSampler(graph, "x", scale=100.0, adapt_interval=50)
    for _ in range(1000):
        sampler()
    assert sampler.times_adapted == 20
    assert sampler.scale < 100.0

    sampler.reset()
    assert sampler.scale == 100.0
    assert sampler.num_proposed == 0

    fixed = RandomWalkSampler(graph, "x", scale=100.0, adaptive=False)
    for _ in range(300):
        fixed()
    assert fixed.scale == 100.0
    assert "scale: 100.0" in repr(fixed)
