# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import math

import pytest
import torch
from bayesgraph import MCMCConfiguration, VerboseLevel
from bayesgraph.examples.conjugate_models import mixture, normal_normal
from bayesgraph.exceptions import ConfigurationConflictError
from bayesgraph.inference.samplers import BinaryGibbsSampler, CategoricalGibbsSampler
from bayesgraph.model import build_graph, Deterministic, NodeDeclaration, stochastic


def indicator_graph():
    return build_graph(
        [
            stochastic("z", "bernoulli", probs=0.3),
            NodeDeclaration("m", Deterministic(lambda z: 3.0 * z, ["z"])),
            stochastic("y", "normal", loc="m", scale=1.0),
        ],
        data={"y": 3.0},
    )


def test_binary_full_conditional():
    graph = indicator_graph()
    conf = MCMCConfiguration(graph)
    assert [s.kind for s in conf.get_samplers()] == ["binary"]
    samples = conf.build().run(niter=4000, verbose=VerboseLevel.OFF)
    expected = 0.3 / (0.3 + 0.7 * math.exp(-4.5))
    assert abs(samples["z"].mean().item() - expected) < 0.02


def test_binary_keeps_cache_consistent():
    graph = indicator_graph()
    graph.initialize()
    sampler = BinaryGibbsSampler(graph, "z")
    for _ in range(20):
        sampler()
        assert graph["m"] == 3.0 * graph["z"]
        cached = graph.get_log_prob()
        assert torch.allclose(cached, graph.calculate())


def test_mixture_indicators():
    graph = mixture([-2.1, -1.9, 2.0, 2.2])
    conf = MCMCConfiguration(graph)
    kinds = {s.targets: s.kind for s in conf.get_samplers()}
    assert kinds[("mu",)] == "RW_block"
    assert kinds[("z[1]",)] == "binary"
    samples = conf.build().run(
        niter=2000,
        burnin=500,
        inits={"mu": torch.tensor([-2.0, 2.0])},
        verbose=VerboseLevel.OFF,
    )
    z = torch.stack([samples[f"z[{i}]"] for i in range(1, 5)], dim=-1)
    frequencies = z[0].mean(dim=0)
    assert frequencies[0] < 0.1 and frequencies[1] < 0.1
    assert frequencies[2] > 0.9 and frequencies[3] > 0.9


def test_categorical_prior():
    probs = torch.tensor([0.2, 0.3, 0.5])
    graph = build_graph([stochastic("c", "categorical", probs=probs)])
    conf = MCMCConfiguration(graph, defaults=False)
    sampler = conf.add_sampler("c", "categorical")
    assert sampler.support.tolist() == [0.0, 1.0, 2.0]
    samples = conf.build().run(niter=4000, verbose=VerboseLevel.OFF)
    c = samples["c"][0]
    frequencies = torch.stack([(c == k).double().mean() for k in range(3)])
    assert torch.allclose(frequencies, probs.double(), atol=0.03)


def test_categorical_posterior():
    graph = build_graph(
        [
            stochastic("c", "categorical", probs=torch.tensor([0.5, 0.5])),
            NodeDeclaration("m", Deterministic(lambda c: 4.0 * c, ["c"])),
            stochastic("y", "normal", loc="m", scale=1.0),
        ],
        data={"y": 4.0},
    )
    conf = MCMCConfiguration(graph)
    assert [s.kind for s in conf.get_samplers()] == ["categorical"]
    samples = conf.build().run(niter=2000, verbose=VerboseLevel.OFF)
    expected = 1.0 / (1.0 + math.exp(-8.0))
    assert abs(samples["c"].mean().item() - expected) < 0.01


def test_wrong_family():
    with pytest.raises(ConfigurationConflictError):
        BinaryGibbsSampler(normal_normal(), "x")
    with pytest.raises(ConfigurationConflictError):
        CategoricalGibbsSampler(normal_normal(), "x")
    graph = build_graph([stochastic("n", "binomial", total_count=5.0, probs=0.5)])
    with pytest.raises(ConfigurationConflictError):
        BinaryGibbsSampler(graph, "n")
