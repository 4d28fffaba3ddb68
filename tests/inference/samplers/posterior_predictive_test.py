# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import pytest
import torch
from bayesgraph import MCMCConfiguration, Options, VerboseLevel
from bayesgraph.examples.conjugate_models import normal_normal
from bayesgraph.exceptions import ConfigurationConflictError
from bayesgraph.inference.samplers import (
    has_data_downstream,
    PosteriorPredictiveSampler,
)
from bayesgraph.model import build_graph, stochastic


def prior_graph(options=None):
    return build_graph(
        [
            stochastic("x", "normal", loc=0.0, scale=1.0),
            stochastic("y", "normal", loc="x", scale=1.0),
        ],
        options=options,
    )


def test_default_for_nodes_without_data():
    graph = prior_graph()
    conf = MCMCConfiguration(graph)
    assert [s.kind for s in conf.get_samplers()] == [
        "posterior_predictive",
        "posterior_predictive",
    ]
    samples = conf.build().run(niter=4000, verbose=VerboseLevel.OFF)
    assert abs(samples["y"].var().item() - 2.0) < 0.2
    assert abs(samples["x"].mean().item()) < 0.1

    conf = MCMCConfiguration(prior_graph(Options(use_posterior_predictive=False)))
    assert [s.kind for s in conf.get_samplers()] == ["conjugate_normal", "RW"]


def test_requires_no_data_downstream():
    graph = normal_normal()
    assert has_data_downstream(graph, "x")
    with pytest.raises(ConfigurationConflictError):
        PosteriorPredictiveSampler(graph, "x")


def test_draw_updates_log_density():
    graph = prior_graph()
    graph.initialize()
    sampler = PosteriorPredictiveSampler(graph, ["x", "y"])
    old = graph["y"]
    sampler()
    assert not torch.equal(graph["y"], old)
    assert torch.allclose(graph.get_log_prob(), graph.calculate())


def test_dependents_redrawn_in_any_order():
    graph = build_graph(
        [
            stochastic("x", "normal", loc=0.0, scale=1.0),
            stochastic("z", "normal", loc="x", scale=0.1),
        ]
    )
    conf = MCMCConfiguration(graph)
    [x_sampler] = conf.get_samplers("x")
    assert set(x_sampler.calc_nodes) == {"x", "z"}
    # the sampler of z runs before the one of x
    conf.set_execution_order([1, 0])
    samples = conf.build().run(niter=3000, verbose=VerboseLevel.OFF)
    x = samples["x"].flatten()
    z = samples["z"].flatten()
    corr = torch.corrcoef(torch.stack([x, z]))[0, 1]
    assert corr.item() > 0.9
    assert abs((z - x).std().item() - 0.1) < 0.02
