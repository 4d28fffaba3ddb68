# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import pytest
import torch
from bayesgraph.model import build_graph, init_from_prior, init_to_uniform, stochastic


@pytest.mark.parametrize("init_fn", [init_from_prior, init_to_uniform])
@pytest.mark.parametrize(
    "family, dims, params",
    [
        ("uniform", None, {"low": 0.0, "high": 1.0}),
        ("normal", [3], {"loc": 0.0, "scale": 1.0}),
        ("bernoulli", None, {"probs": 0.5}),
        ("exponential", None, {"rate": 1.0}),
        ("gamma", None, {"concentration": 2.0, "rate": 3.0}),
        ("categorical", None, {"probs": torch.tensor([0.2, 0.3, 0.5])}),
        ("bernoulli", [3, 5], {"probs": 0.5}),
        ("poisson", None, {"rate": 2.0}),
    ],
)
def test_initialize_validness(init_fn, family, dims, params):
    graph = build_graph([stochastic("x", family, dims=dims, **params)])
    value = init_fn(graph, "x")
    distribution = graph.distribution("x")
    # make sure values are initialized within the constraint
    assert torch.all(distribution.support.check(value))
    assert not torch.any(torch.isnan(distribution.log_prob(value)))
    assert value.shape == graph.get_node("x").shape
    assert value.dtype == torch.float64


def test_init_to_uniform_range():
    graph = build_graph(
        [
            stochastic("x", "normal", dims=[100], loc=50.0, scale=1.0),
            stochastic("s", "exponential", dims=[100], rate=1.0),
        ]
    )
    graph.initialize(initialize_fn=init_to_uniform)
    # unconstrained values are drawn from Uniform(-2, 2), whatever the prior
    assert bool(((graph["x"] > -2) & (graph["x"] < 2)).all())
    log_s = graph["s"].log()
    assert bool(((log_s > -2) & (log_s < 2)).all())
