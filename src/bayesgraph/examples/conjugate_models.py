# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""Small reference models with known posteriors."""

from typing import Optional, Sequence

import torch
from bayesgraph.config import Options
from bayesgraph.model.graph import Graph
from bayesgraph.model.model_spec import build_graph, NodeDeclaration, stochastic
from bayesgraph.model.node import Deterministic, NodeKind, Stochastic


def normal_normal(y: float = 2.0, options: Optional[Options] = None) -> Graph:
    """
    x ~ N(0, 1), y ~ N(x, 1) with y observed. The posterior of x is
    N(y / 2, 1 / 2).
    """
    graph = Graph(options)
    graph.declare_node(
        "x", NodeKind.STOCHASTIC, definition=Stochastic("normal", loc=0.0, scale=1.0)
    )
    graph.declare_node(
        "y", NodeKind.STOCHASTIC, definition=Stochastic("normal", loc="x", scale=1.0)
    )
    graph.mark_as_data("y", {"y": y})
    return graph


def beta_binomial(
    successes: int = 7, trials: int = 10, options: Optional[Options] = None
) -> Graph:
    """
    p ~ Beta(1, 1), k ~ Binomial(n, p) with k observed. The posterior of p is
    Beta(1 + k, 1 + n - k).
    """
    return build_graph(
        [
            stochastic("p", "beta", concentration1=1.0, concentration0=1.0),
            stochastic("k", "binomial", total_count="n", probs="p"),
        ],
        constants={"n": float(trials)},
        data={"k": float(successes)},
        options=options,
    )


def linear_regression(
    x: Sequence[float],
    y: Sequence[float],
    options: Optional[Options] = None,
) -> Graph:
    """
    Bayesian linear regression with known noise:
    beta ~ N(0, 10) elementwise, y ~ N(beta[0] + beta[1] * x, 1).
    """
    x_t = torch.as_tensor(x, dtype=torch.float64)
    return build_graph(
        [
            stochastic("beta", "normal", loc=torch.zeros(2), scale=10.0),
            NodeDeclaration(
                "mu", Deterministic(lambda b, x: b[0] + b[1] * x, ["beta", "x"])
            ),
            stochastic("y", "normal", loc="mu", scale=1.0),
        ],
        constants={"x": x_t},
        data={"y": torch.as_tensor(y, dtype=torch.float64)},
        options=options,
    )


def mixture(
    data: Sequence[float], options: Optional[Options] = None
) -> Graph:
    """
    Two-component Gaussian mixture with one Bernoulli indicator per
    observation: z[i] ~ Bernoulli(0.5), y[i] ~ N(mu[z[i]], 1).
    """
    n = len(data)
    declarations = [
        stochastic("mu", "normal", loc=torch.tensor([-2.0, 2.0]), scale=3.0)
    ]
    for i in range(1, n + 1):
        declarations.append(stochastic(f"z[{i}]", "bernoulli", probs=0.5))
        declarations.append(
            NodeDeclaration(
                f"m[{i}]",
                Deterministic(
                    lambda mu, z: mu[0] + (mu[1] - mu[0]) * z, ["mu", f"z[{i}]"]
                ),
            )
        )
        declarations.append(stochastic(f"y[{i}]", "normal", loc=f"m[{i}]", scale=1.0))
    return build_graph(
        declarations,
        data={f"y[{i + 1}]": float(v) for i, v in enumerate(data)},
        options=options,
    )
