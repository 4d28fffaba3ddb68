# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import graphviz
from bayesgraph.examples.conjugate_models import normal_normal


def test_to_dot():
    graph = normal_normal(y=2.0)
    observed = graph.to_dot()
    expected = """
digraph "graph" {
  N0[label="x\\n~ normal" shape=ellipse];
  N1[label="y\\n~ normal" shape=ellipse style=filled];
  N0 -> N1[label="loc"];
}
""".strip()
    assert observed == expected


def test_to_dot_values_without_shapes():
    graph = normal_normal(y=2.0)
    graph.set_value("x", 0.5)
    observed = graph.to_dot(node_shapes=False, node_values=True, label_edges=False)
    expected = """
digraph "graph" {
  N0[label="x\\n~ normal\\n= 0.5"];
  N1[label="y\\n~ normal\\n= 2" style=filled];
  N0 -> N1;
}
""".strip()
    assert observed == expected


def test_to_graphviz():
    source = normal_normal().to_graphviz()
    assert isinstance(source, graphviz.Source)
    assert "N0 -> N1" in source.source
