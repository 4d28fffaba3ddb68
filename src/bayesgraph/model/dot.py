# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

"""
Visualize the contents of a graph in the DOT graph language.
"""
import json
from typing import List, TYPE_CHECKING

import graphviz

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


_SHAPES = {"stochastic": "ellipse", "deterministic": "box", "constant": "plaintext"}


def _quote(s: str) -> str:
    return json.dumps(s)


def to_dot(
    graph: "Graph",
    node_shapes: bool = True,
    node_values: bool = False,
    label_edges: bool = True,
) -> str:
    """This dumps every node of the graph as a DOT graph description; nodes
    are enumerated in declaration order. Data nodes are filled."""
    names = graph.nodes
    max_length = len(str(max(len(names) - 1, 0)))

    def to_id(index: int) -> str:
        return "N" + str(index).zfill(max_length)

    ids = {name: to_id(i) for i, name in enumerate(names)}
    lines: List[str] = []
    for name in names:
        node = graph.get_node(name)
        label = name
        if node.family is not None:
            label += "\n~ " + node.family.name
        if node_values and node.numel == 1:
            label += f"\n= {float(node.value.reshape(())):g}"
        attrs = [f"label={_quote(label)}"]
        if node_shapes:
            attrs.append(f"shape={_SHAPES[node.kind.value]}")
        if node.is_data:
            attrs.append("style=filled")
        lines.append(f"  {ids[name]}[{' '.join(attrs)}];")

    for name in names:
        node = graph.get_node(name)
        edge_labels = {}
        if node.is_stochastic and label_edges:
            for param, bound in graph.bindings(name).items():
                if isinstance(bound, str):
                    edge_labels.setdefault(bound, []).append(param)
        for parent in node.parents:
            edge = f"  {ids[parent]} -> {ids[name]}"
            if parent in edge_labels:
                edge += f"[label={_quote(','.join(edge_labels[parent]))}]"
            lines.append(edge + ";")

    return "digraph \"graph\" {\n" + "\n".join(lines) + "\n}"


def to_graphviz(graph: "Graph", **kwargs) -> graphviz.Source:
    """Small wrapper to generate an actual graphviz object"""
    return graphviz.Source(to_dot(graph, **kwargs))
