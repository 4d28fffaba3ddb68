# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

import pytest
import torch
from bayesgraph.config import Options
from bayesgraph.exceptions import (
    ArityError,
    FrozenSetupError,
    StaleFunctionError,
    TopologyLockedError,
    UninitializedReferenceError,
)
from bayesgraph.function import TwoStageFunction
from bayesgraph.model import Graph, NodeKind, Stochastic


class SumOfValues(TwoStageFunction):
    def setup(self, graph, targets):
        self.targets = list(graph.expand_node_names(targets))
        self.freeze_length("values", sum(graph.get_node(t).numel for t in self.targets))
        self.calls = 0

    def run(self, values=None):
        self.calls += 1
        if values is not None:
            self.graph.set_values(dict(zip(self.targets, values)))
        return sum(self.read(self.targets).values())


class DeclaresNode(TwoStageFunction):
    def setup(self, graph):
        pass

    def run(self):
        self.graph.declare_node("late", NodeKind.CONSTANT, value=1.0)


def make_graph(options=None):
    graph = Graph(options)
    for name in ["a", "b"]:
        graph.declare_node(
            name,
            NodeKind.STOCHASTIC,
            definition=Stochastic("normal", loc=0.0, scale=1.0),
        )
    return graph


def test_setup_then_run():
    graph = make_graph()
    graph.set_values({"a": 1.0, "b": 2.0})
    f = SumOfValues(graph, ["a", "b"])
    assert f.targets == ("a", "b")
    assert f().item() == 3.0
    assert f(torch.tensor([0.5, 0.25])).item() == 0.75
    assert f.calls == 2


def test_frozen_setup():
    f = SumOfValues(make_graph(), ["a", "b"])
    with pytest.raises(FrozenSetupError):
        f.targets = ["a"]
    # other attributes stay mutable
    f.calls = 10


def test_arity():
    graph = make_graph()
    graph.set_values({"a": 1.0, "b": 2.0})
    f = SumOfValues(graph, ["a", "b"])
    with pytest.raises(ArityError) as excinfo:
        f(torch.zeros(3))
    assert excinfo.value.expected == 2
    assert excinfo.value.actual == 3
    with pytest.raises(ArityError):
        f(values=[1.0])


def test_stale_after_topology_change():
    graph = make_graph()
    graph.set_values({"a": 1.0, "b": 2.0})
    f = SumOfValues(graph, ["a"])
    graph.declare_node("c", NodeKind.CONSTANT, value=1.0)
    assert f.is_stale
    with pytest.raises(StaleFunctionError):
        f()

    graph = make_graph(Options(check_topology=False))
    graph.set_values({"a": 1.0, "b": 2.0})
    f = SumOfValues(graph, ["a"])
    graph.declare_node("c", NodeKind.CONSTANT, value=1.0)
    assert f().item() == 1.0


def test_no_topology_changes_while_running():
    graph = make_graph()
    f = DeclaresNode(graph)
    with pytest.raises(TopologyLockedError):
        f()
    assert "late" not in graph
    # the lock is released afterwards
    graph.declare_node("late", NodeKind.CONSTANT, value=1.0)


def test_uninitialized_reference():
    graph = make_graph()
    graph.set_value("a", 1.0)
    f = SumOfValues(graph, ["a", "b"])
    with pytest.raises(UninitializedReferenceError) as excinfo:
        f()
    assert excinfo.value.nodes == ("b",)
