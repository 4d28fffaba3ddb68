# Copyright (c) Meta Platforms, Inc. and affiliates.
#
# This source code is licensed under the MIT license found in the
# LICENSE file in the root directory of this source tree.

from __future__ import annotations

import dataclasses
from typing import Dict, List, Mapping, Optional, Sequence, Tuple, TYPE_CHECKING

import torch
from bayesgraph.function.utils import NodeVectorizer
from bayesgraph.model.evaluation import (
    Binding,
    evaluate_deterministic,
    stochastic_log_density,
)
from bayesgraph.model.families import Family
from bayesgraph.model.node import Deterministic, DTYPE

if TYPE_CHECKING:
    from bayesgraph.model.graph import Graph


@dataclasses.dataclass(frozen=True)
class _Step:
    name: str
    deterministic: Optional[Deterministic] = None
    family: Optional[Family] = None
    bindings: Optional[Mapping[str, Binding]] = None


def external_inputs(
    graph: Graph, order: Sequence[str], targets: Sequence[str]
) -> List[str]:
    """
    Nodes whose values evaluating ``order`` reads without computing them or
    taking them as targets: parents from outside the sequence and the values
    of its non-target stochastic nodes, in the order they are first read.
    """
    computed = set()
    read: Dict[str, None] = {}
    for name in order:
        node = graph.get_node(name)
        if node.is_constant:
            continue
        read.update((p, None) for p in node.parents if p not in computed)
        if node.is_deterministic:
            computed.add(name)
        elif name not in targets:
            read[name] = None
    return [n for n in read if n not in targets and n not in computed]


class GraphKernel:
    """
    A pure tensor function evaluating a fixed sequence of nodes, detached from
    the graph it was built from. ``evaluate`` takes the flattened values of the
    targets and of every other node it reads, and returns the flattened values
    of the deterministic nodes followed by the log densities of the stochastic
    nodes. It never branches on tensor values, so it can be traced.

    Args:
        graph: Graph to read definitions and shapes from.
        order: Nodes to evaluate, in topological order.
        targets: Nodes whose values are the first input.
    """

    def __init__(self, graph: Graph, order: Sequence[str], targets: Sequence[str]):
        steps: List[_Step] = []
        for name in order:
            node = graph.get_node(name)
            if node.is_deterministic:
                steps.append(_Step(name, deterministic=node.definition))
            elif node.is_stochastic:
                steps.append(
                    _Step(name, family=node.family, bindings=graph.bindings(name))
                )
        external = external_inputs(graph, order, targets)

        self.steps: Tuple[_Step, ...] = tuple(steps)
        self.targets = NodeVectorizer(
            targets, [graph.get_node(n).shape for n in targets]
        )
        self.external = NodeVectorizer(
            external, [graph.get_node(n).shape for n in external]
        )
        deterministic = [s.name for s in steps if s.deterministic is not None]
        self.outputs = NodeVectorizer(
            deterministic, [graph.get_node(n).shape for n in deterministic]
        )
        self.stochastic = tuple(s.name for s in steps if s.family is not None)

    def evaluate(
        self, target_vec: torch.Tensor, external_vec: torch.Tensor
    ) -> Tuple[torch.Tensor, torch.Tensor]:
        values = self.targets.to_dict(target_vec)
        values.update(self.external.to_dict(external_vec))
        outputs = []
        log_probs = []
        for step in self.steps:
            if step.deterministic is not None:
                parent_values = [values[p] for p in step.deterministic.parents]
                value = evaluate_deterministic(step.deterministic, parent_values)
                values[step.name] = value
                outputs.append(value.flatten())
            else:
                log_probs.append(
                    stochastic_log_density(
                        step.family, step.bindings, values[step.name], values
                    )
                )
        out = torch.cat(outputs) if outputs else torch.zeros(0, dtype=DTYPE)
        lp = torch.stack(log_probs) if log_probs else torch.zeros(0, dtype=DTYPE)
        return out, lp
