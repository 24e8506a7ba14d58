from __future__ import annotations

import networkx as nx

from textflow.errors import WorkflowBuildError
from textflow.stage import Stage


class WorkflowGraph:
    """A linear chain of stages held as a NetworkX directed graph.

    Nodes are stage ids with the stage object stored under ``stage``; each
    edge carries the message type passed along it. Message types are checked
    once here, so the runner never inspects types per message.
    """

    def __init__(self, g: nx.DiGraph) -> None:
        self.g = g
        self._order: list[str] = list(nx.topological_sort(g))

    @classmethod
    def build(cls, *stages: Stage) -> WorkflowGraph:
        """Chain ``stages`` in the given order.

        Raises:
            WorkflowBuildError: no stages, a repeated stage id, or a stage whose
                output type the next stage does not accept.
        """
        if not stages:
            raise WorkflowBuildError("A workflow needs at least one stage")

        g = nx.DiGraph()
        for stage in stages:
            if g.has_node(stage.id):
                raise WorkflowBuildError(
                    f"Duplicate stage id '{stage.id}'", {"stage_id": stage.id}
                )
            g.add_node(stage.id, stage=stage)

        for upstream, downstream in zip(stages, stages[1:]):
            if not issubclass(upstream.output_type, downstream.input_type):
                raise WorkflowBuildError(
                    f"Stage '{downstream.id}' does not accept the output of '{upstream.id}'",
                    {
                        "produces": upstream.output_type.__name__,
                        "accepts": downstream.input_type.__name__,
                    },
                )
            g.add_edge(upstream.id, downstream.id, message_type=upstream.output_type)

        return cls(g)

    @property
    def stages(self) -> list[Stage]:
        return [self.g.nodes[stage_id]["stage"] for stage_id in self._order]

    @property
    def initial(self) -> Stage:
        return self.g.nodes[self._order[0]]["stage"]

    @property
    def terminal(self) -> Stage:
        return self.g.nodes[self._order[-1]]["stage"]

    def __len__(self) -> int:
        return len(self._order)

    def describe(self) -> str:
        """One-line rendering of the chain, e.g. ``detect -> transform``."""
        return " -> ".join(self._order)
