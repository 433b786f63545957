"""trendpilot.core.spec

Static graph table: nodes, fixed edges and conditional routers.

A node is a plain function `(state, ctx) -> partial update`. After a node
runs, the engine picks the next node from `routers[node](state)` when a router
is registered, else from `edges[node]`.

Routers may return:
- a node id
- `END` to finish the graph
- `SUSPEND` to stop and keep the current node pending (it is re-entered on resume)
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional

END = "__end__"
SUSPEND = "__suspend__"

NodeFn = Callable[[Dict[str, Any], Any], Optional[Dict[str, Any]]]
RouterFn = Callable[[Dict[str, Any]], str]


@dataclass(frozen=True)
class GraphSpec:
    graph_id: str
    entry_node: str
    nodes: Dict[str, NodeFn]
    edges: Dict[str, str] = field(default_factory=dict)
    routers: Dict[str, RouterFn] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if self.entry_node not in self.nodes:
            raise ValueError(f"Entry node '{self.entry_node}' is not a node of graph '{self.graph_id}'")
        for src, dst in self.edges.items():
            if src not in self.nodes:
                raise ValueError(f"Edge from unknown node '{src}'")
            if dst != END and dst not in self.nodes:
                raise ValueError(f"Edge '{src}' -> '{dst}' targets an unknown node")
        for src in self.routers:
            if src not in self.nodes:
                raise ValueError(f"Router on unknown node '{src}'")
            if src in self.edges:
                raise ValueError(f"Node '{src}' has both a fixed edge and a router")

    def get_node(self, node_id: str) -> NodeFn:
        if node_id not in self.nodes:
            raise KeyError(f"Unknown node_id '{node_id}' in graph '{self.graph_id}'")
        return self.nodes[node_id]

    def next_node(self, node_id: str, state: Dict[str, Any]) -> str:
        """Resolve the successor of *node_id* (a node id, END or SUSPEND)."""
        router = self.routers.get(node_id)
        if router is not None:
            target = router(state)
            if target not in (END, SUSPEND) and target not in self.nodes:
                raise ValueError(f"Router of '{node_id}' returned unknown node '{target}'")
            return target
        return self.edges.get(node_id, END)
