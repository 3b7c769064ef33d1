"""Point-in-time graph snapshots of the notation model."""
from __future__ import annotations

from typing import Any

import networkx as nx

from notationlab.notation.model import (
    BASE_FEATURES,
    CHILDREN,
    NotationElement,
    append_child,
    make_element,
    value_from_payload,
    value_to_payload,
)

_REF = "$ref"


def build_snapshot(root: NotationElement) -> nx.DiGraph:
    """Return a frozen :class:`networkx.DiGraph` describing ``root``'s subtree.

    Nodes carry plain data only (``kind``, ``capabilities`` and ``features``);
    element-valued features are stored as ``{"$ref": <id>}`` and expressed as
    an edge.  Edges are labelled with the containing ``feature`` and the
    ``index`` among the parent's children.
    """

    graph = nx.DiGraph(root=root.id)

    def visit(element: NotationElement, parent_id: str | None, feature: str | None, index: int) -> None:
        features: dict[str, Any] = {}
        nested: list[tuple[str, NotationElement]] = []
        for key, value in sorted(element.features.items()):
            if isinstance(value, NotationElement):
                features[key] = {_REF: value.id}
                nested.append((key, value))
            else:
                features[key] = value_to_payload(value)
        graph.add_node(
            element.id,
            kind=element.kind,
            capabilities=sorted(element.capabilities),
            features=features,
        )
        if parent_id is not None:
            graph.add_edge(parent_id, element.id, feature=feature, index=index)
        for key, value in nested:
            visit(value, element.id, key, 0)
        for position, child in enumerate(element.children):
            visit(child, element.id, CHILDREN, position)

    visit(root, None, None, 0)
    return nx.freeze(graph)


def restore_root(graph: nx.DiGraph) -> NotationElement:
    """Rebuild a detached element tree from a snapshot graph.

    Raises :class:`ValueError` when the graph is not a single containment
    tree.
    """

    if graph.number_of_nodes() == 0:
        raise ValueError("Snapshot graph is empty")
    if not nx.is_arborescence(graph):
        raise ValueError("Snapshot graph is not a containment tree")
    root_id = graph.graph.get("root")
    if root_id is None:
        root_id = next(node for node, degree in graph.in_degree() if degree == 0)
    if root_id not in graph or graph.in_degree(root_id) != 0:
        raise ValueError(f"Snapshot root '{root_id}' is not the tree root")

    def build(node_id: str) -> NotationElement:
        data = graph.nodes[node_id]
        features = {
            key: value_from_payload(value)
            for key, value in dict(data.get("features", {})).items()
            if not (isinstance(value, dict) and _REF in value)
        }
        element = make_element(
            data["kind"],
            element_id=node_id,
            capabilities=frozenset(data.get("capabilities", ())) - BASE_FEATURES,
            features=features,
        )
        edges = sorted(graph.out_edges(node_id, data=True), key=lambda edge: edge[2].get("index", 0))
        for _, child_id, edge in edges:
            child = build(child_id)
            feature = edge.get("feature", CHILDREN)
            if feature == CHILDREN:
                append_child(element, child)
            else:
                if not element.supports(feature):
                    raise ValueError(f"Element '{node_id}' has no feature '{feature}'")
                child._set_container((element.id, feature))
                element.features[feature] = child
        return element

    return build(root_id)


__all__ = ["build_snapshot", "restore_root"]
