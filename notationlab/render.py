"""Client-facing render snapshots of the notation model."""
from __future__ import annotations

from typing import Any, Callable

import networkx as nx

from notationlab.notation.model import CHILDREN, NotationElement, Position, Size, value_to_payload

RenderSnapshotFactory = Callable[[NotationElement], nx.DiGraph]


def _bounds(element: NotationElement) -> dict[str, float] | None:
    if not element.is_shape:
        return None
    position = element.features.get("position")
    size = element.features.get("size")
    bounds = {"x": 0.0, "y": 0.0, "width": 0.0, "height": 0.0}
    if isinstance(position, Position):
        bounds.update(x=position.x, y=position.y)
    if isinstance(size, Size):
        bounds.update(width=size.width, height=size.height)
    return bounds


def create_render_snapshot(root: NotationElement) -> nx.DiGraph:
    """Return a frozen graph the client can display.

    Every element becomes a node with its ``type``, ``label`` and, for
    shapes, its ``bounds``.  Edges point from a parent to its
    children (``order`` keeps the child order) and to elements held in
    single-valued features.  The function only reads ``root``.
    """

    graph = nx.DiGraph(root=root.id)

    def visit(element: NotationElement) -> None:
        attributes: dict[str, Any] = {"type": element.kind, "label": element.features.get("name")}
        bounds = _bounds(element)
        if bounds is not None:
            attributes["bounds"] = bounds
        semantic = element.features.get("semantic_element")
        if isinstance(semantic, NotationElement):
            attributes["semantic_element"] = semantic.id
        elif semantic is not None:
            attributes["semantic_element"] = value_to_payload(semantic)
        graph.add_node(element.id, **attributes)
        for key, value in sorted(element.features.items()):
            if isinstance(value, NotationElement):
                visit(value)
                graph.add_edge(element.id, value.id, feature=key, order=0)
        for order, child in enumerate(element.children):
            visit(child)
            graph.add_edge(element.id, child.id, feature=CHILDREN, order=order)

    visit(root)
    return nx.freeze(graph)


__all__ = ["RenderSnapshotFactory", "create_render_snapshot"]
