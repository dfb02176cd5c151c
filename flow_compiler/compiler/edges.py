"""
Port-aware lookup of outgoing edges.
"""

from __future__ import annotations

from typing import List, Optional

from flow_compiler.schema.models import Edge, FlowDefinition

NEXT_STEP = "next-step"
YES = "yes"
NO = "no"
NO_RESPONSE = "no-response"
TIMEOUT = "timeout"


def branch_port(label: str) -> str:
    """Port name of a labelled branch: whitespace runs become ``_``, uppercased."""

    return "_".join(label.split()).upper()


def find_edge(flow: FlowDefinition, node_id: str, port: str) -> Optional[Edge]:
    """
    Return the first edge leaving ``node_id`` through ``port``.

    Handles are either the bare port or contain ``{port}-{node_id}``; an edge without
    a handle belongs to the next-step port.
    """

    keyed = f"{port}-{node_id}"
    for edge in flow.edges:
        if edge.source != node_id:
            continue
        handle = edge.source_handle
        if handle is None:
            if port == NEXT_STEP:
                return edge
            continue
        if handle == port or keyed in handle:
            return edge
    return None


def find_first_edge(flow: FlowDefinition, node_id: str) -> Optional[Edge]:
    for edge in flow.edges:
        if edge.source == node_id:
            return edge
    return None


def outgoing_edges(flow: FlowDefinition, node_id: str) -> List[Edge]:
    return [edge for edge in flow.edges if edge.source == node_id]
