"""
Stage 1: parse JSON into a strongly typed FlowDefinition.
"""

from __future__ import annotations

import json
from typing import Any, Mapping

from pydantic import ValidationError

from flow_compiler.errors import ValidationPhaseError
from flow_compiler.schema.models import FlowDefinition


def parse_flow_definition(payload: Any) -> FlowDefinition:
    """
    Accepts a JSON string, a mapping in either the designer or the stored
    record shape, or an already parsed FlowDefinition.
    """

    if isinstance(payload, FlowDefinition):
        return payload
    if isinstance(payload, (str, bytes)):
        try:
            data = json.loads(payload)
        except json.JSONDecodeError as exc:
            raise ValidationPhaseError(f"Invalid flow JSON payload: {exc}") from exc
    elif isinstance(payload, Mapping):
        data = payload
    else:
        raise ValidationPhaseError(
            f"Unsupported payload type {type(payload).__name__}; expected str or Mapping"
        )

    try:
        return FlowDefinition.model_validate(data)
    except ValidationError as exc:
        raise ValidationPhaseError(_describe(exc, data)) from exc


def _describe(exc: ValidationError, data: Any) -> str:
    """Name the offending node id for errors raised under ``nodes``."""

    nodes = data.get("nodes") if isinstance(data, Mapping) else None
    if nodes is None and isinstance(data, Mapping) and isinstance(data.get("fe_flow"), Mapping):
        nodes = data["fe_flow"].get("nodes")

    messages = []
    for error in exc.errors():
        loc = error.get("loc", ())
        prefix = ".".join(str(part) for part in loc)
        if len(loc) >= 2 and loc[0] == "nodes" and isinstance(loc[1], int) and isinstance(nodes, list):
            try:
                node_id = nodes[loc[1]].get("id")
            except (IndexError, AttributeError):
                node_id = None
            if node_id:
                prefix = f"node '{node_id}' ({prefix})"
        messages.append(f"{prefix}: {error.get('msg')}" if prefix else str(error.get("msg")))
    return "Flow definition validation failed: " + "; ".join(messages)
