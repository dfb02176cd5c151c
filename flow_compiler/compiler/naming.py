"""
Deterministic names for node variables, routines and steps.

Names depend only on document order and a per-compile counter, so compiling
the same flow twice yields byte-identical programs.
"""

from __future__ import annotations

import itertools
import re
from typing import Dict, Iterable, Optional

from flow_compiler.schema.models import NodeBase, NodeType

TOKEN_START = 1000

VARIABLE_PREFIXES: Dict[str, str] = {
    NodeType.text_message.value: "txt",
    NodeType.template_message.value: "tpl",
    NodeType.button_message.value: "btn",
    NodeType.list_message.value: "lst",
    NodeType.media_message.value: "media",
    NodeType.catalog_message.value: "ctlg",
    NodeType.save_data.value: "sd",
    NodeType.save_variable.value: "var",
    NodeType.start_loop.value: "loop",
    NodeType.api.value: "api",
    NodeType.webhook.value: "wbh",
    NodeType.utils_function.value: "utl",
    NodeType.subflow.value: "subf",
    NodeType.internal_alert.value: "alert",
}

ROUTINE_PREFIXES: Dict[str, str] = {
    NodeType.text_message.value: "wTSW",
    NodeType.template_message.value: "tmn",
    NodeType.button_message.value: "bmn",
    NodeType.list_message.value: "lsmn",
    NodeType.media_message.value: "mmn",
    NodeType.catalog_message.value: "ctlgmn",
    NodeType.delay.value: "dly",
    NodeType.condition_split.value: "csn",
    NodeType.condition_branch.value: "cbn",
    NodeType.save_data.value: "sd",
    NodeType.save_variable.value: "sv",
    NodeType.start_loop.value: "lpC",
    NodeType.end_loop.value: "lpC",
    NodeType.api.value: "api",
    NodeType.webhook.value: "wbhn",
    NodeType.utils_function.value: "utl",
    NodeType.subflow.value: "subf",
    NodeType.internal_alert.value: "ian",
}
DEFAULT_ROUTINE_PREFIX = "fn"

_NON_IDENTIFIER = re.compile(r"[^0-9A-Za-z_]+")


def sanitize(text: str) -> str:
    """Lowercase identifier fragment built from free text."""

    cleaned = _NON_IDENTIFIER.sub("_", text.strip()).strip("_").lower()
    return re.sub(r"_+", "_", cleaned)


def routine_prefix(node_type: str) -> str:
    return ROUTINE_PREFIXES.get(node_type, DEFAULT_ROUTINE_PREFIX)


class Namer:
    """Per-compile source of routine tokens and node variable names."""

    def __init__(self, nodes: Iterable[NodeBase] = ()) -> None:
        self._tokens = itertools.count(TOKEN_START)
        self._variables: Dict[str, str] = {}
        used: set[str] = set()
        for node in nodes:
            prefix = VARIABLE_PREFIXES.get(node.type)
            if prefix is None:
                continue
            base = f"{prefix}_{sanitize(node.title) or 'node'}"
            name, count = base, 1
            while name in used:
                count += 1
                name = f"{base}_{count}"
            used.add(name)
            self._variables[node.id] = name

    def next_token(self) -> str:
        return str(next(self._tokens))

    def variable(self, node: NodeBase) -> Optional[str]:
        return self._variables.get(node.id)

    def routine(self, node_type: str, port: str) -> str:
        port_part = _NON_IDENTIFIER.sub("_", port).strip("_") or "next"
        return f"{routine_prefix(node_type)}_{port_part}_{self.next_token()}"

    def step(self, base: str) -> str:
        return f"{base}_{self.next_token()}"
