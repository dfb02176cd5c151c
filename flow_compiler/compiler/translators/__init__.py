"""
Node translators, registered per node category on import.
"""

from flow_compiler.compiler.translators import actions, branching, loops, messaging, subflow  # noqa: F401
from flow_compiler.compiler.translators.base import (
    LOOP_SENTINEL,
    NO_RESULT,
    continuation_call,
    follow,
    translate_node,
)

__all__ = [
    "LOOP_SENTINEL",
    "NO_RESULT",
    "continuation_call",
    "follow",
    "translate_node",
]
