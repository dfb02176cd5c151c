"""
Loop unroller.

The body between a start-loop node and its end marker becomes one routine,
``lpC_body_{token}``, and the host step hands it to the engine's
``loop.iterate`` primitive. The compiler itself never iterates.
"""

from __future__ import annotations

from typing import Any, List, Optional

from flow_compiler.compiler.context import Compilation, TranslationContext
from flow_compiler.compiler.edges import find_first_edge
from flow_compiler.compiler.translators.base import (
    LOOP_SENTINEL,
    dead_end,
    translate_node,
    translator,
)
from flow_compiler.errors import LoweringError
from flow_compiler.expr.templates import to_engine_expression, transform_value
from flow_compiler.registry.primitive_registry import LOOP_ITERATE
from flow_compiler.schema.models import (
    ConditionBranchNode,
    ConditionSplitNode,
    EndLoopNode,
    NodeBase,
    NodeType,
    StartLoopNode,
)
from flow_compiler.schema.program import BlockStep, CallStep, ReturnStep, Routine, Step
from shared.logger import get_logger

logger = get_logger(__name__)

LOOP_ITEM = "loop_item"
LOOP_INDEX = "loop_index"


def _next_node(compilation: Compilation, node: NodeBase) -> Optional[NodeBase]:
    edge = find_first_edge(compilation.flow, node.id)
    return compilation.flow.node(edge.target) if edge else None


def find_loop_end(compilation: Compilation, start: StartLoopNode) -> Optional[EndLoopNode]:
    """
    Walk the chain after ``start`` to its end marker.

    Raises ``LoweringError`` on a nested loop, a branching node or a chain
    that cycles.
    """

    seen = {start.id}
    current = _next_node(compilation, start)
    while current is not None and not isinstance(current, EndLoopNode):
        if isinstance(current, StartLoopNode):
            raise LoweringError(f"Nested loop '{current.id}' inside loop '{start.id}' is not supported")
        if isinstance(current, (ConditionSplitNode, ConditionBranchNode)):
            raise LoweringError(f"Branching node '{current.id}' inside loop '{start.id}' is not supported")
        if current.id in seen:
            raise LoweringError(f"Loop '{start.id}' body never reaches its end marker")
        seen.add(current.id)
        current = _next_node(compilation, current)
    return current


def _returns(steps: List[Step]) -> bool:
    if not steps:
        return False
    last = steps[-1]
    if isinstance(last, BlockStep):
        return _returns(last.steps)
    return isinstance(last, ReturnStep)


def loop_value(raw: Any) -> Any:
    """Numbers become counts, placeholders become expressions, lists stay lists."""

    if isinstance(raw, bool):
        raise LoweringError("Loop list must be a number, list or placeholder")
    if isinstance(raw, (int, float)):
        return int(raw)
    if isinstance(raw, list):
        return transform_value(raw)
    text = raw.strip()
    if text.isdigit():
        return int(text)
    return to_engine_expression(text)


@translator(NodeType.start_loop)
def translate_start_loop(compilation: Compilation, node: StartLoopNode, tctx: TranslationContext) -> List[Step]:
    if tctx.inside_loop:
        raise LoweringError(f"Nested loop '{node.id}' is not supported")

    end = find_loop_end(compilation, node)
    if end is None:
        logger.warning("Loop %s has no end marker; body runs to its dead end", node.id)

    namer = compilation.namer
    var = namer.variable(node)
    routine = f"lpC_body_{namer.next_token()}"

    snapshot = tctx.args.fork()
    params = snapshot.params(LOOP_ITEM, LOOP_INDEX)
    call_args = snapshot.call_args()
    snapshot.register(LOOP_ITEM)
    snapshot.register(LOOP_INDEX)
    body_ctx = tctx.in_loop(snapshot)

    first = _next_node(compilation, node)
    if first is None:
        body = dead_end(compilation, body_ctx)
    elif isinstance(first, EndLoopNode):
        body = [ReturnStep(name=namer.step("loop_return"), value=LOOP_SENTINEL)]
    else:
        body = translate_node(compilation, first, body_ctx)
    # Prompts end on their dispatch switch; each iteration still yields the sentinel.
    if not _returns(body):
        body.append(ReturnStep(name=namer.step("loop_return"), value=LOOP_SENTINEL))
    compilation.builder.add_routine(routine, Routine(params=params, steps=body))

    host = CallStep(
        name=var,
        call=LOOP_ITERATE,
        args={
            "routine": routine,
            "loopValue": loop_value(node.data.loop_list),
            "loopLimit": node.data.limit or compilation.config.default_loop_limit,
            "args": call_args,
        },
        result=var,
    )
    tctx.args.register(var)

    steps: List[Step] = [host]
    if end is not None:
        after = _next_node(compilation, end)
        if after is not None:
            steps.extend(translate_node(compilation, after, tctx))
    return steps


@translator(NodeType.end_loop)
def translate_end_loop(compilation: Compilation, node: EndLoopNode, tctx: TranslationContext) -> List[Step]:
    if tctx.inside_loop:
        return [ReturnStep(name=compilation.namer.step("loop_return"), value=LOOP_SENTINEL)]
    # A marker reached outside its loop just passes control on.
    after = _next_node(compilation, node)
    if after is None:
        return dead_end(compilation, tctx)
    return translate_node(compilation, after, tctx)
