"""
Translators for linear action nodes.

Each emits its primitive call, stores the result in the node variable and
inlines the next-step continuation.
"""

from __future__ import annotations

from typing import Any, Dict, List

from flow_compiler.compiler.context import Compilation, TranslationContext
from flow_compiler.compiler.edges import NEXT_STEP, find_first_edge
from flow_compiler.compiler.naming import sanitize
from flow_compiler.compiler.translators.base import (
    DEFAULT_KEY,
    JSON_HEADERS,
    LOOP_SENTINEL,
    NO_RESULT,
    assign,
    dead_end,
    follow,
    http_post,
    node_payload,
    retry_policy,
    to_seconds,
    translate_node,
    translator,
)
from flow_compiler.expr.templates import to_engine_expression, transform_value
from flow_compiler.registry.primitive_registry import SYS_SLEEP, SYS_SLEEP_UNTIL
from flow_compiler.schema.models import (
    ApiNode,
    DelayNode,
    NodeBase,
    NodeType,
    SaveDataNode,
    SaveVariableNode,
    TriggerNode,
    UtilsFunctionNode,
)
from flow_compiler.schema.program import BlockStep, CallStep, ReturnStep, Step

SAVE_DATA_MUTATION = (
    "mutation SaveFlowData($table: String!, $data: JSON!, $flowId: String) "
    "{ saveFlowData(table: $table, data: $data, flowId: $flowId) { id } }"
)


@translator(NodeType.trigger)
def translate_trigger(compilation: Compilation, node: TriggerNode, tctx: TranslationContext) -> List[Step]:
    edge = find_first_edge(compilation.flow, node.id)
    target = compilation.flow.node(edge.target) if edge else None
    if target is None:
        return dead_end(compilation, tctx)
    return translate_node(compilation, target, tctx)


@translator(NodeType.delay)
def translate_delay(compilation: Compilation, node: DelayNode, tctx: TranslationContext) -> List[Step]:
    # Loop bodies never sleep; the engine paces iterations.
    if tctx.inside_loop:
        return follow(compilation, node, NEXT_STEP, tctx)

    data = node.data
    name = compilation.namer.step("dly")
    if data.is_delayed_until or data.is_delayed_until_dynamic:
        sleep = CallStep(
            name=f"{name}_sleep",
            call=SYS_SLEEP_UNTIL,
            args={"time": to_engine_expression(data.delayed_until or "")},
        )
    else:
        sleep = CallStep(
            name=f"{name}_sleep",
            call=SYS_SLEEP,
            args={"seconds": to_seconds(data.delay, data.unit)},
        )
    return [BlockStep(name=name, steps=[sleep, *follow(compilation, node, NEXT_STEP, tctx)])]


@translator(NodeType.save_data)
def translate_save_data(compilation: Compilation, node: SaveDataNode, tctx: TranslationContext) -> List[Step]:
    flow = compilation.flow
    var = compilation.namer.variable(node)
    columns: Dict[str, Any] = {column.name: transform_value(column.value) for column in node.data.columns}
    steps: List[Step] = [
        http_post(
            compilation.namer.step(f"{var}_save"),
            f"{compilation.config.flow_service_url.rstrip('/')}/graphql",
            {
                "query": SAVE_DATA_MUTATION,
                "variables": {"table": node.data.table, "data": columns, "flowId": flow.flow_id},
            },
            result=var,
            headers={**JSON_HEADERS, "organisation-id": flow.organisation_id, "branch-id": flow.branch_id},
        )
    ]
    tctx.args.register(var)
    steps.extend(follow(compilation, node, NEXT_STEP, tctx))
    return [BlockStep(name=var, steps=steps)]


def variable_object(node: SaveVariableNode, *, empty: bool = False) -> Dict[str, Any]:
    if empty:
        return {entry.key: "" for entry in node.data.variables}
    return {entry.key: transform_value(entry.value) for entry in node.data.variables}


@translator(NodeType.save_variable)
def translate_save_variable(
    compilation: Compilation, node: SaveVariableNode, tctx: TranslationContext
) -> List[Step]:
    var = compilation.namer.variable(node)
    steps: List[Step] = [assign(compilation.namer.step(f"{var}_assign"), {var: variable_object(node)})]
    tctx.args.register(var)
    steps.extend(follow(compilation, node, NEXT_STEP, tctx))
    return [BlockStep(name=var, steps=steps)]


@translator(NodeType.api)
def translate_api(compilation: Compilation, node: ApiNode, tctx: TranslationContext) -> List[Step]:
    var = compilation.namer.variable(node)
    response = f"{var}_response"
    base = compilation.config.flow_service_url.rstrip("/")
    steps: List[Step] = [
        http_post(
            compilation.namer.step(f"{var}_request"),
            f"{base}/{node.data.api_type}/{node.data.api_event}",
            node_payload(compilation, node),
            result=response,
            retry=retry_policy(compilation.config),
        ),
        assign(compilation.namer.step(f"{var}_store"), {var: f"${{{response}.body}}"}),
    ]
    tctx.args.register(var)
    steps.extend(follow(compilation, node, NEXT_STEP, tctx))
    return [BlockStep(name=var, steps=steps)]


@translator(NodeType.utils_function)
def translate_utils_function(
    compilation: Compilation, node: UtilsFunctionNode, tctx: TranslationContext
) -> List[Step]:
    var = compilation.namer.variable(node)
    response = f"{var}_response"
    base = compilation.config.functions_url.rstrip("/")
    steps: List[Step] = [
        http_post(
            compilation.namer.step(f"{var}_call"),
            f"{base}/{node.data.function}",
            {"source": transform_value(node.data.source), "target": node.data.target},
            result=response,
            retry=retry_policy(compilation.config),
        ),
        assign(compilation.namer.step(f"{var}_store"), {var: f"${{{response}.body}}"}),
    ]
    tctx.args.register(var)
    steps.extend(follow(compilation, node, NEXT_STEP, tctx))
    return [BlockStep(name=var, steps=steps)]


@translator(DEFAULT_KEY)
def translate_default(compilation: Compilation, node: NodeBase, tctx: TranslationContext) -> List[Step]:
    name = compilation.namer.step("fn")
    if tctx.inside_loop:
        return [ReturnStep(name=name, value=LOOP_SENTINEL)]
    candidate = sanitize(node.title)
    value = f"${{{candidate}}}" if candidate and candidate in tctx.args else NO_RESULT
    return [ReturnStep(name=name, value=value)]
