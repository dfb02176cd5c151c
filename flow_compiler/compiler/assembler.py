"""
Workflow assembler.

Builds ``main`` from the trigger: read the execution id, seed the trigger
payload with branch details, translate the graph behind the trigger, then close
with the session cleanup (or, for subflows, the completion write the parent is
polling for).
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from flow_compiler.compiler.args_registry import ArgsRegistry
from flow_compiler.compiler.context import Compilation, CompilerContext, TranslationContext
from flow_compiler.compiler.edges import outgoing_edges
from flow_compiler.compiler.translators import NO_RESULT, translate_node
from flow_compiler.compiler.translators.actions import variable_object
from flow_compiler.compiler.translators.base import JSON_HEADERS, assign, http_post
from flow_compiler.compiler.translators.subflow import (
    EXECUTION_ID_ENV,
    PROJECT_ID_ENV,
    STATUS_COMPLETED,
    document_root,
    get_env,
    status_document,
    subflow_program_name,
)
from flow_compiler.errors import LoweringError
from flow_compiler.registry.primitive_registry import DOCUMENT_PATCH
from flow_compiler.schema.models import FlowDefinition, NodeBase, NodeType, SaveVariableNode
from flow_compiler.schema.program import CallStep, Program, ReturnStep, Routine, Step
from shared.logger import get_logger

logger = get_logger(__name__)

# Categories whose variable is seeded in main so later routines can reference it.
RESULT_PRODUCING = frozenset(
    {
        NodeType.text_message.value,
        NodeType.template_message.value,
        NodeType.button_message.value,
        NodeType.list_message.value,
        NodeType.media_message.value,
        NodeType.catalog_message.value,
        NodeType.api.value,
        NodeType.webhook.value,
        NodeType.utils_function.value,
        NodeType.save_variable.value,
        NodeType.subflow.value,
    }
)


async def resolve_branch_name(flow: FlowDefinition, context: CompilerContext) -> str:
    if not flow.branch_id:
        return ""
    record = await context.branch_lookup.get_branch(flow.branch_id)
    if record is None:
        logger.warning("Branch %s not found; compiling flow %s with an empty branch name", flow.branch_id, flow.flow_id)
        return ""
    return record.name


def _trigger_children(compilation: Compilation) -> List[NodeBase]:
    flow = compilation.flow
    children: List[NodeBase] = []
    for edge in outgoing_edges(flow, flow.trigger.id):
        node = flow.node(edge.target)
        if node is not None and node.type in RESULT_PRODUCING and all(node.id != seen.id for seen in children):
            children.append(node)
    return children


def _setup_values(compilation: Compilation, args: ArgsRegistry) -> Dict[str, Any]:
    flow = compilation.flow
    values: Dict[str, Any] = {
        "tg.branch_id": flow.branch_id,
        "tg.branch_name": compilation.branch_name,
    }
    for child in _trigger_children(compilation):
        var = compilation.namer.variable(child)
        if var is None or var in values:
            continue
        values[var] = variable_object(child, empty=True) if isinstance(child, SaveVariableNode) else {}
        args.register(var)
    return values


def _cleanup_tail(compilation: Compilation) -> List[Step]:
    return [
        http_post(
            "clear_session",
            compilation.config.session_clear_url,
            {"execution_id": "${exeId}", "branch_id": compilation.flow.branch_id},
            headers=JSON_HEADERS,
        )
    ]


def _completion_tail(compilation: Compilation) -> List[Step]:
    flow = compilation.flow
    prefix = subflow_program_name(flow.flow_id, flow.branch_id) + "_"
    root = document_root("projectId", compilation.config.firestore_database)
    return [
        get_env("get_project_id", PROJECT_ID_ENV, "projectId"),
        CallStep(
            name="mark_subflow_completed",
            call=DOCUMENT_PATCH,
            args={
                "name": "${" + root + f" + {json.dumps(prefix)} + exeId" + "}",
                "updateMask": {"fieldPaths": ["status", "data"]},
                "body": status_document(STATUS_COMPLETED, "${json.encode_to_string(tg)}"),
            },
        ),
    ]


async def assemble_program(
    flow: FlowDefinition,
    context: CompilerContext,
    *,
    as_subflow: bool = False,
) -> Program:
    branch_name = await resolve_branch_name(flow, context)
    compilation = Compilation.start(flow, context, branch_name=branch_name)
    args = ArgsRegistry.seeded()

    steps: List[Step] = [
        get_env("get_execution_id", EXECUTION_ID_ENV, "exeId"),
        assign("assign_trigger_setup", _setup_values(compilation, args)),
    ]

    try:
        body = translate_node(compilation, flow.trigger, TranslationContext(args=args))
    except LoweringError:
        raise
    except ValueError as exc:
        raise LoweringError(f"Failed to translate flow '{flow.title}': {exc}") from exc

    steps.extend(body)
    steps.extend(_completion_tail(compilation) if as_subflow else _cleanup_tail(compilation))
    steps.append(ReturnStep(name="return_result", value="${tg}" if body else NO_RESULT))

    main = Routine(params=["tg"], steps=steps)
    program = compilation.builder.build(main)
    logger.info("Assembled flow %s into %d routines", flow.flow_id or flow.title, len(program.routines))
    return program
