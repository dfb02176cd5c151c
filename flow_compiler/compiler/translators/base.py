"""
Shared machinery for node translators.

Translators register themselves per node category with ``@translator`` and
receive ``(compilation, node, tctx)``. They return the steps to splice into the
current routine and may register subroutines on ``compilation.builder``.
"""

from __future__ import annotations

from typing import Any, Callable, Dict, List, Optional

from flow_compiler.compiler.context import Compilation, TranslationContext
from flow_compiler.compiler.edges import find_edge
from flow_compiler.errors import LoweringError
from flow_compiler.expr.templates import transform_value
from flow_compiler.registry.primitive_registry import HTTP_POST
from flow_compiler.schema.models import NodeBase, NodeType
from flow_compiler.schema.program import (
    AssignStep,
    CallStep,
    RetryPolicy,
    ReturnStep,
    Routine,
    Step,
)
from shared.config import FlowCompilerConfig
from shared.logger import get_logger

logger = get_logger(__name__)

Translator = Callable[[Compilation, NodeBase, TranslationContext], List[Step]]

LOOP_SENTINEL = "NRA_LOOP"
NO_RESULT = "NRA"
DEFAULT_KEY = "*"

_TRANSLATORS: Dict[str, Translator] = {}

_SECONDS_PER_UNIT = {
    "second": 1,
    "seconds": 1,
    "minute": 60,
    "minutes": 60,
    "hour": 3600,
    "hours": 3600,
    "day": 86400,
    "days": 86400,
    "week": 604800,
    "weeks": 604800,
}

_EDITOR_KEYS = ("errors", "sample_payload", "description")
_FORM_EDITOR_KEYS = ("invalid_message", "body_variables", "template", "header_variable_data", "description", "channel")

JSON_HEADERS = {"Content-Type": "application/json"}


def translator(*node_types: NodeType | str) -> Callable[[Translator], Translator]:
    def decorator(func: Translator) -> Translator:
        for node_type in node_types:
            key = node_type.value if isinstance(node_type, NodeType) else node_type
            _TRANSLATORS[key] = func
        return func

    return decorator


def translate_node(compilation: Compilation, node: NodeBase, tctx: TranslationContext) -> List[Step]:
    tctx = tctx.visiting(node.id)
    handler = _TRANSLATORS.get(node.type) or _TRANSLATORS.get(DEFAULT_KEY)
    if handler is None:
        raise LoweringError(f"No translator registered for node type '{node.type}'")
    logger.debug("Translating node %s (%s)", node.id, node.type)
    return handler(compilation, node, tctx)


def target_of(compilation: Compilation, node: NodeBase, port: str) -> Optional[NodeBase]:
    edge = find_edge(compilation.flow, node.id, port)
    if edge is None:
        return None
    return compilation.flow.node(edge.target)


def dead_end(compilation: Compilation, tctx: TranslationContext) -> List[Step]:
    if tctx.inside_loop:
        return [ReturnStep(name=compilation.namer.step("loop_return"), value=LOOP_SENTINEL)]
    return []


def follow(compilation: Compilation, node: NodeBase, port: str, tctx: TranslationContext) -> List[Step]:
    """Translate the node behind ``port`` inline, in the current routine."""

    target = target_of(compilation, node, port)
    if target is None:
        return dead_end(compilation, tctx)
    return translate_node(compilation, target, tctx)


def stub_steps(port: str) -> List[Step]:
    return [ReturnStep(name="return_default", value=f"No further steps defined for {port}")]


def continuation_call(
    compilation: Compilation,
    node: NodeBase,
    port: str,
    tctx: TranslationContext,
    *,
    extra_args: Optional[Dict[str, Any]] = None,
) -> CallStep:
    """
    Register the continuation behind ``port`` as its own routine and return
    the step calling it. Unconnected ports get a stub routine.
    """

    snapshot = tctx.args.fork()
    for key, value in (extra_args or {}).items():
        snapshot.register(key, value)
    params = snapshot.params()
    call_args = snapshot.call_args()

    name = compilation.namer.routine(node.type, port)
    target = target_of(compilation, node, port)
    if target is None:
        logger.info("Node %s has no edge on port '%s'; emitting stub %s", node.id, port, name)
        steps = stub_steps(port)
    else:
        steps = translate_node(compilation, target, tctx.descend(snapshot))
    compilation.builder.add_routine(name, Routine(params=params, steps=steps))
    return CallStep(name=f"call_{name}", call=name, args=call_args, result=f"{name}_result")


def renamed(compilation: Compilation, step: CallStep) -> CallStep:
    """Copy of ``step`` under a fresh name, for calling one routine from two places."""

    return step.model_copy(update={"name": compilation.namer.step(step.name)})


def http_post(
    name: str,
    url: str,
    body: Any,
    *,
    result: Optional[str] = None,
    headers: Optional[Dict[str, str]] = None,
    retry: Optional[RetryPolicy] = None,
) -> CallStep:
    return CallStep(
        name=name,
        call=HTTP_POST,
        args={"url": url, "headers": dict(headers or JSON_HEADERS), "body": body},
        result=result,
        retry=retry,
    )


def execution_headers() -> Dict[str, str]:
    return {**JSON_HEADERS, "execution-id": "${exeId}"}


def retry_policy(config: FlowCompilerConfig) -> RetryPolicy:
    return RetryPolicy(
        max_attempts=config.http_retry_max_attempts,
        initial_delay=config.http_retry_initial_delay,
        multiplier=config.http_retry_multiplier,
    )


def assign(name: str, values: Dict[str, Any]) -> AssignStep:
    return AssignStep(name=name, assign=[{key: value} for key, value in values.items()])


def to_seconds(value: Optional[float], unit: Optional[str]) -> int:
    factor = _SECONDS_PER_UNIT.get((unit or "seconds").strip().lower())
    if factor is None:
        raise LoweringError(f"Unsupported time unit '{unit}'")
    return int((value or 0) * factor)


def wait_seconds(config: FlowCompilerConfig, value: Optional[float], unit: Optional[str]) -> int:
    seconds = to_seconds(value, unit)
    return seconds if seconds > 0 else config.default_response_wait_seconds


def strip_editor_keys(data: Dict[str, Any]) -> Dict[str, Any]:
    cleaned = {key: value for key, value in data.items() if key not in _EDITOR_KEYS}
    form = cleaned.get("form_payload")
    if isinstance(form, dict):
        cleaned["form_payload"] = {key: value for key, value in form.items() if key not in _FORM_EDITOR_KEYS}
    return cleaned


def node_payload(compilation: Compilation, node: NodeBase) -> Dict[str, Any]:
    """Request body for a node: its data without editor keys, placeholders rewritten."""

    data = strip_editor_keys(node.data.model_dump(mode="json"))
    body = transform_value(data)
    flow = compilation.flow
    body.update(
        {
            "workflowTitle": flow.title,
            "organisation_id": flow.organisation_id,
            "branch_id": flow.branch_id,
            "flow_id": flow.flow_id,
        }
    )
    return body
