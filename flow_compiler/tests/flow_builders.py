"""
Plain-dict builders for designer flows used across the compiler tests.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Optional, Set

from flow_compiler.compiler.context import CompilerContext
from flow_compiler.registry.lookups import BranchRecord, InMemoryBranchLookup
from flow_compiler.schema.program import CallStep, Program, iter_steps
from shared.config import FlowCompilerConfig

FLOW_ID = "flow1"
BRANCH_ID = "br1"
BRANCH_NAME = "Main Branch"


def make_context(**overrides: Any) -> CompilerContext:
    config = FlowCompilerConfig(_env_file=None, **overrides)
    lookup = InMemoryBranchLookup({BRANCH_ID: BranchRecord(id=BRANCH_ID, name=BRANCH_NAME, organisation_id="org1")})
    return CompilerContext(config=config, branch_lookup=lookup)


def node(node_id: str, node_type: str, **data: Any) -> Dict[str, Any]:
    return {"id": node_id, "type": node_type, "position": {"x": 0, "y": 0}, "data": data}


def edge(source: str, target: str, handle: Optional[str] = None) -> Dict[str, Any]:
    payload: Dict[str, Any] = {"id": f"e-{source}-{target}", "source": source, "target": target}
    if handle is not None:
        payload["sourceHandle"] = handle
    return payload


def trigger(node_id: str = "trigger") -> Dict[str, Any]:
    return node(node_id, "triggerNode", title="Contact created")


def flow(nodes: List[Dict[str, Any]], edges: List[Dict[str, Any]], *, title: str = "Welcome Flow") -> Dict[str, Any]:
    return {
        "_id": FLOW_ID,
        "title": title,
        "organisation_id": "org1",
        "branch_id": BRANCH_ID,
        "nodes": nodes,
        "edges": edges,
    }


def text(node_id: str, title: str, body: str = "Hello there", **form: Any) -> Dict[str, Any]:
    return node(
        node_id,
        "whatsappTextNode",
        title=title,
        form_payload=form,
        meta_payload={"body": body},
        errors={"body": None},
    )


def buttons(node_id: str, title: str, button_ids: List[str], **form: Any) -> Dict[str, Any]:
    return node(
        node_id,
        "buttonMessageNode",
        title=title,
        form_payload=form,
        meta_payload={
            "body": {"text": "Pick one"},
            "action": {"buttons": [{"type": "reply", "reply": {"id": bid, "title": bid.upper()}} for bid in button_ids]},
        },
    )


def list_message(node_id: str, title: str, row_ids: List[str]) -> Dict[str, Any]:
    return node(
        node_id,
        "listMessageNode",
        title=title,
        meta_payload={
            "body": {"text": "Choose"},
            "action": {"sections": [{"title": "Options", "rows": [{"id": rid, "title": rid} for rid in row_ids]}]},
        },
    )


def split(node_id: str, title: str = "Check age") -> Dict[str, Any]:
    return node(
        node_id,
        "conditionSplitNode",
        title=title,
        conditions=[{"variable": "{{tg.contact.age}}", "operator": ">", "value": 18}],
        filterGroupCondition="and",
    )


def branch(node_id: str, labels: List[str], title: str = "Segment") -> Dict[str, Any]:
    return node(
        node_id,
        "conditionBranchNode",
        title=title,
        paths=[{"label": label, "conditions": [{"variable": "{{tg.contact.tier}}", "value": label}]} for label in labels],
    )


def delay(node_id: str, amount: float = 1, unit: str = "hours", **extra: Any) -> Dict[str, Any]:
    return node(node_id, "delayNode", title="Wait", delay=amount, unit=unit, **extra)


def save_variable(node_id: str, title: str, variables: Dict[str, Any]) -> Dict[str, Any]:
    return node(
        node_id,
        "saveVariableNode",
        title=title,
        variables=[{"key": key, "value": value} for key, value in variables.items()],
    )


def loop_start(node_id: str, title: str, loop_list: Any, limit: Optional[int] = None) -> Dict[str, Any]:
    data: Dict[str, Any] = {"title": title, "loop_list": loop_list}
    if limit is not None:
        data["limit"] = limit
    return {"id": node_id, "type": "startLoopNode", "data": data}


def loop_end(node_id: str) -> Dict[str, Any]:
    return node(node_id, "endLoopNode", title="End loop")


def subflow(node_id: str, title: str, subflow_id: str = "child1") -> Dict[str, Any]:
    return node(node_id, "subflowNode", title=title, subflow=subflow_id)


def api(node_id: str, title: str) -> Dict[str, Any]:
    return node(
        node_id,
        "apiNode",
        title=title,
        api_type="shopify",
        api_event="create_order",
        payload={"email": "{{tg.contact.email}}"},
        sample_payload={"email": "a@b.c"},
        description="creates an order",
    )


def iter_program_steps(program: Program) -> Iterator[Any]:
    for routine in program.routines.values():
        yield from iter_steps(routine.steps)


def call_targets(program: Program) -> Set[str]:
    targets: Set[str] = set()
    for step in iter_program_steps(program):
        if isinstance(step, CallStep):
            targets.add(step.call)
            if step.args and isinstance(step.args.get("routine"), str):
                targets.add(step.args["routine"])
    return targets


def routines_with_prefix(program: Program, prefix: str) -> List[str]:
    return [name for name in program.routines if name.startswith(prefix)]


def step_names(steps: List[Any]) -> List[str]:
    return [step.name for step in steps]


def find_step(steps: List[Any], prefix: str) -> Any:
    for step in steps:
        if step.name.startswith(prefix):
            return step
    raise AssertionError(f"no step starting with {prefix!r} in {step_names(steps)}")
