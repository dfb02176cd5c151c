"""
Subflow linker.

A subflow node starts the compiled child program through the start-subflow
function, then polls a shared document until the child marks it completed.
Polling is bounded: after ``subflow_max_polls`` checks the node variable gets
a ``SubflowTimeout`` error value and control moves to the ``timeout`` port.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List

from flow_compiler.compiler.context import Compilation, TranslationContext
from flow_compiler.compiler.edges import NEXT_STEP, TIMEOUT
from flow_compiler.compiler.translators.base import (
    JSON_HEADERS,
    assign,
    continuation_call,
    follow,
    http_post,
    retry_policy,
    translator,
)
from flow_compiler.registry.primitive_registry import (
    DOCUMENT_DELETE,
    DOCUMENT_GET,
    DOCUMENT_PATCH,
    SYS_GET_ENV,
    SYS_SLEEP,
    TEXT_SPLIT,
)
from flow_compiler.schema.models import NodeType, SubflowNode
from flow_compiler.schema.program import BlockStep, CallStep, ReturnStep, Step, SwitchCase, SwitchStep

EXECUTION_ID_ENV = "GOOGLE_CLOUD_WORKFLOW_EXECUTION_ID"
PROJECT_ID_ENV = "GOOGLE_CLOUD_PROJECT_ID"
# Index of the execution id in "projects/p/locations/l/workflows/w/executions/id".
EXECUTION_ID_SEGMENT = 7
STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
TIMEOUT_ERROR = "SubflowTimeout"


def subflow_program_name(subflow_id: str, branch_id: str) -> str:
    return "_".join(f"Subflow_{subflow_id}_{branch_id}".split())


def document_root(project_expr: str, database: str) -> str:
    """Engine expression for the polling collection path."""
    return f'"projects/" + {project_expr} + "/databases/{database}/documents/subflows/"'


def status_document(status: str, data_expr: str) -> Dict[str, Any]:
    return {
        "fields": {
            "status": {"stringValue": status},
            "data": {"stringValue": data_expr},
        }
    }


def get_env(name: str, variable: str, result: str) -> CallStep:
    return CallStep(name=name, call=SYS_GET_ENV, args={"name": variable}, result=result)


@translator(NodeType.subflow)
def translate_subflow(compilation: Compilation, node: SubflowNode, tctx: TranslationContext) -> List[Step]:
    config = compilation.config
    flow = compilation.flow
    namer = compilation.namer
    var = namer.variable(node)
    program_name = subflow_program_name(node.data.subflow, flow.branch_id)

    caller = f"{var}_caller"
    started = f"{var}_start"
    path = f"{var}_path"
    project = f"{var}_project"
    doc = f"{var}_doc"
    status = f"{var}_status"
    data = f"{var}_data"
    polls = f"{var}_polls"
    state = f"{var}_state"
    child_id = f"{path}[{EXECUTION_ID_SEGMENT}]"

    steps: List[Step] = [
        get_env(namer.step(f"{var}_caller_id"), EXECUTION_ID_ENV, caller),
        http_post(
            namer.step(f"{var}_start"),
            config.subflow_start_url,
            {
                "workflow_id": program_name,
                "argument": {"mainflow": tctx.args.call_args(), "executionId": f"${{{caller}}}"},
                "location": "${tg.workflow.location}",
            },
            result=started,
            retry=retry_policy(config),
        ),
        CallStep(
            name=namer.step(f"{var}_split"),
            call=TEXT_SPLIT,
            args={"source": f"${{{started}.body.execData}}", "separator": "/"},
            result=path,
        ),
        get_env(namer.step(f"{var}_project_id"), PROJECT_ID_ENV, project),
        assign(
            namer.step(f"{var}_init"),
            {
                doc: "${" + document_root(project, config.firestore_database)
                + f" + {json.dumps(program_name + '_')} + {child_id}" + "}",
                status: STATUS_PENDING,
                data: "${tg}",
                polls: 0,
            },
        ),
        CallStep(
            name=namer.step(f"{var}_seed"),
            call=DOCUMENT_PATCH,
            args={
                "name": f"${{{doc}}}",
                "updateMask": {"fieldPaths": ["status", "data"]},
                "body": status_document(STATUS_PENDING, "${json.encode_to_string(tg)}"),
            },
        ),
    ]
    tctx.args.register(var)

    poll_name = namer.step(f"{var}_poll")
    timeout_value = {
        "success": False,
        "error": {
            "type": TIMEOUT_ERROR,
            "message": f"Subflow {node.data.subflow} did not complete after {config.subflow_max_polls} polls",
            "subflow": program_name,
        },
    }
    timeout_call = continuation_call(compilation, node, TIMEOUT, tctx)
    steps.append(
        SwitchStep(
            name=poll_name,
            cases=[
                SwitchCase(
                    condition=f'${{{status} == "{STATUS_PENDING}" and {polls} < {config.subflow_max_polls}}}',
                    steps=[
                        CallStep(
                            name=namer.step(f"{var}_wait"),
                            call=SYS_SLEEP,
                            args={"seconds": config.subflow_poll_interval_seconds},
                        ),
                        CallStep(
                            name=namer.step(f"{var}_read"),
                            call=DOCUMENT_GET,
                            args={"name": f"${{{doc}}}", "mask": {"fieldPaths": ["status", "data"]}},
                            result=state,
                        ),
                        assign(
                            namer.step(f"{var}_refresh"),
                            {
                                status: f"${{{state}.fields.status.stringValue}}",
                                data: f"${{{state}.fields.data.stringValue}}",
                                polls: f"${{{polls} + 1}}",
                            },
                        ),
                        SwitchStep(name=namer.step(f"{var}_repoll"), cases=[SwitchCase(next=poll_name)]),
                    ],
                ),
                SwitchCase(
                    condition=f'${{{status} == "{STATUS_PENDING}"}}',
                    steps=[
                        CallStep(name=namer.step(f"{var}_drop"), call=DOCUMENT_DELETE, args={"name": f"${{{doc}}}"}),
                        assign(namer.step(f"{var}_timeout"), {var: timeout_value}),
                        timeout_call,
                        ReturnStep(name=namer.step(f"{var}_timed_out"), value=f"${{{var}}}"),
                    ],
                ),
            ],
        )
    )

    steps.extend(
        [
            CallStep(name=namer.step(f"{var}_cleanup"), call=DOCUMENT_DELETE, args={"name": f"${{{doc}}}"}),
            assign(namer.step(f"{var}_store"), {var: f"${{json.decode({data})}}"}),
            http_post(
                namer.step(f"{var}_session_clear"),
                config.session_clear_url,
                {"execution_id": f"${{{child_id}}}", "branch_id": flow.branch_id},
                headers=JSON_HEADERS,
            ),
        ]
    )
    steps.extend(follow(compilation, node, NEXT_STEP, tctx))
    return [BlockStep(name=var, steps=steps)]
