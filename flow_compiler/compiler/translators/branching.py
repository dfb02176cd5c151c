"""
Translators for conditional split (yes/no) and conditional branch (N labels).

Both delegate evaluation to a cloud function and switch on its opaque result,
dispatching to one routine per outcome.
"""

from __future__ import annotations

import json
from typing import List

from flow_compiler.compiler.context import Compilation, TranslationContext
from flow_compiler.compiler.edges import NO, YES, branch_port
from flow_compiler.compiler.translators.base import (
    continuation_call,
    http_post,
    retry_policy,
    translator,
)
from flow_compiler.expr.templates import referenced_values
from flow_compiler.registry.primitive_registry import SYS_LOG
from flow_compiler.schema.models import ConditionBranchNode, ConditionSplitNode, NodeType
from flow_compiler.schema.program import BlockStep, CallStep, Step, SwitchCase, SwitchStep


def _log_result(name: str, result: str) -> CallStep:
    return CallStep(name=name, call=SYS_LOG, args={"severity": "INFO", "data": f"${{{result}}}"})


@translator(NodeType.condition_split)
def translate_condition_split(
    compilation: Compilation, node: ConditionSplitNode, tctx: TranslationContext
) -> List[Step]:
    namer = compilation.namer
    name = namer.step("csn")
    result = f"{name}_result"
    conditions = node.data.conditions

    yes_call = continuation_call(compilation, node, YES, tctx)
    no_call = continuation_call(compilation, node, NO, tctx)
    steps: List[Step] = [
        http_post(
            f"{name}_evaluate",
            compilation.config.condition_split_url,
            {
                "data": referenced_values(conditions),
                "filterGroupCondition": node.data.filterGroupCondition,
                "conditions": conditions,
            },
            result=result,
            retry=retry_policy(compilation.config),
        ),
        _log_result(f"{name}_log", result),
        SwitchStep(
            name=f"{name}_route",
            cases=[
                SwitchCase(condition=f'${{{result}.body == "yes"}}', steps=[yes_call]),
                SwitchCase(condition=f'${{{result}.body == "no"}}', steps=[no_call]),
            ],
        ),
    ]
    return [BlockStep(name=name, steps=steps)]


@translator(NodeType.condition_branch)
def translate_condition_branch(
    compilation: Compilation, node: ConditionBranchNode, tctx: TranslationContext
) -> List[Step]:
    namer = compilation.namer
    name = namer.step("cbn")
    result = f"{name}_result"
    paths = [path.model_dump(mode="json") for path in node.data.paths]

    cases: List[SwitchCase] = []
    for path in node.data.paths:
        call = continuation_call(compilation, node, branch_port(path.label), tctx)
        cases.append(SwitchCase(condition=f"${{{result}.body == {json.dumps(path.label)}}}", steps=[call]))

    steps: List[Step] = [
        http_post(
            f"{name}_evaluate",
            compilation.config.condition_branch_url,
            {"data": referenced_values(paths), "paths": paths},
            result=result,
            retry=retry_policy(compilation.config),
        ),
        _log_result(f"{name}_log", result),
    ]
    if cases:
        steps.append(SwitchStep(name=f"{name}_route", cases=cases))
    return [BlockStep(name=name, steps=steps)]
