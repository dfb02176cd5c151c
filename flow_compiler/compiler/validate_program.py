"""
Final stage: verify every call target and jump of a Program resolves.
"""

from __future__ import annotations

from typing import List

from flow_compiler.errors import LoweringError
from flow_compiler.registry.primitive_registry import LOOP_ITERATE, PrimitiveRegistry
from flow_compiler.schema.program import BlockStep, CallStep, Program, SwitchStep, iter_steps


def validate_program(program: Program, primitives: PrimitiveRegistry) -> None:
    """
    Raise a single ``LoweringError`` listing every dangling call target,
    unknown loop routine and unresolved jump.
    """

    problems: List[str] = []
    for routine_name, routine in program.routines.items():
        steps = list(iter_steps(routine.steps))
        step_names = {step.name for step in steps}
        for step in steps:
            if isinstance(step, CallStep):
                if step.call not in program and step.call not in primitives:
                    problems.append(f"{routine_name}.{step.name}: unknown call target '{step.call}'")
                if step.call == LOOP_ITERATE:
                    target = (step.args or {}).get("routine")
                    if target not in program:
                        problems.append(f"{routine_name}.{step.name}: unknown loop routine '{target}'")
            elif isinstance(step, SwitchStep):
                jumps = [case.next for case in step.cases if case.next]
                if step.next:
                    jumps.append(step.next)
                for jump in jumps:
                    if jump not in step_names:
                        problems.append(f"{routine_name}.{step.name}: unknown jump target '{jump}'")
            elif isinstance(step, BlockStep) and step.next and step.next not in step_names:
                problems.append(f"{routine_name}.{step.name}: unknown jump target '{step.next}'")

    if problems:
        raise LoweringError("Program validation failed: " + "; ".join(problems))
