"""
Public entrypoint for compiling designer flows into engine programs.
"""

from __future__ import annotations

from typing import Any, Optional

from flow_compiler.compiler.assembler import assemble_program
from flow_compiler.compiler.context import CompilerContext
from flow_compiler.compiler.parse import parse_flow_definition
from flow_compiler.compiler.validate_program import validate_program
from flow_compiler.schema.program import Program


async def compile_flow(
    payload: Any,
    context: Optional[CompilerContext] = None,
    *,
    as_subflow: bool = False,
) -> Program:
    """
    Compile a flow definition into a Program of named routines.
    """

    context = context or CompilerContext.default()
    flow = parse_flow_definition(payload)
    program = await assemble_program(flow, context, as_subflow=as_subflow)
    validate_program(program, context.primitive_registry)
    return program


__all__ = ["compile_flow", "CompilerContext", "Program"]
