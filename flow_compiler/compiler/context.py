"""
Containers for compiler dependencies and per-compile state.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Dict, Optional, Tuple

from flow_compiler.compiler.args_registry import ArgsRegistry
from flow_compiler.compiler.naming import Namer
from flow_compiler.errors import LoweringError
from flow_compiler.registry.lookups import BranchLookup, InMemoryBranchLookup
from flow_compiler.registry.primitive_registry import PrimitiveRegistry, default_primitive_registry
from flow_compiler.schema.models import FlowDefinition
from flow_compiler.schema.program import Program, Routine
from shared.config import FlowCompilerConfig, config as default_config


@dataclass(frozen=True)
class CompilerContext:
    config: FlowCompilerConfig
    branch_lookup: BranchLookup
    primitive_registry: PrimitiveRegistry = field(default_factory=default_primitive_registry)

    @classmethod
    def default(cls, branch_lookup: Optional[BranchLookup] = None) -> "CompilerContext":
        return cls(
            config=default_config,
            branch_lookup=branch_lookup or InMemoryBranchLookup(),
        )


@dataclass(frozen=True)
class TranslationContext:
    """
    Per-path state handed to translators.

    ``args`` is shared by steps inlined into the same routine and forked
    whenever a continuation becomes its own routine.
    """

    args: ArgsRegistry
    inside_loop: bool = False
    path: Tuple[str, ...] = ()

    def visiting(self, node_id: str) -> "TranslationContext":
        if node_id in self.path:
            cycle = " -> ".join(self.path + (node_id,))
            raise LoweringError(f"Flow contains a cycle outside a loop construct: {cycle}")
        return replace(self, path=self.path + (node_id,))

    def descend(self, args: Optional[ArgsRegistry] = None) -> "TranslationContext":
        return replace(self, args=args if args is not None else self.args.fork())

    def in_loop(self, args: ArgsRegistry) -> "TranslationContext":
        return replace(self, args=args, inside_loop=True)


class ProgramBuilder:
    def __init__(self) -> None:
        self._routines: Dict[str, Routine] = {}

    def add_routine(self, name: str, routine: Routine) -> None:
        if name in self._routines:
            raise LoweringError(f"Routine '{name}' registered twice")
        self._routines[name] = routine

    def __contains__(self, name: object) -> bool:
        return name in self._routines

    def __len__(self) -> int:
        return len(self._routines)

    def build(self, main: Routine) -> Program:
        routines: Dict[str, Routine] = {"main": main}
        routines.update(self._routines)
        return Program(routines=routines)


@dataclass
class Compilation:
    """Mutable state owned by a single compile."""

    flow: FlowDefinition
    context: CompilerContext
    namer: Namer
    builder: ProgramBuilder = field(default_factory=ProgramBuilder)
    branch_name: str = ""

    @classmethod
    def start(cls, flow: FlowDefinition, context: CompilerContext, *, branch_name: str = "") -> "Compilation":
        return cls(flow=flow, context=context, namer=Namer(flow.nodes), branch_name=branch_name)

    @property
    def config(self) -> FlowCompilerConfig:
        return self.context.config

    @property
    def event_source(self) -> str:
        """Callback event source shared by every prompt of this flow."""
        compact = "".join(self.flow.title.replace("_", " ").split()).lower()
        return f"{self.config.callback_event_prefix}{compact}"
