from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import Any, Optional

from flow_compiler import compile_flow
from flow_compiler.compiler.context import CompilerContext
from flow_compiler.compiler.parse import parse_flow_definition
from flow_compiler.compiler.translators.subflow import subflow_program_name
from flow_compiler.deploy.sink import HttpProgramSink, InMemoryProgramSink, ProgramSink
from flow_compiler.errors import LookupFailedError
from flow_compiler.registry.lookups import (
    BranchLookup,
    FlowLookup,
    TortoiseBranchLookup,
    TortoiseFlowLookup,
)
from flow_compiler.schema.models import FlowDefinition
from flow_compiler.schema.program import Program
from shared.config import FlowCompilerConfig, config as default_config
from shared.logger import get_logger

__all__ = ["FlowCompilerService", "Deployment", "program_name"]

logger = get_logger(__name__)


def program_name(flow: FlowDefinition, *, as_subflow: bool = False) -> str:
    """Engine name a flow is deployed under."""

    if as_subflow:
        return subflow_program_name(flow.flow_id, flow.branch_id)
    return "_".join(f"Flow_{flow.flow_id}_{flow.branch_id}".split())


@dataclass(frozen=True)
class Deployment:
    name: str
    handle: str
    program: Program


class FlowCompilerService:
    """
    Process-wide singleton that compiles flows and hands them to the program sink.
    """

    _instance: FlowCompilerService | None = None
    _instance_lock = Lock()

    def __init__(
        self,
        *,
        flow_lookup: FlowLookup,
        branch_lookup: BranchLookup,
        sink: ProgramSink,
        config: FlowCompilerConfig = default_config,
    ) -> None:
        self._flow_lookup = flow_lookup
        self._sink = sink
        self._context = CompilerContext(config=config, branch_lookup=branch_lookup)

    @classmethod
    def instance(cls) -> FlowCompilerService:
        if cls._instance is None:
            with cls._instance_lock:
                if cls._instance is None:
                    cls._instance = cls._from_config(default_config)
        return cls._instance

    @classmethod
    def configure(cls, service: FlowCompilerService) -> FlowCompilerService:
        with cls._instance_lock:
            cls._instance = service
        return service

    @classmethod
    def reset(cls) -> None:
        with cls._instance_lock:
            cls._instance = None

    @classmethod
    def _from_config(cls, config: FlowCompilerConfig) -> FlowCompilerService:
        if config.is_sink_configured:
            sink: ProgramSink = HttpProgramSink(
                config.program_sink_url,
                token=config.program_sink_token,
                timeout=config.program_sink_timeout,
            )
        else:
            logger.warning("No program sink configured; compiled programs are kept in memory")
            sink = InMemoryProgramSink()
        return cls(
            flow_lookup=TortoiseFlowLookup(),
            branch_lookup=TortoiseBranchLookup(),
            sink=sink,
            config=config,
        )

    @property
    def context(self) -> CompilerContext:
        return self._context

    async def compile(self, payload: Any, *, as_subflow: bool = False) -> Program:
        return await compile_flow(payload, self._context, as_subflow=as_subflow)

    async def deploy(self, payload: Any, *, as_subflow: bool = False) -> Deployment:
        """
        Compile ``payload`` and submit it under its deployment name.
        """

        flow = parse_flow_definition(payload)
        program = await compile_flow(flow, self._context, as_subflow=as_subflow)
        name = program_name(flow, as_subflow=as_subflow)
        handle = await self._sink.submit(program, name)
        logger.info("Deployed flow %s as %s", flow.flow_id, name)
        return Deployment(name=name, handle=handle, program=program)

    async def deploy_flow(self, flow_id: str, *, as_subflow: bool = False) -> Deployment:
        flow = await self._flow_lookup.get_flow(flow_id)
        if flow is None:
            raise LookupFailedError(f"Flow '{flow_id}' not found")
        return await self.deploy(flow, as_subflow=as_subflow)
