"""
Lookups for records the compiler needs but does not own.

The compiler depends only on the ``BranchLookup`` / ``FlowLookup`` protocols.
In-memory implementations back tests and embedding; the Tortoise variants read
the ``shared.database`` models.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Mapping, MutableMapping, Optional, Protocol

from tortoise.exceptions import BaseORMException

from flow_compiler.compiler.parse import parse_flow_definition
from flow_compiler.errors import LookupFailedError, ValidationPhaseError
from flow_compiler.schema.models import FlowDefinition
from shared.database.models import Branch, FlowRecord
from shared.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class BranchRecord:
    id: str
    name: str
    organisation_id: str = ""


class BranchLookup(Protocol):
    async def get_branch(self, branch_id: str) -> Optional[BranchRecord]:
        ...


class FlowLookup(Protocol):
    async def get_flow(self, flow_id: str) -> Optional[FlowDefinition]:
        ...


class InMemoryBranchLookup:
    def __init__(self, branches: MutableMapping[str, BranchRecord] | None = None) -> None:
        self._branches: Dict[str, BranchRecord] = dict(branches or {})

    def add(self, record: BranchRecord) -> None:
        self._branches[record.id] = record

    async def get_branch(self, branch_id: str) -> Optional[BranchRecord]:
        return self._branches.get(branch_id)


class InMemoryFlowLookup:
    def __init__(self, flows: Mapping[str, Mapping[str, Any]] | None = None) -> None:
        self._flows: Dict[str, Mapping[str, Any]] = dict(flows or {})

    def add(self, flow_id: str, payload: Mapping[str, Any]) -> None:
        self._flows[flow_id] = payload

    async def get_flow(self, flow_id: str) -> Optional[FlowDefinition]:
        payload = self._flows.get(flow_id)
        if payload is None:
            return None
        return _to_definition(flow_id, payload)


class TortoiseBranchLookup:
    """Reads branches from ``shared.database.models.Branch``."""

    async def get_branch(self, branch_id: str) -> Optional[BranchRecord]:
        try:
            row = await Branch.get_or_none(id=branch_id)
        except BaseORMException as exc:
            raise LookupFailedError(f"Branch lookup failed for '{branch_id}': {exc}") from exc
        if row is None:
            return None
        return BranchRecord(id=row.id, name=row.name, organisation_id=row.organisation_id)


class TortoiseFlowLookup:
    """Reads stored designer flows from ``shared.database.models.FlowRecord``."""

    async def get_flow(self, flow_id: str) -> Optional[FlowDefinition]:
        try:
            row = await FlowRecord.get_or_none(id=flow_id)
        except BaseORMException as exc:
            raise LookupFailedError(f"Flow lookup failed for '{flow_id}': {exc}") from exc
        if row is None:
            return None
        logger.info("Loaded flow %s (%s)", flow_id, row.title)
        return _to_definition(flow_id, row.as_payload())


def _to_definition(flow_id: str, payload: Mapping[str, Any]) -> FlowDefinition:
    try:
        return parse_flow_definition(payload)
    except ValidationPhaseError as exc:
        raise LookupFailedError(f"Stored flow '{flow_id}' is invalid: {exc}") from exc
