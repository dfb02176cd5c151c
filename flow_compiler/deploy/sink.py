"""
Sinks that receive compiled programs.

The engine registration API is not part of this project; the compiler only
needs ``submit(program, name) -> handle``. ``HttpProgramSink`` posts the engine
form of the program to a deployment endpoint.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol

import httpx

from flow_compiler.errors import SubmissionError
from flow_compiler.schema.program import Program
from shared.logger import get_logger

logger = get_logger(__name__)


class ProgramSink(Protocol):
    async def submit(self, program: Program, name: str) -> str:
        ...


@dataclass(frozen=True)
class Submission:
    name: str
    program: Program


class InMemoryProgramSink:
    """Keeps every submission; the handle is the program name."""

    def __init__(self) -> None:
        self.submissions: List[Submission] = []

    async def submit(self, program: Program, name: str) -> str:
        self.submissions.append(Submission(name=name, program=program))
        return name

    def latest(self, name: str) -> Optional[Program]:
        for submission in reversed(self.submissions):
            if submission.name == name:
                return submission.program
        return None


class HttpProgramSink:
    """
    Posts ``{"name", "source"}`` to a deployment endpoint.

    The endpoint answers with JSON carrying a ``handle`` (or ``name``); that
    value is returned to the caller.
    """

    def __init__(
        self,
        url: str,
        *,
        token: Optional[str] = None,
        timeout: float = 30.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self._headers: Dict[str, str] = {"Content-Type": "application/json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"
        self._client = client or httpx.AsyncClient(timeout=timeout)
        self._owns_client = client is None

    async def submit(self, program: Program, name: str) -> str:
        payload: Dict[str, Any] = {"name": name, "source": program.to_engine()}
        try:
            response = await self._client.post(self.url, json=payload, headers=self._headers)
            response.raise_for_status()
        except httpx.HTTPStatusError as exc:
            raise SubmissionError(
                f"Program '{name}' rejected with status {exc.response.status_code}: {exc.response.text}"
            ) from exc
        except httpx.HTTPError as exc:
            raise SubmissionError(f"Program '{name}' could not be submitted: {exc}") from exc

        try:
            body = response.json()
        except ValueError:
            body = {}
        handle = name
        if isinstance(body, dict):
            handle = body.get("handle") or body.get("name") or name
        logger.info("Submitted program %s (handle %s)", name, handle)
        return str(handle)

    async def aclose(self) -> None:
        if self._owns_client:
            await self._client.aclose()
