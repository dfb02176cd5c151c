"""
In-memory registry of engine primitives.

Emitted ``call`` steps either target a routine of the same program or one of
the primitives the execution engine provides. Program validation consults this
registry to reject dangling targets.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Iterable, MutableMapping, Optional, Tuple


@dataclass(frozen=True)
class PrimitiveDefinition:
    name: str
    description: str = ""
    required_args: Tuple[str, ...] = field(default_factory=tuple)


class PrimitiveNotFoundError(KeyError):
    """Raised when attempting to access an unknown primitive."""


class PrimitiveRegistry:
    """
    Stores the primitives a compiled program may call.
    """

    def __init__(self, initial: MutableMapping[str, PrimitiveDefinition] | None = None) -> None:
        self._primitives: Dict[str, PrimitiveDefinition] = dict(initial or {})

    def register(self, primitive: PrimitiveDefinition) -> None:
        self._primitives[primitive.name] = primitive

    def get(self, name: str) -> PrimitiveDefinition:
        try:
            return self._primitives[name]
        except KeyError as exc:
            raise PrimitiveNotFoundError(f"Primitive '{name}' is not registered") from exc

    def maybe_get(self, name: str) -> Optional[PrimitiveDefinition]:
        return self._primitives.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._primitives

    def names(self) -> Iterable[str]:
        return tuple(self._primitives)


HTTP_POST = "http.post"
HTTP_GET = "http.get"
SYS_SLEEP = "sys.sleep"
SYS_SLEEP_UNTIL = "sys.sleep_until"
SYS_LOG = "sys.log"
SYS_GET_ENV = "sys.get_env"
TEXT_SPLIT = "text.split"
DOCUMENT_GET = "googleapis.firestore.v1.projects.databases.documents.get"
DOCUMENT_PATCH = "googleapis.firestore.v1.projects.databases.documents.patch"
DOCUMENT_DELETE = "googleapis.firestore.v1.projects.databases.documents.delete"
AWAIT_CALLBACK = "await_callback"
LOOP_ITERATE = "loop.iterate"


_DEFAULT_PRIMITIVES = (
    PrimitiveDefinition(HTTP_POST, "HTTP POST request", ("url",)),
    PrimitiveDefinition(HTTP_GET, "HTTP GET request", ("url",)),
    PrimitiveDefinition(SYS_SLEEP, "Suspend for a number of seconds", ("seconds",)),
    PrimitiveDefinition(SYS_SLEEP_UNTIL, "Suspend until a timestamp", ("time",)),
    PrimitiveDefinition(SYS_LOG, "Write an execution log entry"),
    PrimitiveDefinition(SYS_GET_ENV, "Read an execution environment value", ("name",)),
    PrimitiveDefinition(TEXT_SPLIT, "Split a string by separator", ("source", "separator")),
    PrimitiveDefinition(DOCUMENT_GET, "Read a polling document", ("name",)),
    PrimitiveDefinition(DOCUMENT_PATCH, "Write a polling document", ("name", "body")),
    PrimitiveDefinition(DOCUMENT_DELETE, "Delete a polling document", ("name",)),
    PrimitiveDefinition(
        AWAIT_CALLBACK,
        "Suspend until an external callback arrives or the timeout elapses",
        ("event_source", "seconds", "correlation_id"),
    ),
    PrimitiveDefinition(
        LOOP_ITERATE,
        "Call a routine once per item of a list or count",
        ("routine", "loopValue", "loopLimit", "args"),
    ),
)


def default_primitive_registry() -> PrimitiveRegistry:
    registry = PrimitiveRegistry()
    for primitive in _DEFAULT_PRIMITIVES:
        registry.register(primitive)
    return registry
