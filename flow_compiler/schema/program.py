"""
Pydantic models for the compiled artifact.

A Program is a set of named routines; ``main`` is the entry routine that
receives the trigger payload. Steps form a tagged union keyed by ``kind`` and
serialise to the engine's ``{stepName: {...}}`` form through ``to_engine``.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Literal, Optional, Union, Annotated

from pydantic import BaseModel, ConfigDict, Field, model_validator

JSONValue = Union[str, int, float, bool, None, Dict[str, Any], List[Any]]


class StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class RetryPolicy(StrictModel):
    """Retry-with-backoff attached to a flaky call."""

    max_attempts: int = Field(ge=1)
    initial_delay: float = Field(gt=0)
    multiplier: float = Field(ge=1)
    max_delay: float = Field(default=60.0, gt=0)
    predicate: str = "${http.default_retry_predicate}"

    def to_engine(self) -> Dict[str, Any]:
        return {
            "predicate": self.predicate,
            "max_retries": self.max_attempts,
            "backoff": {
                "initial_delay": self.initial_delay,
                "max_delay": self.max_delay,
                "multiplier": self.multiplier,
            },
        }


class StepBase(StrictModel):
    name: str = Field(min_length=1)


class CallStep(StepBase):
    kind: Literal["call"] = "call"
    call: str = Field(min_length=1)
    args: Optional[Dict[str, Any]] = None
    result: Optional[str] = None
    retry: Optional[RetryPolicy] = None

    def to_engine(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"call": self.call}
        if self.args is not None:
            body["args"] = self.args
        if self.result:
            body["result"] = self.result
        if self.retry is not None:
            return {self.name: {"try": body, "retry": self.retry.to_engine()}}
        return {self.name: body}


class AssignStep(StepBase):
    kind: Literal["assign"] = "assign"
    assign: List[Dict[str, Any]] = Field(min_length=1)

    def to_engine(self) -> Dict[str, Any]:
        return {self.name: {"assign": self.assign}}


class SwitchCase(StrictModel):
    condition: Optional[str] = None
    steps: Optional[List["Step"]] = None
    next: Optional[str] = None

    @model_validator(mode="after")
    def _exactly_one_target(self) -> "SwitchCase":
        if (self.steps is None) == (self.next is None):
            raise ValueError("switch case needs exactly one of steps or next")
        return self

    @property
    def is_unconditional(self) -> bool:
        return self.condition is None

    def to_engine(self) -> Dict[str, Any]:
        case: Dict[str, Any] = {"condition": True if self.condition is None else self.condition}
        if self.steps is not None:
            case["steps"] = [step.to_engine() for step in self.steps]
        else:
            case["next"] = self.next
        return case


class SwitchStep(StepBase):
    kind: Literal["switch"] = "switch"
    cases: List[SwitchCase] = Field(min_length=1)
    next: Optional[str] = None

    def to_engine(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"switch": [case.to_engine() for case in self.cases]}
        if self.next:
            body["next"] = self.next
        return {self.name: body}


class BlockStep(StepBase):
    kind: Literal["block"] = "block"
    steps: List["Step"] = Field(default_factory=list)
    next: Optional[str] = None

    def to_engine(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"steps": [step.to_engine() for step in self.steps]}
        if self.next:
            body["next"] = self.next
        return {self.name: body}


class ReturnStep(StepBase):
    kind: Literal["return"] = "return"
    value: JSONValue = None

    def to_engine(self) -> Dict[str, Any]:
        return {self.name: {"return": self.value}}


Step = Annotated[
    Union[CallStep, AssignStep, SwitchStep, BlockStep, ReturnStep],
    Field(discriminator="kind"),
]

SwitchCase.model_rebuild()
BlockStep.model_rebuild()
SwitchStep.model_rebuild()


def iter_steps(steps: List[Step]) -> Iterator[Step]:
    """Depth-first walk over steps, descending into blocks and switch cases."""

    for step in steps:
        yield step
        if isinstance(step, BlockStep):
            yield from iter_steps(step.steps)
        elif isinstance(step, SwitchStep):
            for case in step.cases:
                if case.steps:
                    yield from iter_steps(case.steps)


class Routine(StrictModel):
    params: List[str] = Field(default_factory=list)
    steps: List[Step] = Field(default_factory=list)

    def to_engine(self) -> Dict[str, Any]:
        return {
            "params": list(self.params),
            "steps": [step.to_engine() for step in self.steps],
        }


class Program(StrictModel):
    model_config = ConfigDict(extra="forbid", frozen=True)

    routines: Dict[str, Routine]

    @model_validator(mode="after")
    def _has_main(self) -> "Program":
        if "main" not in self.routines:
            raise ValueError("program requires a 'main' routine")
        return self

    @property
    def main(self) -> Routine:
        return self.routines["main"]

    def __contains__(self, name: object) -> bool:
        return name in self.routines

    def __getitem__(self, name: str) -> Routine:
        return self.routines[name]

    def routine_names(self) -> List[str]:
        return list(self.routines)

    def to_engine(self) -> Dict[str, Any]:
        return {name: routine.to_engine() for name, routine in self.routines.items()}

    def to_json(self, *, indent: Optional[int] = None) -> str:
        return json.dumps(self.to_engine(), indent=indent)
