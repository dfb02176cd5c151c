"""
Ordered mapping of variables visible to the routine being emitted.

Every value is an engine reference such as ``${txt_welcome}``. Subroutine
calls forward the whole mapping as call args, and the callee declares the same
names as params, so both sides are always built from one snapshot.
"""

from __future__ import annotations

from typing import Any, Dict, Iterator, List, Mapping, Optional


def reference(name: str) -> str:
    return f"${{{name}}}"


class ArgsRegistry:
    def __init__(self, initial: Optional[Mapping[str, Any]] = None) -> None:
        self._values: Dict[str, Any] = dict(initial or {})

    @classmethod
    def seeded(cls) -> "ArgsRegistry":
        """Values every flow routine can rely on."""

        return cls(
            {
                "tg": reference("tg"),
                "exeId": reference("exeId"),
                "branch_id": reference("tg.branch_id"),
                "branch_name": reference("tg.branch_name"),
            }
        )

    def register(self, name: str, value: Optional[Any] = None) -> None:
        self._values[name] = reference(name) if value is None else value

    def fork(self) -> "ArgsRegistry":
        return ArgsRegistry(self._values)

    def params(self, *extra: str) -> List[str]:
        names = list(self._values)
        names.extend(name for name in extra if name not in self._values)
        return names

    def call_args(self) -> Dict[str, Any]:
        return dict(self._values)

    def get(self, name: str) -> Any:
        return self._values.get(name)

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)
