from __future__ import annotations

import pytest

from flow_compiler.compiler.context import CompilerContext
from flow_compiler.tests.flow_builders import make_context


@pytest.fixture
def context() -> CompilerContext:
    return make_context()
