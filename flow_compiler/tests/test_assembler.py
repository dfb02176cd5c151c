from __future__ import annotations

import pytest

from flow_compiler import compile_flow
from flow_compiler.compiler.context import CompilerContext
from flow_compiler.errors import LoweringError
from flow_compiler.registry.lookups import InMemoryBranchLookup
from flow_compiler.schema.program import AssignStep, BlockStep, CallStep, ReturnStep, SwitchStep
from flow_compiler.tests.flow_builders import (
    call_targets,
    edge,
    flow,
    iter_program_steps,
    make_context,
    node,
    save_variable,
    split,
    step_names,
    text,
    trigger,
)


def _linear_flow() -> dict:
    return flow(
        [trigger(), text("t1", "Hello", body="Hi {{tg.name}}")],
        [edge("trigger", "t1")],
    )


@pytest.mark.asyncio
async def test_linear_flow_main_layout(context: CompilerContext) -> None:
    program = await compile_flow(_linear_flow(), context)

    assert program.routine_names() == ["main"]
    assert program.main.params == ["tg"]
    assert step_names(program.main.steps) == [
        "get_execution_id",
        "assign_trigger_setup",
        "txt_hello",
        "clear_session",
        "return_result",
    ]
    assert not any(isinstance(step, SwitchStep) for step in iter_program_steps(program))

    setup = program.main.steps[1]
    assert isinstance(setup, AssignStep)
    assert setup.assign == [
        {"tg.branch_id": "br1"},
        {"tg.branch_name": "Main Branch"},
        {"txt_hello": {}},
    ]
    assert program.main.steps[-1].value == "${tg}"


@pytest.mark.asyncio
async def test_message_payload_is_cleaned_and_rewritten(context: CompilerContext) -> None:
    program = await compile_flow(_linear_flow(), context)

    block = program.main.steps[2]
    assert isinstance(block, BlockStep)
    send, store = block.steps
    assert send.call == "http.post"
    assert send.args["url"] == context.config.message_send_url
    assert send.args["headers"]["execution-id"] == "${exeId}"
    body = send.args["body"]
    assert body["meta_payload"]["body"] == '${"Hi " + string(tg.name)}'
    assert "errors" not in body
    assert body["workflowTitle"] == "Welcome Flow"
    assert body["flow_id"] == "flow1"
    assert store.assign == [{"txt_hello": "${txt_hello_sent}"}]


@pytest.mark.asyncio
async def test_trigger_without_edges_returns_no_result(context: CompilerContext) -> None:
    program = await compile_flow(flow([trigger()], []), context)

    assert step_names(program.main.steps) == [
        "get_execution_id",
        "assign_trigger_setup",
        "clear_session",
        "return_result",
    ]
    assert program.main.steps[-1].value == "NRA"


@pytest.mark.asyncio
async def test_missing_branch_compiles_with_empty_name() -> None:
    context = CompilerContext(config=make_context().config, branch_lookup=InMemoryBranchLookup())
    program = await compile_flow(_linear_flow(), context)
    assert {"tg.branch_name": ""} in program.main.steps[1].assign


@pytest.mark.asyncio
async def test_save_variable_children_are_seeded_with_empty_keys(context: CompilerContext) -> None:
    payload = flow(
        [trigger(), save_variable("v1", "Profile", {"name": "{{tg.contact.name}}", "city": "Paris"})],
        [edge("trigger", "v1")],
    )
    program = await compile_flow(payload, context)

    assert {"var_profile": {"name": "", "city": ""}} in program.main.steps[1].assign
    block = program.main.steps[2]
    assert block.steps[0].assign == [{"var_profile": {"name": "${tg.contact.name}", "city": "Paris"}}]


@pytest.mark.asyncio
async def test_compilation_is_deterministic(context: CompilerContext) -> None:
    payload = flow(
        [trigger(), split("s1"), text("x", "Adult", is_response_wait=True), text("y", "Minor")],
        [edge("trigger", "s1"), edge("s1", "x", "yes"), edge("s1", "y", "no")],
    )
    first = await compile_flow(payload, context)
    second = await compile_flow(payload, context)
    assert first.to_json() == second.to_json()


@pytest.mark.asyncio
async def test_every_call_target_resolves(context: CompilerContext) -> None:
    payload = flow(
        [trigger(), split("s1"), text("x", "Adult", is_response_wait=True)],
        [edge("trigger", "s1"), edge("s1", "x", "yes")],
    )
    program = await compile_flow(payload, context)

    for target in call_targets(program):
        assert target in program or target in context.primitive_registry
    called = call_targets(program)
    for name in program.routine_names():
        assert name == "main" or name in called


@pytest.mark.asyncio
async def test_subflow_program_marks_completion(context: CompilerContext) -> None:
    program = await compile_flow(_linear_flow(), context, as_subflow=True)

    names = step_names(program.main.steps)
    assert "clear_session" not in names
    assert names[-3:] == ["get_project_id", "mark_subflow_completed", "return_result"]
    mark = program.main.steps[-2]
    assert isinstance(mark, CallStep)
    assert "Subflow_flow1_br1_" in mark.args["name"]
    assert mark.args["body"]["fields"]["status"] == {"stringValue": "completed"}


@pytest.mark.asyncio
async def test_cycle_outside_loop_is_rejected(context: CompilerContext) -> None:
    payload = flow(
        [trigger(), text("a", "A"), text("b", "B")],
        [edge("trigger", "a"), edge("a", "b"), edge("b", "a")],
    )
    with pytest.raises(LoweringError, match="cycle"):
        await compile_flow(payload, context)


@pytest.mark.asyncio
async def test_unknown_node_returns_matching_variable(context: CompilerContext) -> None:
    payload = flow(
        [trigger(), text("t1", "Hello"), node("x", "fancyNode", title="txt hello")],
        [edge("trigger", "t1"), edge("t1", "x")],
    )
    program = await compile_flow(payload, context)

    last = program.main.steps[2].steps[-1]
    assert isinstance(last, ReturnStep)
    assert last.value == "${txt_hello}"


@pytest.mark.asyncio
async def test_unknown_node_without_variable_returns_no_result(context: CompilerContext) -> None:
    payload = flow([trigger(), node("x", "fancyNode", title="Mystery")], [edge("trigger", "x")])
    program = await compile_flow(payload, context)
    assert program.main.steps[2].value == "NRA"


@pytest.mark.asyncio
async def test_engine_form_is_keyed_by_step_name(context: CompilerContext) -> None:
    engine = (await compile_flow(_linear_flow(), context)).to_engine()

    main = engine["main"]
    assert main["params"] == ["tg"]
    assert main["steps"][0] == {
        "get_execution_id": {
            "call": "sys.get_env",
            "args": {"name": "GOOGLE_CLOUD_WORKFLOW_EXECUTION_ID"},
            "result": "exeId",
        }
    }
    assert main["steps"][-1] == {"return_result": {"return": "${tg}"}}
