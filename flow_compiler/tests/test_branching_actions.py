from __future__ import annotations

import pytest

from flow_compiler import compile_flow
from flow_compiler.compiler.context import CompilerContext
from flow_compiler.schema.program import BlockStep, SwitchStep
from flow_compiler.tests.flow_builders import (
    api,
    branch,
    delay,
    edge,
    find_step,
    flow,
    node,
    routines_with_prefix,
    split,
    text,
    trigger,
)

SEEDED_PARAMS = ["tg", "exeId", "branch_id", "branch_name"]


@pytest.mark.asyncio
async def test_split_evaluates_remotely_and_routes_yes_no(context: CompilerContext) -> None:
    payload = flow(
        [trigger(), split("s1"), text("x", "Adult")],
        [edge("trigger", "s1"), edge("s1", "x", "yes")],
    )
    program = await compile_flow(payload, context)

    block = program.main.steps[2]
    assert isinstance(block, BlockStep)
    evaluate, log, route = block.steps
    assert evaluate.args["url"] == context.config.condition_split_url
    assert evaluate.args["body"]["data"] == {"tg.contact.age": "${tg.contact.age}"}
    assert evaluate.args["body"]["filterGroupCondition"] == "and"
    assert "try" in evaluate.to_engine()[evaluate.name]
    assert log.call == "sys.log"

    assert isinstance(route, SwitchStep)
    yes_case, no_case = route.cases
    assert yes_case.condition == f'${{{evaluate.result}.body == "yes"}}'
    assert no_case.condition == f'${{{evaluate.result}.body == "no"}}'

    [yes_routine] = routines_with_prefix(program, "csn_yes_")
    [no_routine] = routines_with_prefix(program, "csn_no_")
    assert yes_case.steps[0].call == yes_routine
    assert program[yes_routine].params == SEEDED_PARAMS
    assert program[yes_routine].steps[0].name == "txt_adult"
    assert program[no_routine].to_engine() == {
        "params": SEEDED_PARAMS,
        "steps": [{"return_default": {"return": "No further steps defined for no"}}],
    }
    assert no_case.steps[0].args == {
        "tg": "${tg}",
        "exeId": "${exeId}",
        "branch_id": "${tg.branch_id}",
        "branch_name": "${tg.branch_name}",
    }


@pytest.mark.asyncio
async def test_branch_routes_on_labels(context: CompilerContext) -> None:
    payload = flow(
        [trigger(), branch("b1", ["Gold", "Silver tier"]), text("x", "Gold perks")],
        [edge("trigger", "b1"), edge("b1", "x", "GOLD")],
    )
    program = await compile_flow(payload, context)

    evaluate, _, route = program.main.steps[2].steps
    assert evaluate.args["url"] == context.config.condition_branch_url
    assert [path["label"] for path in evaluate.args["body"]["paths"]] == ["Gold", "Silver tier"]
    assert route.cases[0].condition == f'${{{evaluate.result}.body == "Gold"}}'

    [gold] = routines_with_prefix(program, "cbn_GOLD_")
    [silver] = routines_with_prefix(program, "cbn_SILVER_TIER_")
    assert program[gold].steps[0].name == "txt_gold_perks"
    assert program[silver].steps[0].value == "No further steps defined for SILVER_TIER"


@pytest.mark.asyncio
async def test_delay_sleeps_then_continues(context: CompilerContext) -> None:
    payload = flow(
        [trigger(), delay("d1", 2, "hours"), text("t1", "Later")],
        [edge("trigger", "d1"), edge("d1", "t1")],
    )
    program = await compile_flow(payload, context)

    block = program.main.steps[2]
    assert block.name.startswith("dly_")
    sleep, follow_up = block.steps
    assert sleep.call == "sys.sleep"
    assert sleep.args == {"seconds": 7200}
    assert follow_up.name == "txt_later"


@pytest.mark.asyncio
async def test_delay_until_uses_timestamp(context: CompilerContext) -> None:
    until = delay("d1", is_delayed_until_dynamic=True, delayed_until="{{tg.appointment.at}}")
    program = await compile_flow(flow([trigger(), until], [edge("trigger", "d1")]), context)

    sleep = program.main.steps[2].steps[0]
    assert sleep.call == "sys.sleep_until"
    assert sleep.args == {"time": "${tg.appointment.at}"}


@pytest.mark.asyncio
async def test_api_node_posts_with_retry_and_stores_body(context: CompilerContext) -> None:
    program = await compile_flow(flow([trigger(), api("a1", "Create order")], [edge("trigger", "a1")]), context)

    block = program.main.steps[2]
    request = find_step(block.steps, "api_create_order_request")
    assert request.args["url"] == "http://localhost:8082/shopify/create_order"
    assert request.args["body"]["payload"] == {"email": "${tg.contact.email}"}
    assert "sample_payload" not in request.args["body"]
    assert "description" not in request.args["body"]
    assert request.retry.max_attempts == context.config.http_retry_max_attempts
    store = find_step(block.steps, "api_create_order_store")
    assert store.assign == [{"api_create_order": "${api_create_order_response.body}"}]
    assert {"api_create_order": {}} in program.main.steps[1].assign


@pytest.mark.asyncio
async def test_utils_function_calls_named_function(context: CompilerContext) -> None:
    utils = node("u1", "utilsFunctionNode", title="Format date", function="format_date", source="{{tg.date}}", target="iso")
    program = await compile_flow(flow([trigger(), utils], [edge("trigger", "u1")]), context)

    call = program.main.steps[2].steps[0]
    assert call.args["url"] == "http://localhost:8081/format_date"
    assert call.args["body"] == {"source": "${tg.date}", "target": "iso"}


@pytest.mark.asyncio
async def test_save_data_posts_graphql_mutation(context: CompilerContext) -> None:
    save = node(
        "sd1",
        "saveDataNode",
        title="Lead",
        table="leads",
        columns=[{"name": "phone", "value": "{{tg.contact.phone}}"}],
    )
    program = await compile_flow(flow([trigger(), save], [edge("trigger", "sd1")]), context)

    call = program.main.steps[2].steps[0]
    assert call.args["url"] == "http://localhost:8082/graphql"
    assert call.args["headers"]["organisation-id"] == "org1"
    assert call.args["body"]["variables"] == {
        "table": "leads",
        "data": {"phone": "${tg.contact.phone}"},
        "flowId": "flow1",
    }
    assert call.result == "sd_lead"
