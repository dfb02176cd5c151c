from __future__ import annotations

import pytest

from flow_compiler import compile_flow
from flow_compiler.compiler.context import CompilerContext
from flow_compiler.schema.program import BlockStep, CallStep, SwitchStep
from flow_compiler.tests.flow_builders import (
    buttons,
    edge,
    find_step,
    flow,
    list_message,
    node,
    routines_with_prefix,
    step_names,
    text,
    trigger,
)


def _stub(port: str) -> list:
    return [{"return_default": {"return": f"No further steps defined for {port}"}}]


@pytest.mark.asyncio
async def test_awaiting_text_suspends_and_dispatches(context: CompilerContext) -> None:
    payload = flow(
        [
            trigger(),
            text("t1", "Hello", is_response_wait=True, response_wait=2, response_wait_unit="minutes"),
            text("t2", "Thanks"),
        ],
        [edge("trigger", "t1"), edge("t1", "t2", "next-step")],
    )
    program = await compile_flow(payload, context)

    block = program.main.steps[2]
    assert isinstance(block, BlockStep)
    assert [name.rsplit("_", 1)[0] for name in step_names(block.steps)] == [
        "txt_hello_send",
        "txt_hello_await",
        "txt_hello_store",
        "txt_hello_dispatch",
    ]
    wait = block.steps[1]
    assert wait.call == "await_callback"
    assert wait.args == {"event_source": "Twelcomeflow", "seconds": 120, "correlation_id": "${exeId}"}
    assert wait.result == "txt_hello_reply"

    dispatch = block.steps[-1]
    assert len(dispatch.cases) == 2
    replied, fallback = dispatch.cases
    assert replied.condition == (
        "${txt_hello_reply.success == true and "
        "txt_hello_reply.message_id == txt_hello_sent.body.messages[0].id}"
    )
    assert fallback.condition is None

    [next_routine] = routines_with_prefix(program, "wTSW_next_step_")
    [no_response] = routines_with_prefix(program, "wTSW_no_response_")
    assert replied.steps[0].call == next_routine
    assert fallback.steps[0].call == no_response
    assert program[no_response].to_engine()["steps"] == _stub("no-response")
    assert "txt_hello" in program[next_routine].params
    assert program[next_routine].steps[0].name == "txt_thanks"


@pytest.mark.asyncio
async def test_unset_wait_uses_default_timeout(context: CompilerContext) -> None:
    payload = flow([trigger(), text("t1", "Hello", is_response_wait=True, response_wait="")], [edge("trigger", "t1")])
    program = await compile_flow(payload, context)

    wait = find_step(program.main.steps[2].steps, "txt_hello_await")
    assert wait.args["seconds"] == context.config.default_response_wait_seconds


@pytest.mark.asyncio
async def test_format_check_retries_then_falls_to_no_response(context: CompilerContext) -> None:
    payload = flow(
        [trigger(), text("t1", "Photo", is_response_wait=True, is_check_format=True, format_unit="image")],
        [edge("trigger", "t1")],
    )
    program = await compile_flow(payload, context)

    steps = program.main.steps[2].steps
    assert [name.rsplit("_", 1)[0] for name in step_names(steps)] == [
        "txt_photo_send",
        "txt_photo_attempts_init",
        "txt_photo_await",
        "txt_photo_store",
        "txt_photo_count",
        "txt_photo_dispatch",
    ]
    await_name = steps[2].name
    dispatch = steps[-1]
    valid, wrong_type, fallback = dispatch.cases
    assert 'txt_photo_reply.type == "image"' in valid.condition

    retry = wrong_type.steps[0]
    assert isinstance(retry, SwitchStep)
    again, exhausted = retry.cases
    assert again.condition == f"${{txt_photo_attempts < {context.config.response_retry_limit}}}"
    invalid, jump = again.steps
    assert invalid.args["url"] == context.config.message_send_invalid_url
    assert jump.cases[0].next == await_name

    [no_response] = routines_with_prefix(program, "wTSW_no_response_")
    assert exhausted.steps[0].call == no_response
    assert fallback.steps[0].call == no_response
    assert exhausted.steps[0].name != fallback.steps[0].name


@pytest.mark.asyncio
async def test_buttons_get_one_routine_per_reply(context: CompilerContext) -> None:
    payload = flow(
        [trigger(), buttons("b1", "Choose", ["b1", "b2"]), text("x", "Picked one")],
        [edge("trigger", "b1"), edge("b1", "x", "b1-b1")],
    )
    program = await compile_flow(payload, context)

    dispatch = program.main.steps[2].steps[-1]
    assert len(dispatch.cases) == 3
    assert 'btn_choose_reply.reply_id == "b1"' in dispatch.cases[0].condition
    assert 'btn_choose_reply.reply_id == "b2"' in dispatch.cases[1].condition

    [first] = routines_with_prefix(program, "bmn_b1_")
    [second] = routines_with_prefix(program, "bmn_b2_")
    assert program[first].steps[0].name == "txt_picked_one"
    assert program[second].to_engine()["steps"] == _stub("b2")
    assert routines_with_prefix(program, "bmn_no_response_")

    wait = find_step(program.main.steps[2].steps, "btn_choose_await")
    assert wait.args["seconds"] == context.config.default_response_wait_seconds


@pytest.mark.asyncio
async def test_list_rows_become_ports(context: CompilerContext) -> None:
    payload = flow([trigger(), list_message("l1", "Menu", ["r1", "r2"])], [edge("trigger", "l1")])
    program = await compile_flow(payload, context)

    assert len(routines_with_prefix(program, "lsmn_r")) == 2
    assert len(routines_with_prefix(program, "lsmn_no_response_")) == 1


@pytest.mark.asyncio
async def test_template_without_buttons_is_linear(context: CompilerContext) -> None:
    template = node("tp", "whatsappNode", title="Promo", meta_payload={"components": [{"type": "body"}]})
    payload = flow([trigger(), template, text("t2", "After")], [edge("trigger", "tp"), edge("tp", "t2")])
    program = await compile_flow(payload, context)

    assert program.routine_names() == ["main"]
    block = program.main.steps[2]
    assert block.name == "tpl_promo"
    assert block.steps[-1].name == "txt_after"


@pytest.mark.asyncio
async def test_template_buttons_dispatch_on_reply_id(context: CompilerContext) -> None:
    template = node(
        "tp",
        "whatsappNode",
        title="Promo",
        form_payload={"buttons": [{"id": "Buy now"}, {"id": "later"}]},
    )
    program = await compile_flow(flow([trigger(), template], [edge("trigger", "tp")]), context)

    assert routines_with_prefix(program, "tmn_Buy_now_")
    assert routines_with_prefix(program, "tmn_later_")


@pytest.mark.asyncio
async def test_internal_alert_uses_alert_endpoint(context: CompilerContext) -> None:
    alert = node("al", "internalAlertNode", title="Notify team")
    program = await compile_flow(flow([trigger(), alert], [edge("trigger", "al")]), context)

    send = program.main.steps[2].steps[0]
    assert send.args["url"] == context.config.message_send_alert_url


@pytest.mark.asyncio
async def test_custom_webhook_waits_on_its_id(context: CompilerContext) -> None:
    hook = node("w1", "webhookNode", title="Paid", type="custom", webhook_id="hook-1", response_wait=1, response_wait_unit="hours")
    program = await compile_flow(flow([trigger(), hook], [edge("trigger", "w1")]), context)

    block = program.main.steps[2]
    wait, store, call = block.steps
    assert wait.args["event_source"] == "hook-1"
    assert wait.args["seconds"] == 3600
    assert store.assign == [{"wbh_paid": "${wbh_paid_event}"}]
    assert isinstance(call, CallStep)
    [routine] = routines_with_prefix(program, "wbhn_next_step_")
    assert call.call == routine


@pytest.mark.asyncio
async def test_default_webhook_event_uses_flow_and_node_titles(context: CompilerContext) -> None:
    hook = node("w1", "webhookNode", title="Order paid")
    program = await compile_flow(flow([trigger(), hook], [edge("trigger", "w1")]), context)

    wait = program.main.steps[2].steps[0]
    assert wait.args["event_source"] == "welcomeflow_Order paid"


@pytest.mark.asyncio
async def test_template_positional_parameters_are_sent_verbatim(context: CompilerContext) -> None:
    template = node(
        "tp",
        "whatsappNode",
        title="Shipped",
        meta_payload={"components": [{"type": "body", "text": "Hello {{1}}, your order {{2}} shipped"}]},
    )
    program = await compile_flow(flow([trigger(), template], [edge("trigger", "tp")]), context)

    send = program.main.steps[2].steps[0]
    component = send.args["body"]["meta_payload"]["components"][0]
    assert component["text"] == "Hello {{1}}, your order {{2}} shipped"
