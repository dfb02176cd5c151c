"""
Translators for message sends, reply prompts and webhook waits.

A prompt sends the message, suspends on ``await_callback`` and dispatches on
the reply: one routine per reply port plus the no-response routine. With a
format check, a reply of the wrong type triggers the invalid-format notice and
another wait, up to ``response_retry_limit`` attempts.
"""

from __future__ import annotations

import json
from typing import List, Optional, Tuple

from flow_compiler.compiler.context import Compilation, TranslationContext
from flow_compiler.compiler.edges import NEXT_STEP, NO_RESPONSE
from flow_compiler.compiler.naming import sanitize
from flow_compiler.compiler.translators.base import (
    assign,
    continuation_call,
    execution_headers,
    follow,
    http_post,
    node_payload,
    renamed,
    translator,
    wait_seconds,
)
from flow_compiler.registry.primitive_registry import AWAIT_CALLBACK
from flow_compiler.schema.models import (
    ButtonMessageNode,
    CatalogMessageNode,
    InternalAlertNode,
    ListMessageNode,
    MediaMessageNode,
    NodeBase,
    NodeType,
    TemplateMessageNode,
    TextMessageNode,
    WebhookNode,
)
from flow_compiler.schema.program import BlockStep, CallStep, Step, SwitchCase, SwitchStep

# (extra condition on the reply, port)
ReplyPort = Tuple[str, str]


def _variable(compilation: Compilation, node: NodeBase) -> str:
    return compilation.namer.variable(node) or compilation.namer.step(sanitize(node.type))


def _linear_send(
    compilation: Compilation,
    node: NodeBase,
    tctx: TranslationContext,
    url: str,
) -> List[Step]:
    var = _variable(compilation, node)
    sent = f"{var}_sent"
    steps: List[Step] = [
        http_post(
            compilation.namer.step(f"{var}_send"),
            url,
            node_payload(compilation, node),
            result=sent,
            headers=execution_headers(),
        ),
        assign(compilation.namer.step(f"{var}_store"), {var: f"${{{sent}}}"}),
    ]
    tctx.args.register(var)
    steps.extend(follow(compilation, node, NEXT_STEP, tctx))
    return [BlockStep(name=var, steps=steps)]


def _prompt(
    compilation: Compilation,
    node: NodeBase,
    tctx: TranslationContext,
    *,
    seconds: int,
    replies: List[ReplyPort],
    format_unit: Optional[str] = None,
) -> List[Step]:
    config = compilation.config
    namer = compilation.namer
    var = _variable(compilation, node)
    sent, reply, attempts = f"{var}_sent", f"{var}_reply", f"{var}_attempts"
    payload = node_payload(compilation, node)

    steps: List[Step] = [
        http_post(namer.step(f"{var}_send"), config.message_send_url, payload, result=sent, headers=execution_headers())
    ]
    if format_unit:
        steps.append(assign(namer.step(f"{var}_attempts_init"), {attempts: 0}))

    await_name = namer.step(f"{var}_await")
    steps.append(
        CallStep(
            name=await_name,
            call=AWAIT_CALLBACK,
            args={"event_source": compilation.event_source, "seconds": seconds, "correlation_id": "${exeId}"},
            result=reply,
        )
    )
    steps.append(assign(namer.step(f"{var}_store"), {var: f"${{{reply}}}"}))
    tctx.args.register(var)

    matched = f"{reply}.success == true and {reply}.message_id == {sent}.body.messages[0].id"
    reply_calls = [(condition, continuation_call(compilation, node, port, tctx)) for condition, port in replies]
    no_response = continuation_call(compilation, node, NO_RESPONSE, tctx)

    cases: List[SwitchCase] = []
    if format_unit:
        steps.append(assign(namer.step(f"{var}_count"), {attempts: f"${{{attempts} + 1}}"}))
        expected = json.dumps(format_unit)
        for condition, call in reply_calls:
            cases.append(SwitchCase(condition=f"${{{matched}{condition} and {reply}.type == {expected}}}", steps=[call]))
        retry = SwitchStep(
            name=namer.step(f"{var}_retry"),
            cases=[
                SwitchCase(
                    condition=f"${{{attempts} < {config.response_retry_limit}}}",
                    steps=[
                        http_post(
                            namer.step(f"{var}_invalid"),
                            config.message_send_invalid_url,
                            payload,
                            result=f"{var}_invalid_sent",
                            headers=execution_headers(),
                        ),
                        SwitchStep(name=namer.step(f"{var}_again"), cases=[SwitchCase(next=await_name)]),
                    ],
                ),
                SwitchCase(steps=[renamed(compilation, no_response)]),
            ],
        )
        cases.append(SwitchCase(condition=f"${{{matched}}}", steps=[retry]))
    else:
        for condition, call in reply_calls:
            cases.append(SwitchCase(condition=f"${{{matched}{condition}}}", steps=[call]))
    cases.append(SwitchCase(steps=[no_response]))

    steps.append(SwitchStep(name=namer.step(f"{var}_dispatch"), cases=cases))
    return [BlockStep(name=var, steps=steps)]


def _reply_port(reply_var: str, reply_id: str) -> ReplyPort:
    return f" and {reply_var}.reply_id == {json.dumps(reply_id)}", reply_id


@translator(NodeType.text_message)
def translate_text_message(compilation: Compilation, node: TextMessageNode, tctx: TranslationContext) -> List[Step]:
    form = node.data.form_payload
    if not form.is_response_wait:
        return _linear_send(compilation, node, tctx, compilation.config.message_send_url)
    return _prompt(
        compilation,
        node,
        tctx,
        seconds=wait_seconds(compilation.config, form.response_wait, form.response_wait_unit),
        replies=[("", NEXT_STEP)],
        format_unit=form.format_unit if form.is_check_format else None,
    )


@translator(NodeType.media_message, NodeType.catalog_message)
def translate_media_message(
    compilation: Compilation,
    node: MediaMessageNode | CatalogMessageNode,
    tctx: TranslationContext,
) -> List[Step]:
    form = node.data.form_payload
    if not form.is_response_wait:
        return _linear_send(compilation, node, tctx, compilation.config.message_send_url)
    return _prompt(
        compilation,
        node,
        tctx,
        seconds=wait_seconds(compilation.config, form.response_wait, form.response_wait_unit),
        replies=[("", NEXT_STEP)],
        format_unit=form.format_unit if form.is_check_format else None,
    )


def _prompt_seconds(compilation: Compilation, node: NodeBase) -> int:
    form = node.data.form_payload
    if form.is_response_wait:
        return wait_seconds(compilation.config, form.response_wait, form.response_wait_unit)
    return compilation.config.default_response_wait_seconds


@translator(NodeType.template_message)
def translate_template_message(
    compilation: Compilation, node: TemplateMessageNode, tctx: TranslationContext
) -> List[Step]:
    buttons = node.data.form_payload.buttons
    if not buttons:
        return _linear_send(compilation, node, tctx, compilation.config.message_send_url)
    reply_var = f"{_variable(compilation, node)}_reply"
    return _prompt(
        compilation,
        node,
        tctx,
        seconds=_prompt_seconds(compilation, node),
        replies=[_reply_port(reply_var, button.id) for button in buttons],
    )


@translator(NodeType.button_message)
def translate_button_message(compilation: Compilation, node: ButtonMessageNode, tctx: TranslationContext) -> List[Step]:
    reply_var = f"{_variable(compilation, node)}_reply"
    return _prompt(
        compilation,
        node,
        tctx,
        seconds=_prompt_seconds(compilation, node),
        replies=[_reply_port(reply_var, button.reply.id) for button in node.data.meta_payload.action.buttons],
    )


@translator(NodeType.list_message)
def translate_list_message(compilation: Compilation, node: ListMessageNode, tctx: TranslationContext) -> List[Step]:
    reply_var = f"{_variable(compilation, node)}_reply"
    rows = [row for section in node.data.meta_payload.action.sections for row in section.rows]
    return _prompt(
        compilation,
        node,
        tctx,
        seconds=_prompt_seconds(compilation, node),
        replies=[_reply_port(reply_var, row.id) for row in rows],
    )


@translator(NodeType.internal_alert)
def translate_internal_alert(compilation: Compilation, node: InternalAlertNode, tctx: TranslationContext) -> List[Step]:
    return _linear_send(compilation, node, tctx, compilation.config.message_send_alert_url)


def webhook_event_source(compilation: Compilation, node: WebhookNode) -> str:
    if node.data.type == "custom" and node.data.webhook_id:
        return node.data.webhook_id
    compact = compilation.event_source[len(compilation.config.callback_event_prefix):]
    return f"{compact}_{node.data.title}"


@translator(NodeType.webhook)
def translate_webhook(compilation: Compilation, node: WebhookNode, tctx: TranslationContext) -> List[Step]:
    namer = compilation.namer
    var = _variable(compilation, node)
    event = f"{var}_event"
    steps: List[Step] = [
        CallStep(
            name=namer.step(f"{var}_await"),
            call=AWAIT_CALLBACK,
            args={
                "event_source": webhook_event_source(compilation, node),
                "seconds": wait_seconds(compilation.config, node.data.response_wait, node.data.response_wait_unit),
                "correlation_id": "${exeId}",
            },
            result=event,
        ),
        assign(namer.step(f"{var}_store"), {var: f"${{{event}}}"}),
    ]
    tctx.args.register(var)
    steps.append(continuation_call(compilation, node, NEXT_STEP, tctx))
    return [BlockStep(name=var, steps=steps)]
