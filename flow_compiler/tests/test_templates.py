from __future__ import annotations

import pytest

from flow_compiler.expr.templates import (
    parse_reference_string,
    referenced_values,
    single_placeholder,
    to_engine_expression,
    transform_value,
)


def test_single_placeholder_becomes_plain_reference() -> None:
    assert to_engine_expression("{{ txt_welcome.body.text }}") == "${txt_welcome.body.text}"


def test_mixed_text_becomes_concatenation() -> None:
    assert to_engine_expression("Hi {{tg.name}}!") == '${"Hi " + string(tg.name) + "!"}'


def test_text_without_placeholders_is_unchanged() -> None:
    assert to_engine_expression("plain text") == "plain text"


def test_bracket_accessors_render_in_engine_syntax() -> None:
    expression = to_engine_expression("{{tg.items[0]['first name']}}")
    assert expression == '${tg.items[0]["first name"]}'


def test_transform_value_walks_nested_structures() -> None:
    value = {"to": "{{tg.phone}}", "lines": ["a", "{{tg.name}} b"], "count": 3}
    assert transform_value(value) == {
        "to": "${tg.phone}",
        "lines": ["a", '${string(tg.name) + " b"}'],
        "count": 3,
    }


def test_referenced_values_deduplicates_in_order() -> None:
    value = {"a": "{{x.y}} and {{x.y}}", "b": ["{{z}}"]}
    assert referenced_values(value) == {"x.y": "${x.y}", "z": "${z}"}


def test_single_placeholder_rejects_mixed_text() -> None:
    assert single_placeholder("{{a}} tail") is None
    assert single_placeholder(" {{a.b}} ").render() == "a.b"


@pytest.mark.parametrize("expr", ["", "a[", "a[]", "a[b c]"])
def test_invalid_references_raise(expr: str) -> None:
    with pytest.raises(ValueError):
        parse_reference_string(expr)


def test_positional_template_parameters_stay_literal() -> None:
    text = "Hello {{1}}, your order {{2}} shipped"
    assert to_engine_expression(text) == text
    assert referenced_values(text) == {}


def test_positional_parameters_mix_with_references() -> None:
    assert to_engine_expression("Hi {{1}} from {{tg.shop}}") == '${"Hi {{1}} from " + string(tg.shop)}'
