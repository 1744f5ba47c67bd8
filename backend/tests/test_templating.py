"""Tests for the template resolver and the expression evaluator."""

from __future__ import annotations

from blockflow.templating.engine import (
    has_template,
    render_template_str,
    resolve,
    resolve_path,
    single_placeholder,
    split_path,
    stringify,
)
from blockflow.templating.expressions import evaluate_condition


CTX = {
    "formData": {"email": "ada@example.com", "age": "21", "tags": ["a", "b"]},
    "user": {"name": "Ada", "roles": ["admin", "editor"]},
    "count": 3,
    "flag": True,
    "empty": "",
}


class TestPaths:
    def test_split_dotted_and_bracketed(self):
        assert split_path("a.items[0].b") == ["a", "items", "0", "b"]
        assert split_path("a['x'].y") == ["a", "x", "y"]

    def test_nested_lookup(self):
        assert resolve_path("formData.email", CTX) == "ada@example.com"

    def test_context_prefix_is_optional(self):
        assert resolve_path("context.formData.email", CTX) == "ada@example.com"

    def test_list_index_and_length(self):
        assert resolve_path("user.roles[1]", CTX) == "editor"
        assert resolve_path("user.roles.length", CTX) == 2
        assert resolve_path("user.roles[5]", CTX) is None

    def test_missing_segment_is_none(self):
        assert resolve_path("formData.phone.number", CTX) is None
        assert resolve_path("count.value", CTX) is None


class TestRender:
    def test_string_interpolation(self):
        assert render_template_str("Hi {{user.name}}!", CTX) == "Hi Ada!"

    def test_unresolved_placeholder_renders_empty(self):
        assert render_template_str("Phone: {{formData.phone}}", CTX) == "Phone: "

    def test_inline_default(self):
        assert render_template_str("{{formData.phone | 'n/a'}}", CTX) == "n/a"

    def test_values_are_stringified(self):
        assert render_template_str("{{count}}", CTX) == "3"
        assert render_template_str("{{flag}}", CTX) == "true"
        assert render_template_str("{{user.roles}}", CTX) == '["admin", "editor"]'

    def test_stringify_none(self):
        assert stringify(None) == ""

    def test_resolve_walks_structures(self):
        value = {"to": "{{formData.email}}", "tags": ["{{user.name}}", 4], "n": None}
        assert resolve(value, CTX) == {"to": "ada@example.com", "tags": ["Ada", 4], "n": None}

    def test_resolve_leaves_plain_values(self):
        assert resolve("no templates here", CTX) == "no templates here"
        assert resolve(42, CTX) == 42

    def test_resolve_is_idempotent_on_plain_results(self):
        once = resolve({"greeting": "Hello {{user.name}}"}, CTX)
        assert resolve(once, CTX) == once

    def test_resolve_never_raises_on_odd_input(self):
        assert resolve("{{}}", CTX) == "{{}}"
        assert resolve("{{ formData.missing.deep }}", CTX) == ""

    def test_placeholder_helpers(self):
        assert has_template("x {{a}}")
        assert not has_template("x")
        assert single_placeholder(" {{ a.b }} ") == "a.b"
        assert single_placeholder("x {{a}}") is None


class TestExpressions:
    def test_numeric_comparison_against_string_field(self):
        assert evaluate_condition("{{formData.age}} >= 18", CTX) is True
        assert evaluate_condition("{{formData.age}} < 18", CTX) is False

    def test_string_equality(self):
        assert evaluate_condition("{{user.name}} == 'Ada'", CTX) is True
        assert evaluate_condition("{{user.name}} != 'Ada'", CTX) is False

    def test_contains(self):
        assert evaluate_condition("{{formData.email}} contains 'example'", CTX) is True

    def test_unary_emptiness(self):
        assert evaluate_condition("is_empty {{empty}}", CTX) is True
        assert evaluate_condition("is_not_empty {{formData.email}}", CTX) is True

    def test_boolean_connectives(self):
        assert evaluate_condition("{{count}} > 1 && {{flag}} == true", CTX) is True
        assert evaluate_condition("{{count}} > 5 || {{user.name}} == 'Ada'", CTX) is True
        assert evaluate_condition("{{count}} > 5 and {{flag}} == true", CTX) is False

    def test_negation_and_literals(self):
        assert evaluate_condition("!false", CTX) is True
        assert evaluate_condition("yes", CTX) is True
        assert evaluate_condition("0", CTX) is False
        assert evaluate_condition("", CTX) is False

    def test_bare_path_truthiness(self):
        assert evaluate_condition("flag", CTX) is True
        assert evaluate_condition("{{missing}}", CTX) is False

    def test_type_mismatch_is_false(self):
        assert evaluate_condition("{{user.name}} > 3", CTX) is False
