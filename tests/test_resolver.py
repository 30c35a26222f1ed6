"""
Tests for {{reference}} substitution and path lookup.
"""

import pytest

from knowflow.errors import TemplateResolutionError
from knowflow.providers import TokenUsage
from knowflow.resolver import find_references, lookup, resolve_value, stringify, substitute


@pytest.fixture
def scope():
    return {
        "input": {"query": "What is X?", "count": 10, "tags": ["a", "b"]},
        "llm-1": {"text": "answer", "usage": TokenUsage(totalTokens=42)},
        "kb-1": {"results": [{"title": "first"}, {"title": "second"}]},
        "empty": None,
    }


class TestLookup:
    """Test dotted path traversal."""

    def test_nested_mapping(self, scope):
        assert lookup("input.query", scope) == (True, "What is X?")

    def test_hyphenated_node_id(self, scope):
        assert lookup("llm-1.text", scope) == (True, "answer")

    def test_list_index(self, scope):
        assert lookup("kb-1.results.1.title", scope) == (True, "second")

    def test_length_of_list(self, scope):
        assert lookup("input.tags.length", scope) == (True, 2)

    def test_attribute_access(self, scope):
        assert lookup("llm-1.usage.totalTokens", scope) == (True, 42)

    def test_missing_intermediate_short_circuits(self, scope):
        assert lookup("missing.deeper.path", scope) == (False, None)
        assert lookup("input.nope.deeper", scope) == (False, None)

    def test_index_out_of_range(self, scope):
        assert lookup("kb-1.results.5", scope) == (False, None)

    def test_none_is_found(self, scope):
        assert lookup("empty", scope) == (True, None)

    def test_private_attributes_are_hidden(self, scope):
        assert lookup("llm-1.usage.__class__", scope) == (False, None)


class TestSubstitute:
    """Test string substitution."""

    def test_replaces_reference(self, scope):
        assert substitute("Q: {{input.query}}", scope) == "Q: What is X?"

    def test_whitespace_inside_braces(self, scope):
        assert substitute("{{  input.count }} items", scope) == "10 items"

    def test_unknown_reference_left_verbatim(self, scope):
        template = "Hello {{unknown.path}} and {{ input.query }}"
        assert substitute(template, scope) == "Hello {{unknown.path}} and What is X?"

    def test_idempotent_without_tokens(self, scope):
        text = "No templates here { not one } }}{{"
        assert substitute(text, scope) == text
        assert substitute(substitute(text, scope), scope) == text

    def test_collects_warnings(self, scope):
        warnings = []
        substitute("{{nope.value}}", scope, warnings=warnings, node_id="llm-2")
        assert len(warnings) == 1
        assert warnings[0].reference == "nope.value"
        assert warnings[0].node_id == "llm-2"
        assert "nope.value" in str(warnings[0])

    def test_warning_is_logged(self, scope, caplog):
        substitute("{{nope}}", scope)
        assert "Unresolved template reference" in caplog.text

    def test_strict_mode_raises(self, scope):
        with pytest.raises(TemplateResolutionError) as exc_info:
            substitute("{{nope.value}}", scope, strict=True)
        assert exc_info.value.reference == "nope.value"

    def test_structured_values_render_as_json(self, scope):
        assert substitute("{{input.tags}}", scope) == '["a", "b"]'

    def test_none_renders_empty(self, scope):
        assert substitute("[{{empty}}]", scope) == "[]"

    def test_non_string_passthrough(self, scope):
        assert substitute(5, scope) == 5


class TestResolveValue:
    """Test recursive resolution."""

    def test_single_token_keeps_raw_value(self, scope):
        assert resolve_value("{{input.tags}}", scope) == ["a", "b"]
        assert resolve_value("{{ input.count }}", scope) == 10

    def test_nested_structures(self, scope):
        value = {"q": "{{input.query}}", "items": ["{{input.count}}", "n={{input.count}}"], "n": 3}
        assert resolve_value(value, scope) == {"q": "What is X?", "items": [10, "n=10"], "n": 3}

    def test_unresolved_single_token_stays_verbatim(self, scope):
        assert resolve_value("{{nope}}", scope) == "{{nope}}"


def test_stringify():
    assert stringify(True) == "true"
    assert stringify(3.5) == "3.5"
    assert stringify({"a": 1}) == '{"a": 1}'


def test_find_references():
    assert find_references("{{a.b}} and {{ c }}") == ["a.b", "c"]
