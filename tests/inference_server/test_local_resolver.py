"""
Tests for local type resolution against the owner component source.
"""

import sys
from pathlib import Path

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from bindinfer.inference_server.models.inference_models import Confidence, InferenceContext, TypeSource
from bindinfer.inference_server.tools.local_resolver import (
    LocalTypeResolver,
    element_type,
    find_component_class,
    parse_member_chain,
)
from bindinfer.inference_server.tools.project_cache import AnalysisContextCache
from bindinfer.inference_server.tools.typescript_parser import TypeScriptParser

PARENT_COMPONENT_SIMPLE = """import { Component, signal } from '@angular/core';

interface User {
  name: string;
  age: number;
  email?: string;
  isActive: boolean;
}

@Component({
  selector: 'app-parent',
  template: '<div></div>',
})
export class ParentComponent {
  user: User = { name: 'Ada', age: 36, isActive: true };
  items: string[] = [];
  users: Array<User> = [];
  count: number = 0;
  title = 'Parent';
  isEnabled: boolean = true;
  createdAt: Date = new Date();
  selected: User | null = null;
  counter = signal(0);
  total: Signal<number>;

  constructor(private readonly service: UserService) {}

  get displayName(): string {
    return this.user.name;
  }

  handleClick(event: MouseEvent): void {}

  handleSubmit(event: SubmitEvent) {}

  handleCustom(data: { id: number; value: string }): void {}

  getTotal(): number {
    return this.count;
  }
}

class UserService {
  currentUser: User;
}
"""


@pytest.fixture
def owner_file(tmp_path):
    path = tmp_path / "parent.component.ts"
    path.write_text(PARENT_COMPONENT_SIMPLE)
    return str(path)


@pytest.fixture
def resolver():
    return LocalTypeResolver(AnalysisContextCache())


class TestDescribe:
    """Hover-style signatures for expressions."""

    def test_component_property(self, resolver, owner_file):
        assert resolver.describe(owner_file, "count") == "(property) ParentComponent.count: number"

    def test_nested_interface_member(self, resolver, owner_file):
        assert resolver.describe(owner_file, "user.name") == "(property) User.name: string"

    def test_optional_member(self, resolver, owner_file):
        assert resolver.describe(owner_file, "user.email") == "(property) User.email?: string"

    def test_method_call(self, resolver, owner_file):
        signature = resolver.describe(owner_file, "handleClick($event)")
        assert signature == "(method) ParentComponent.handleClick(event: MouseEvent): void"

    def test_unknown_member(self, resolver, owner_file):
        assert resolver.describe(owner_file, "user.missing") is None
        assert resolver.describe(owner_file, "nothing") is None

    def test_not_a_member_chain(self, resolver, owner_file):
        assert resolver.describe(owner_file, "count + 1") is None

    def test_missing_owner_file(self, resolver, tmp_path):
        assert resolver.describe(str(tmp_path / "gone.ts"), "count") is None


class TestInfer:
    """Local inference results."""

    def infer(self, resolver, owner_file, expression):
        results = resolver.infer(InferenceContext(owner_file, {"value": expression}))
        return results["value"]

    @pytest.mark.parametrize(
        "expression,expected",
        [
            ("user.name", "string"),
            ("user.age", "number"),
            ("items", "string[]"),
            ("items.length", "number"),
            ("items[0]", "string"),
            ("users[0].name", "string"),
            ("title", "string"),
            ("title.length", "number"),
            ("createdAt", "Date"),
            ("selected?.isActive", "boolean"),
            ("!isEnabled", "boolean"),
            ("handleClick($event)", "MouseEvent"),
            ("handleSubmit($event)", "SubmitEvent"),
            ("handleCustom($event)", "{ id: number; value: string }"),
            ("getTotal() ", "number"),
            ("displayName", "string"),
            ("counter()", "unknown"),
            ("total()", "number"),
            ("service.currentUser.name", "string"),
            ("count | number", "number"),
        ],
    )
    def test_expression_types(self, resolver, owner_file, expression, expected):
        assert self.infer(resolver, owner_file, expression).type == expected

    def test_inferred_result_fields(self, resolver, owner_file):
        result = self.infer(resolver, owner_file, "user.name")

        assert result.property_name == "value"
        assert result.is_inferred is True
        assert result.confidence == Confidence.HIGH
        assert result.source == TypeSource.LOCAL

    def test_nullable_property(self, resolver, owner_file):
        result = self.infer(resolver, owner_file, "selected")

        assert result.type == "User | null"
        assert result.is_inferred is True

    def test_unresolved_is_unknown(self, resolver, owner_file):
        result = self.infer(resolver, owner_file, "user.missing")

        assert result.type == "unknown"
        assert result.is_inferred is False
        assert result.confidence == Confidence.LOW

    def test_every_binding_has_an_entry(self, resolver, owner_file):
        bindings = {"a": "user.name", "b": "nothing", "c": "handleClick($event)"}
        results = resolver.infer(InferenceContext(owner_file, bindings))

        assert list(results) == ["a", "b", "c"]


class TestHelpers:
    """Member chains, element types and component detection."""

    def test_parse_member_chain(self):
        assert parse_member_chain("user?.orders[0].total") == [
            ("member", "user"),
            ("member", "orders"),
            ("index", "0"),
            ("member", "total"),
        ]
        assert parse_member_chain("save(item, true)") == [("member", "save"), ("call", "item, true")]
        assert parse_member_chain("user!.name") == [("member", "user"), ("member", "name")]

    def test_parse_member_chain_rejects_operators(self):
        assert parse_member_chain("a + b") is None
        assert parse_member_chain("'literal'") is None
        assert parse_member_chain("items[0") is None

    @pytest.mark.parametrize(
        "type_text,expected",
        [
            ("string[]", "string"),
            ("Array<User>", "User"),
            ("ReadonlyArray<number>", "number"),
            ("(string | number)[]", "string | number"),
            ("User[] | null", "User"),
            ("User", None),
        ],
    )
    def test_element_type(self, type_text, expected):
        assert element_type(type_text) == expected

    def test_find_component_class_prefers_decorated(self):
        source = "export class Helper {}\n@Component({})\nexport class WidgetComponent {}\n"
        result = TypeScriptParser().parse_source(source, "widget.ts")

        assert find_component_class(result.tree, result.source) == "WidgetComponent"

    def test_find_component_class_falls_back_to_exported(self):
        source = "class Internal {}\nexport class Exported {}\n"
        result = TypeScriptParser().parse_source(source, "plain.ts")

        assert find_component_class(result.tree, result.source) == "Exported"

    def test_find_component_class_none(self):
        result = TypeScriptParser().parse_source("export const x = 1;", "const.ts")

        assert find_component_class(result.tree, result.source) is None
