"""
Tests for the inference orchestrator.
"""

import re
import sys
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

# Add src to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent / "src"))

from bindinfer.inference_server.errors import ARTIFACT_ERROR, EXTRACTION_FAILURE, INVALID_INPUT, QUERY_FAILURE
from bindinfer.inference_server.models.inference_models import Confidence, InferenceContext, TypeSource
from bindinfer.inference_server.tools.hover_client import TypeQueryClient
from bindinfer.inference_server.tools.inference_engine import InferenceOrchestrator
from bindinfer.inference_server.tools.language_server import uri_to_path
from bindinfer.inference_server.tools.project_cache import AnalysisContextCache
from bindinfer.inference_server.tools.template_manager import TemporaryDocumentManager

IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")


def ts(signature: str) -> str:
    return f"```typescript\n{signature}\n```"


class WordOracle:
    """Answers hovers by looking up the identifier found at the requested position."""

    def __init__(self, answers: dict[str, list[str]]):
        self.answers = answers
        self.words: list[str] = []
        self.contents: list[str] = []
        self.positions: list[tuple[int, int]] = []

    async def hover(self, document_uri, line, column):
        content = uri_to_path(document_uri).read_text()
        self.contents.append(content)
        self.positions.append((line, column))
        match = IDENTIFIER.match(content.split("\n")[line], column)
        word = match.group(0) if match else ""
        self.words.append(word)
        return list(self.answers.get(word, []))


def scratch_files(root: Path) -> list[Path]:
    scratch = root / ".bindinfer" / "tmp"
    return list(scratch.iterdir()) if scratch.exists() else []


def assert_inside_attribute_values(oracle: WordOracle) -> None:
    for content, (line, column) in zip(oracle.contents, oracle.positions):
        text = content.split("\n")[line]
        value_start = text.index('="') + 2
        value_end = text.index('"', value_start)
        assert value_start <= column < value_end, text


class TestInferenceOrchestrator:
    """End-to-end inference with a fake oracle."""

    @pytest.fixture
    def owner_file(self, tmp_path):
        path = tmp_path / "src" / "app" / "app.component.ts"
        path.parent.mkdir(parents=True)
        path.write_text(
            "import { Component } from '@angular/core';\n"
            "\n"
            "@Component({ selector: 'app-root', template: '' })\n"
            "export class AppComponent {\n"
            "  user = { name: 'Ada' };\n"
            "  handleClick(event: MouseEvent): void {}\n"
            "}\n"
        )
        return str(path)

    def make_orchestrator(self, tmp_path, oracle, cache=None):
        return InferenceOrchestrator(
            document_manager=TemporaryDocumentManager(project_root=str(tmp_path)),
            query_client=TypeQueryClient(oracle),
            cache=cache,
            timeout_ms=1000,
        )

    @pytest.mark.asyncio
    async def test_property_binding_is_inferred(self, tmp_path, owner_file):
        oracle = WordOracle({"name": [ts("(property) name: string")]})
        orchestrator = self.make_orchestrator(tmp_path, oracle)

        results = await orchestrator.infer(InferenceContext(owner_file, {"userName": "user.name"}))

        result = results["userName"]
        assert result.property_name == "userName"
        assert result.type == "string"
        assert result.is_inferred is True
        assert result.confidence == Confidence.HIGH
        assert result.source == TypeSource.LANGUAGE_SERVICE
        assert oracle.words == ["name"]

    @pytest.mark.asyncio
    async def test_empty_hover_gives_unknown(self, tmp_path, owner_file):
        orchestrator = self.make_orchestrator(tmp_path, WordOracle({}))

        report = await orchestrator.infer_with_report(InferenceContext(owner_file, {"onClick": "handleClick($event)"}))

        result = report.results["onClick"]
        assert result.type == "unknown"
        assert result.is_inferred is False
        assert result.confidence == Confidence.LOW
        assert report.issues[0].code == QUERY_FAILURE
        assert report.issues[0].property_name == "onClick"

    @pytest.mark.asyncio
    async def test_every_failing_binding_still_removes_artifact(self, tmp_path, owner_file):
        oracle = WordOracle({})
        orchestrator = self.make_orchestrator(tmp_path, oracle)

        report = await orchestrator.infer_with_report(
            InferenceContext(owner_file, {"userName": "user.name", "onClick": "handleClick($event)"})
        )

        assert all(not result.is_inferred for result in report.results.values())
        assert [issue.property_name for issue in report.issues] == ["userName", "onClick"]
        assert len(oracle.words) == 2
        assert scratch_files(tmp_path) == []
        assert orchestrator.document_manager.active_artifacts == []

    @pytest.mark.asyncio
    async def test_hover_lands_in_value_when_name_contains_expression(self, tmp_path, owner_file):
        oracle = WordOracle({"user": [ts("(property) user: User")]})
        orchestrator = self.make_orchestrator(tmp_path, oracle)

        results = await orchestrator.infer(InferenceContext(owner_file, {"user": "user", "userName": "user"}))

        assert results["user"].type == "User"
        assert results["userName"].type == "User"
        assert len(oracle.positions) == 2
        assert_inside_attribute_values(oracle)

    @pytest.mark.asyncio
    async def test_escaped_characters_do_not_shift_later_bindings(self, tmp_path, owner_file):
        oracle = WordOracle({"user": [ts("(property) user: User")]})
        orchestrator = self.make_orchestrator(tmp_path, oracle)

        results = await orchestrator.infer(
            InferenceContext(owner_file, {"fence": "'```' + '\\\\'", "user": "user"})
        )

        assert results["user"].type == "User"
        assert len(oracle.positions) == 2
        assert_inside_attribute_values(oracle)

    @pytest.mark.asyncio
    async def test_every_binding_gets_an_entry(self, tmp_path, owner_file):
        oracle = WordOracle(
            {
                "name": [ts("(property) name: string")],
                "handleClick": [ts("(method) AppComponent.handleClick(event: MouseEvent): void")],
            }
        )
        orchestrator = self.make_orchestrator(tmp_path, oracle)
        bindings = {"userName": "user.name", "clicked": "handleClick($event)", "missing": "nothing.here"}

        results = await orchestrator.infer(InferenceContext(owner_file, bindings))

        assert set(results) == set(bindings)
        assert results["userName"].type == "string"
        assert results["clicked"].type == "MouseEvent"
        assert results["missing"].is_inferred is False

    @pytest.mark.asyncio
    async def test_probe_component_is_removed(self, tmp_path, owner_file):
        oracle = WordOracle({"name": [ts("(property) name: string")]})
        orchestrator = self.make_orchestrator(tmp_path, oracle)

        await orchestrator.infer(InferenceContext(owner_file, {"userName": "user.name"}))

        assert scratch_files(tmp_path) == []
        assert orchestrator.document_manager.active_artifacts == []

    @pytest.mark.asyncio
    async def test_empty_bindings(self, tmp_path, owner_file):
        oracle = WordOracle({})
        orchestrator = self.make_orchestrator(tmp_path, oracle)

        assert await orchestrator.infer(InferenceContext(owner_file, {})) == {}
        assert oracle.words == []
        assert scratch_files(tmp_path) == []

    @pytest.mark.asyncio
    async def test_blank_owner_path(self, tmp_path):
        orchestrator = self.make_orchestrator(tmp_path, WordOracle({}))

        report = await orchestrator.infer_with_report(InferenceContext("  ", {"userName": "user.name"}))

        assert report.results["userName"].is_inferred is False
        assert report.issues[0].code == INVALID_INPUT
        assert scratch_files(tmp_path) == []

    @pytest.mark.asyncio
    async def test_artifact_failure_gives_all_unknown(self, tmp_path, owner_file):
        orchestrator = self.make_orchestrator(tmp_path, WordOracle({}))
        bindings = {"a": "user.name", "b": "handleClick($event)"}

        with patch.object(orchestrator.document_manager, "materialize", AsyncMock(side_effect=OSError("disk full"))):
            report = await orchestrator.infer_with_report(InferenceContext(owner_file, bindings))

        assert set(report.results) == {"a", "b"}
        assert all(not result.is_inferred for result in report.results.values())
        assert report.issues[0].code == ARTIFACT_ERROR

    @pytest.mark.asyncio
    async def test_cleanup_failure_is_swallowed(self, tmp_path, owner_file):
        oracle = WordOracle({"name": [ts("(property) name: string")]})
        orchestrator = self.make_orchestrator(tmp_path, oracle)

        with patch.object(orchestrator.document_manager, "dispose", AsyncMock(side_effect=OSError("busy"))):
            results = await orchestrator.infer(InferenceContext(owner_file, {"userName": "user.name"}))

        assert results["userName"].type == "string"

    @pytest.mark.asyncio
    async def test_one_failing_binding_does_not_affect_others(self, tmp_path, owner_file):
        class FlakyOracle(WordOracle):
            async def hover(self, document_uri, line, column):
                answers = await super().hover(document_uri, line, column)
                if self.words[-1] == "broken":
                    raise RuntimeError("analyzer crashed")
                return answers

        oracle = FlakyOracle({"name": [ts("(property) name: string")]})
        orchestrator = self.make_orchestrator(tmp_path, oracle)

        report = await orchestrator.infer_with_report(
            InferenceContext(owner_file, {"first": "broken", "second": "user.name"})
        )

        assert report.results["first"].is_inferred is False
        assert report.results["second"].type == "string"
        assert [issue.property_name for issue in report.issues] == ["first"]

    @pytest.mark.asyncio
    async def test_same_expression_twice_uses_own_line(self, tmp_path, owner_file):
        oracle = WordOracle({"name": [ts("(property) name: string")]})
        orchestrator = self.make_orchestrator(tmp_path, oracle)

        results = await orchestrator.infer(InferenceContext(owner_file, {"a": "user.name", "b": "user.name"}))

        assert results["a"].type == "string"
        assert results["b"].type == "string"
        assert len(oracle.words) == 2

    @pytest.mark.asyncio
    async def test_no_type_in_hover(self, tmp_path, owner_file):
        oracle = WordOracle({"name": [ts("AppComponent")]})
        orchestrator = self.make_orchestrator(tmp_path, oracle)

        report = await orchestrator.infer_with_report(InferenceContext(owner_file, {"userName": "user.name"}))

        assert report.results["userName"].is_inferred is False
        assert report.issues[0].code == EXTRACTION_FAILURE

    @pytest.mark.asyncio
    async def test_any_is_low_confidence(self, tmp_path, owner_file):
        oracle = WordOracle({"payload": [ts("(property) payload: any")]})
        orchestrator = self.make_orchestrator(tmp_path, oracle)

        results = await orchestrator.infer(InferenceContext(owner_file, {"data": "payload"}))

        assert results["data"].type == "any"
        assert results["data"].is_inferred is True
        assert results["data"].confidence == Confidence.LOW

    @pytest.mark.asyncio
    async def test_probe_extends_owner_component(self, tmp_path, owner_file):
        oracle = WordOracle({"name": [ts("(property) name: string")]})
        orchestrator = self.make_orchestrator(tmp_path, oracle, cache=AnalysisContextCache())

        await orchestrator.infer(InferenceContext(owner_file, {"userName": "user.name"}))

        content = oracle.contents[0]
        assert "import { AppComponent } from '../../src/app/app.component';" in content
        assert "export class TypeProbeComponent extends AppComponent {}" in content
