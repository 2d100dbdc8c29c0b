"""
Temporary probe components for the type oracle.

A language server can only answer hover requests for expressions that live in
a real component. The manager writes a throwaway standalone component that
embeds the template, hands out its location, and deletes it again.
"""

import asyncio
import logging
import os
import re
import secrets
import time
from pathlib import Path

from .._security import get_project_root
from ..errors import ArtifactError
from ..models.inference_models import Binding, BindingKind, ComponentHost, Position, TemporaryArtifact

logger = logging.getLogger(__name__)

TEMPLATE_MARKER = "template: `"
_IDENTIFIER = re.compile(r"[A-Za-z_$][\w$]*")


def escape_template_literal(text: str) -> str:
    """Escape text for embedding in a JavaScript template literal."""
    return text.replace("\\", "\\\\").replace("`", "\\`").replace("${", "\\${")


def escaped_offset(text: str, offset: int) -> int:
    """Offset inside escape_template_literal(text) matching offset inside text."""
    return len(escape_template_literal(text[:offset]))


def offset_to_position(text: str, offset: int) -> Position:
    """Convert a character offset to a 0-based line/column pair."""
    line = text.count("\n", 0, offset)
    line_start = text.rfind("\n", 0, offset) + 1
    return Position(line=line, column=offset - line_start)


def hover_anchor(expression: str) -> int:
    """
    Offset inside the expression where a hover should be requested.

    Pipes are ignored. A call anchors on its callee, and a member chain on its
    last member, so "user?.name | uppercase" anchors on "name" and
    "save($event)" on "save".
    """
    end = len(expression)
    depth = 0
    quote = None
    call_start = None
    for i, char in enumerate(expression):
        if quote:
            if char == quote and expression[i - 1] != "\\":
                quote = None
            continue
        if char in "'\"`":
            quote = char
        elif char in "([{":
            if char == "(" and depth == 0 and call_start is None:
                call_start = i
            depth += 1
        elif char in ")]}":
            depth -= 1
        elif char == "|" and depth == 0:
            if expression[i + 1 : i + 2] != "|" and expression[i - 1 : i] != "|":
                end = i
                break

    target_end = call_start if call_start is not None else end
    anchor = 0
    depth = 0
    i = 0
    while i < target_end:
        char = expression[i]
        if char in "'\"`":
            closing = expression.find(char, i + 1)
            i = target_end if closing < 0 else closing + 1
            continue
        if char in "([{":
            depth += 1
        elif char in ")]}":
            depth -= 1
        elif depth == 0:
            match = _IDENTIFIER.match(expression, i)
            if match and (i == 0 or not (expression[i - 1].isalnum() or expression[i - 1] in "_$")):
                anchor = i
                i = match.end()
                continue
        i += 1
    return anchor


class TemporaryDocumentManager:
    """Creates and removes probe components under the workspace scratch directory."""

    def __init__(self, scratch_dir: str = ".bindinfer/tmp", project_root: str | None = None):
        self.scratch_dir = scratch_dir
        self.project_root = project_root
        self._artifacts: dict[str, TemporaryArtifact] = {}

    @property
    def scratch_path(self) -> Path:
        root = self.project_root or get_project_root() or os.getcwd()
        return Path(root).resolve() / self.scratch_dir

    @property
    def active_artifacts(self) -> list[TemporaryArtifact]:
        return list(self._artifacts.values())

    def build_probe_template(self, bindings: list[Binding]) -> str:
        """Render one element per binding so every expression appears in a binding position."""
        return self.build_probe(bindings)[0]

    def build_probe(self, bindings: list[Binding]) -> tuple[str, list[int]]:
        """
        Probe template plus, for each binding, the offset where its attribute value starts.

        Offsets point just after the opening `="` so a search from there can
        never match the attribute name.
        """
        lines = ["<div>"]
        value_starts: list[int] = []
        offset = len(lines[0]) + 1
        for binding in bindings:
            if binding.kind == BindingKind.OUTPUT:
                opening, closing = f'  <button ({binding.property_name})="', '">Button</button>'
            elif binding.kind == BindingKind.MODEL:
                opening, closing = f'  <input [({binding.property_name})]="', '" />'
            else:
                opening, closing = f'  <span [{binding.property_name}]="', '">Text</span>'
            value_starts.append(offset + len(opening))
            line = f"{opening}{binding.expression}{closing}"
            lines.append(line)
            offset += len(line) + 1
        lines.append("</div>")
        return "\n".join(lines), value_starts

    def render_component(self, template_text: str, artifact_path: Path, host: ComponentHost | None = None) -> str:
        """Standalone component source embedding the template verbatim."""
        suffix = artifact_path.name.split(".", 1)[0].replace("type-probe-", "")
        imports = ["import { Component } from '@angular/core';"]
        heritage = ""
        if host is not None:
            imports.append(f"import {{ {host.class_name} }} from '{self._import_path(artifact_path, host.file_path)}';")
            heritage = f" extends {host.class_name}"

        return (
            "\n".join(imports)
            + "\n\n"
            + "@Component({\n"
            + f"  selector: 'app-type-probe-{suffix}',\n"
            + "  standalone: true,\n"
            + f"  {TEMPLATE_MARKER}{escape_template_literal(template_text)}`,\n"
            + "})\n"
            + f"export class TypeProbeComponent{heritage} {{}}\n"
        )

    @staticmethod
    def _import_path(artifact_path: Path, target_file: str) -> str:
        target = Path(target_file)
        target = target.with_name(target.name.removesuffix(".ts").removesuffix(".tsx"))
        relative = os.path.relpath(target, artifact_path.parent).replace(os.sep, "/")
        return relative if relative.startswith(".") else f"./{relative}"

    async def materialize(self, template_text: str, host: ComponentHost | None = None) -> TemporaryArtifact:
        """
        Write a probe component embedding the template.

        Raises:
            ArtifactError: when the scratch directory or file cannot be written
        """
        scratch = self.scratch_path
        name = f"type-probe-{int(time.time() * 1000)}-{secrets.token_hex(4)}.component.ts"
        path = scratch / name
        content = self.render_component(template_text, path, host)

        def write() -> None:
            scratch.mkdir(parents=True, exist_ok=True)
            path.write_text(content, encoding="utf-8")

        try:
            await asyncio.to_thread(write)
        except OSError as e:
            raise ArtifactError(f"Cannot create temporary component in {scratch}: {e}") from e

        artifact = TemporaryArtifact(
            path=str(path),
            uri=path.as_uri(),
            created_at=time.time(),
            content=content,
            template_offset=content.index(TEMPLATE_MARKER) + len(TEMPLATE_MARKER),
            template_text=template_text,
            host=host,
        )
        self._artifacts[artifact.path] = artifact
        logger.debug(f"Created temporary component {artifact.path}")
        return artifact

    def locate(self, expression: str, template_text: str) -> Position:
        """Position of the expression inside the template, (0, 0) when absent."""
        index = template_text.find(expression) if expression else -1
        if index < 0:
            return Position(0, 0)
        return offset_to_position(template_text, index)

    def position_in_artifact(self, artifact: TemporaryArtifact, expression: str, template_offset: int = 0) -> Position:
        """
        Hover position for an expression inside the artifact file.

        The search starts template_offset characters into the embedded, escaped
        template and the result points at the expression's hover anchor.
        """
        escaped = escape_template_literal(expression)
        if not escaped:
            return Position(0, 0)
        index = artifact.content.find(escaped, artifact.template_offset + max(template_offset, 0))
        if index < 0:
            return Position(0, 0)
        return offset_to_position(artifact.content, index + hover_anchor(escaped))

    async def dispose(self, artifact: TemporaryArtifact | str | None) -> None:
        """Delete an artifact. Never raises; a missing file counts as success."""
        if artifact is None:
            return
        path = artifact.path if isinstance(artifact, TemporaryArtifact) else str(artifact)
        self._artifacts.pop(path, None)
        if not path:
            return

        try:
            await asyncio.to_thread(Path(path).unlink, True)
            logger.debug(f"Removed temporary component {path}")
        except (OSError, ValueError) as e:
            logger.warning(f"Failed to remove temporary component {path}: {e}")

    async def dispose_all(self) -> None:
        """Delete every artifact this manager created and has not disposed yet."""
        for artifact in list(self._artifacts.values()):
            await self.dispose(artifact)
