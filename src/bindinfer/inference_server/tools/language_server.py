"""
Language server hover oracle.

Minimal LSP client speaking JSON-RPC over stdio with Content-Length framing,
enough to open a document, ask for hover at a position and close it again.
Meant for the Angular language server (``ngserver --stdio ...``), but any
server that answers textDocument/hover for TypeScript files works.
"""

import asyncio
import json
import logging
import os
import shlex
from pathlib import Path
from typing import Any
from urllib.parse import unquote, urlparse

from ..errors import QueryFailure, QueryTimeout

logger = logging.getLogger(__name__)

HEADER_SEPARATOR = b"\r\n\r\n"


def encode_message(payload: dict[str, Any]) -> bytes:
    """Frame a JSON-RPC payload for the wire."""
    content = json.dumps(payload).encode("utf-8")
    return f"Content-Length: {len(content)}\r\n\r\n".encode("ascii") + content


async def read_message(reader: asyncio.StreamReader) -> dict[str, Any] | None:
    """Read one framed message. Returns None at end of stream."""
    try:
        header = await reader.readuntil(HEADER_SEPARATOR)
    except asyncio.IncompleteReadError:
        return None

    content_length = None
    for line in header.decode("ascii", errors="replace").split("\r\n"):
        name, _, value = line.partition(":")
        if name.strip().lower() == "content-length":
            content_length = int(value.strip())
    if content_length is None:
        raise QueryFailure("Language server message without Content-Length header")

    try:
        body = await reader.readexactly(content_length)
    except asyncio.IncompleteReadError:
        return None
    return json.loads(body.decode("utf-8"))


def hover_contents_to_text(contents: Any) -> list[str]:
    """
    Flatten LSP hover contents into markdown candidates.

    Handles MarkupContent, MarkedString (plain or language/value pair) and
    lists of MarkedString. Language-tagged strings become fenced blocks.
    """
    if contents is None:
        return []
    if isinstance(contents, str):
        return [contents] if contents.strip() else []
    if isinstance(contents, list):
        candidates = []
        for item in contents:
            candidates.extend(hover_contents_to_text(item))
        return candidates
    if isinstance(contents, dict):
        value = contents.get("value", "")
        if not value:
            return []
        if "language" in contents:
            return [f"```{contents['language']}\n{value}\n```"]
        return [value]
    return []


def uri_to_path(document_uri: str) -> Path:
    parsed = urlparse(document_uri)
    if parsed.scheme != "file":
        raise QueryFailure(f"Unsupported document URI: {document_uri}")
    return Path(unquote(parsed.path))


class LanguageServerClient:
    """
    Asynchronous LSP client over a subprocess's stdio.

    A background task reads messages and resolves pending requests by id.
    Requests from the server (configuration, progress) are answered with null.
    """

    def __init__(self, command: str | list[str], root_path: str, request_timeout: float = 10.0):
        self.command = shlex.split(command) if isinstance(command, str) else list(command)
        self.root_path = Path(root_path).resolve()
        self.request_timeout = request_timeout

        self._process: asyncio.subprocess.Process | None = None
        self._reader_task: asyncio.Task | None = None
        self._pending: dict[int, asyncio.Future] = {}
        self._request_id = 0
        self._write_lock = asyncio.Lock()
        self._start_lock = asyncio.Lock()
        self._initialized = False

    @property
    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def start(self) -> None:
        """Spawn the server and run the initialize handshake once."""
        async with self._start_lock:
            if self._initialized and self.is_running:
                return
            if not self.command:
                raise QueryFailure("No language server command configured")

            try:
                self._process = await asyncio.create_subprocess_exec(
                    *self.command,
                    stdin=asyncio.subprocess.PIPE,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.DEVNULL,
                    cwd=str(self.root_path),
                )
            except (FileNotFoundError, PermissionError) as e:
                raise QueryFailure(f"Cannot start language server {self.command[0]}: {e}") from e

            self._reader_task = asyncio.create_task(self._read_loop(self._process.stdout))

            await self.request(
                "initialize",
                {
                    "processId": os.getpid(),
                    "rootPath": str(self.root_path),
                    "rootUri": self.root_path.as_uri(),
                    "workspaceFolders": [{"uri": self.root_path.as_uri(), "name": self.root_path.name}],
                    "capabilities": {
                        "textDocument": {"hover": {"contentFormat": ["markdown", "plaintext"]}},
                    },
                },
            )
            await self.notify("initialized", {})
            self._initialized = True
            logger.info(f"Language server started: {' '.join(self.command)}")

    async def _send(self, payload: dict[str, Any]) -> None:
        if self._process is None or self._process.stdin is None:
            raise QueryFailure("Language server is not running")
        async with self._write_lock:
            try:
                self._process.stdin.write(encode_message(payload))
                await self._process.stdin.drain()
            except (BrokenPipeError, ConnectionResetError) as e:
                raise QueryFailure(f"Language server connection lost: {e}") from e

    async def request(self, method: str, params: dict[str, Any], timeout: float | None = None) -> Any:
        """Send a request and wait for its result."""
        self._request_id += 1
        request_id = self._request_id
        future = asyncio.get_running_loop().create_future()
        self._pending[request_id] = future

        try:
            await self._send({"jsonrpc": "2.0", "id": request_id, "method": method, "params": params})
            return await asyncio.wait_for(future, timeout or self.request_timeout)
        except TimeoutError as e:
            raise QueryTimeout(f"Language server did not answer {method}") from e
        finally:
            self._pending.pop(request_id, None)

    async def notify(self, method: str, params: dict[str, Any]) -> None:
        await self._send({"jsonrpc": "2.0", "method": method, "params": params})

    async def _read_loop(self, reader: asyncio.StreamReader) -> None:
        try:
            while True:
                message = await read_message(reader)
                if message is None:
                    break
                await self._handle_message(message)
        except (QueryFailure, ValueError) as e:
            logger.warning(f"Language server stream error: {e}")
        finally:
            for future in self._pending.values():
                if not future.done():
                    future.set_exception(QueryFailure("Language server exited"))
            self._initialized = False

    async def _handle_message(self, message: dict[str, Any]) -> None:
        if "id" in message and "method" in message:
            # Server to client request
            await self._send({"jsonrpc": "2.0", "id": message["id"], "result": None})
            return

        if "id" in message:
            future = self._pending.get(message["id"])
            if future is None or future.done():
                return
            if "error" in message:
                error = message["error"] or {}
                future.set_exception(QueryFailure(error.get("message", "Language server error")))
            else:
                future.set_result(message.get("result"))

    async def open_document(self, document_uri: str, text: str, language_id: str = "typescript") -> None:
        await self.notify(
            "textDocument/didOpen",
            {"textDocument": {"uri": document_uri, "languageId": language_id, "version": 1, "text": text}},
        )

    async def close_document(self, document_uri: str) -> None:
        await self.notify("textDocument/didClose", {"textDocument": {"uri": document_uri}})

    async def hover(self, document_uri: str, line: int, column: int) -> list[str]:
        """Hover at a position of an already opened document."""
        result = await self.request(
            "textDocument/hover",
            {"textDocument": {"uri": document_uri}, "position": {"line": line, "character": column}},
        )
        if not result:
            return []
        return hover_contents_to_text(result.get("contents"))

    async def aclose(self) -> None:
        """Shut the server down, killing it if it does not exit in time."""
        if self._process is None:
            return

        if self.is_running:
            try:
                await self.request("shutdown", {}, timeout=2.0)
                await self.notify("exit", {})
                await asyncio.wait_for(self._process.wait(), timeout=2.0)
            except (QueryFailure, QueryTimeout, TimeoutError):
                logger.debug("Language server did not shut down cleanly, killing it")
                if self._process.returncode is None:
                    self._process.kill()
                    await self._process.wait()

        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass

        self._process = None
        self._reader_task = None
        self._initialized = False


class LanguageServerHoverOracle:
    """Hover oracle backed by a language server; opens the document around each query."""

    def __init__(self, client: LanguageServerClient):
        self.client = client

    async def hover(self, document_uri: str, line: int, column: int) -> list[str]:
        await self.client.start()
        text = await asyncio.to_thread(uri_to_path(document_uri).read_text, encoding="utf-8")
        await self.client.open_document(document_uri, text)
        try:
            return await self.client.hover(document_uri, line, column)
        finally:
            await self.client.close_document(document_uri)

    async def aclose(self) -> None:
        await self.client.aclose()
