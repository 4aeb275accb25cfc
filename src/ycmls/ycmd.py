"""A running ycmd backend: process startup, HMAC-signed HTTP calls, teardown.

ycmd authenticates every request with an HMAC-SHA256 over the method, the URL
path and the body, keyed by a secret handed to it in the options file; it
signs its responses the same way over the body alone.
"""

from __future__ import annotations

import asyncio
import base64
import hashlib
import hmac
import json
import logging
import os
import re
import socket
import subprocess
import tempfile
from pathlib import Path
from typing import IO, TYPE_CHECKING, Any, List, Mapping, Optional, Type, TypeVar

import httpx
from lsprotocol.types import Position
from pydantic import BaseModel, ValidationError

from ycmls.config import YcmdSettings
from ycmls.exceptions import BackendError, HmacMismatchError, SessionStartError
from ycmls.logging_config import log_timing
from ycmls.schema import (
    CandidateDTO,
    CompletionResponseDTO,
    DiagnosticDTO,
    ErrorDTO,
    FixItDTO,
    FixItResponseDTO,
    LocationDTO,
    MessageDTO,
)
from ycmls.translate import line_text, to_server_position, to_ycmd_column

if TYPE_CHECKING:
    from pygls.workspace import TextDocument

logger = logging.getLogger(__name__)

HMAC_HEADER = "X-Ycm-Hmac"
HMAC_SECRET_LENGTH = 16
HOST = "127.0.0.1"
READY_POLL_INTERVAL_SECONDS = 0.1
SHUTDOWN_GRACE_SECONDS = 2.0

FILETYPES_BY_LANGUAGE = {
    "c": "c",
    "cpp": "cpp",
    "cuda": "cuda",
    "objective-c": "objc",
    "objective-cpp": "objcpp",
    "cs": "cs",
    "csharp": "cs",
    "go": "go",
    "java": "java",
    "javascript": "javascript",
    "javascriptreact": "javascript",
    "typescript": "typescript",
    "typescriptreact": "typescriptreact",
    "python": "python",
    "rust": "rust",
}

FILETYPES_BY_SUFFIX = {
    ".c": "c",
    ".h": "cpp",
    ".cc": "cpp",
    ".cpp": "cpp",
    ".cxx": "cpp",
    ".hh": "cpp",
    ".hpp": "cpp",
    ".cu": "cuda",
    ".m": "objc",
    ".mm": "objcpp",
    ".cs": "cs",
    ".go": "go",
    ".java": "java",
    ".js": "javascript",
    ".ts": "typescript",
    ".py": "python",
    ".rs": "rust",
}

_IDENTIFIER_TAIL_RE = re.compile(r"[A-Za-z_]\w*$")

ModelT = TypeVar("ModelT", bound=BaseModel)


def create_hmac(content: bytes, secret: bytes) -> bytes:
    return hmac.new(secret, content, digestmod=hashlib.sha256).digest()


def create_request_hmac(method: str, path: str, body: bytes, secret: bytes) -> bytes:
    joined = b"".join(
        create_hmac(part, secret) for part in (method.encode("utf-8"), path.encode("utf-8"), body)
    )
    return create_hmac(joined, secret)


def filetypes_for(document: TextDocument) -> List[str]:
    language = (document.language_id or "").lower()
    if language in FILETYPES_BY_LANGUAGE:
        return [FILETYPES_BY_LANGUAGE[language]]
    suffix = Path(document.path).suffix.lower()
    return [FILETYPES_BY_SUFFIX.get(suffix, language or "text")]


def identifier_before(document: TextDocument, position: Position) -> str:
    server = to_server_position(document, position)
    prefix = line_text(document, server.line)[: server.character]
    match = _IDENTIFIER_TAIL_RE.search(prefix)
    return match.group(0) if match else ""


def build_request(
    document: TextDocument,
    position: Position | None = None,
    *,
    working_dir: Path | None = None,
    **extra: Any,
) -> dict[str, Any]:
    filepath = document.path
    request: dict[str, Any] = {
        "filepath": filepath,
        "line_num": 1,
        "column_num": 1,
        "file_data": {
            filepath: {
                "contents": document.source,
                "filetypes": filetypes_for(document),
            }
        },
    }
    if position is not None:
        server = to_server_position(document, position)
        request["line_num"] = server.line + 1
        request["column_num"] = to_ycmd_column(line_text(document, server.line), server.character)
    if working_dir is not None:
        request["working_dir"] = str(working_dir)
    request.update(extra)
    return request


def build_options(ycmd_dir: Path, settings: YcmdSettings, secret: bytes) -> dict[str, Any]:
    defaults_path = ycmd_dir / "ycmd" / "default_settings.json"
    try:
        options = json.loads(defaults_path.read_text(encoding="utf-8"))
    except (OSError, ValueError):
        options = {}
    if not isinstance(options, dict):
        options = {}
    options["hmac_secret"] = base64.b64encode(secret).decode("ascii")
    if settings.global_ycm_extra_conf:
        options["global_ycm_extra_conf"] = settings.global_ycm_extra_conf
    if settings.extra_conf_globlist:
        options["extra_conf_globlist"] = list(settings.extra_conf_globlist)
    return options


def _write_options_file(options: Mapping[str, Any]) -> Path:
    with tempfile.NamedTemporaryFile(
        "w", prefix="ycmd_options_", suffix=".json", delete=False, encoding="utf-8"
    ) as handle:
        json.dump(options, handle)
    return Path(handle.name)


def _free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((HOST, 0))
        return sock.getsockname()[1]


def _parse(model: Type[ModelT], data: Any) -> ModelT:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise BackendError(f"Unexpected ycmd response for {model.__name__}: {exc}") from exc


def _backend_error(response: httpx.Response) -> BackendError:
    message = f"ycmd returned HTTP {response.status_code}"
    exception_type = ""
    try:
        error = ErrorDTO.model_validate(response.json())
    except (ValueError, ValidationError):
        error = None
    if error is not None:
        message = error.message or message
        exception_type = str(error.exception.get("TYPE", ""))
    return BackendError(message, exception_type=exception_type, status=response.status_code)


class YcmdSession:
    """One ycmd process serving one workspace root with one settings snapshot."""

    def __init__(
        self,
        root: Path,
        settings: YcmdSettings,
        client: httpx.AsyncClient,
        secret: bytes,
        *,
        process: asyncio.subprocess.Process | None = None,
        stderr_log: IO[bytes] | None = None,
        options_path: Path | None = None,
    ) -> None:
        self.root = root
        self.settings = settings
        self._client = client
        self._secret = secret
        self._process = process
        self._stderr_log = stderr_log
        self._options_path = options_path
        self._closed = False

    @classmethod
    async def start(cls, root: Path, settings: YcmdSettings) -> YcmdSession:
        ycmd_dir = Path(settings.path).expanduser()
        if not (ycmd_dir / "ycmd").is_dir():
            raise SessionStartError(f"ycmd not found at {ycmd_dir}")
        secret = os.urandom(HMAC_SECRET_LENGTH)
        port = _free_port()
        options_path = _write_options_file(build_options(ycmd_dir, settings, secret))
        args = [
            settings.python,
            str(ycmd_dir / "ycmd"),
            f"--port={port}",
            f"--options_file={options_path}",
        ]
        if settings.idle_suicide_seconds > 0:
            args.append(f"--idle_suicide_seconds={settings.idle_suicide_seconds}")
        if settings.debug:
            args.extend(["--log=debug", "--keep_logfiles"])
        stderr_log = tempfile.NamedTemporaryFile(prefix="ycmd_stderr_", suffix=".log", delete=False)
        logger.info("Starting ycmd: %s", " ".join(args))
        try:
            process = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(root),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=stderr_log,
            )
        except OSError as exc:
            stderr_log.close()
            options_path.unlink(missing_ok=True)
            raise SessionStartError(f"Failed to launch ycmd: {exc}") from exc
        client = httpx.AsyncClient(base_url=f"http://{HOST}:{port}", timeout=None)
        session = cls(
            root,
            settings,
            client,
            secret,
            process=process,
            stderr_log=stderr_log,
            options_path=options_path,
        )
        try:
            with log_timing(logger, "ycmd startup", logging.INFO):
                await session.wait_until_ready(settings.startup_timeout_seconds)
        except BaseException:
            await session.shutdown()
            raise
        logger.info("ycmd ready on port %d (pid %s)", port, process.pid)
        return session

    @property
    def closed(self) -> bool:
        return self._closed

    def _stderr_tail(self, limit: int = 2000) -> str:
        if self._stderr_log is None:
            return ""
        try:
            data = Path(self._stderr_log.name).read_bytes()
        except OSError:
            return ""
        return data[-limit:].decode("utf-8", errors="replace").strip()

    async def wait_until_ready(self, timeout: float) -> None:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout
        while True:
            if self._process is not None and self._process.returncode is not None:
                raise SessionStartError(
                    f"ycmd exited with code {self._process.returncode}: {self._stderr_tail()}"
                )
            try:
                if await self.ready():
                    return
            except (httpx.TransportError, BackendError) as exc:
                logger.debug("ycmd not ready yet: %s", exc)
            if loop.time() >= deadline:
                raise SessionStartError(f"ycmd did not become ready within {timeout} seconds")
            await asyncio.sleep(READY_POLL_INTERVAL_SECONDS)

    def _validate_response(self, response: httpx.Response) -> None:
        expected = base64.b64encode(create_hmac(response.content, self._secret))
        received = response.headers.get(HMAC_HEADER, "").encode("ascii")
        if not hmac.compare_digest(expected, received):
            raise HmacMismatchError("Received invalid HMAC for ycmd response", status=response.status_code)

    async def _request(self, method: str, path: str, payload: Mapping[str, Any] | None = None) -> Any:
        body = json.dumps(payload).encode("utf-8") if payload is not None else b""
        signature = create_request_hmac(method, path, body, self._secret)
        headers = {HMAC_HEADER: base64.b64encode(signature).decode("ascii")}
        if payload is not None:
            headers["Content-Type"] = "application/json"
        response = await self._client.request(method, path, content=body, headers=headers)
        self._validate_response(response)
        if response.status_code >= 400:
            raise _backend_error(response)
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError as exc:
            raise BackendError(
                f"ycmd returned malformed JSON for {path}", status=response.status_code
            ) from exc

    def _file_request(
        self, document: TextDocument, position: Position | None = None, **extra: Any
    ) -> dict[str, Any]:
        return build_request(document, position, working_dir=self.root, **extra)

    async def ready(self) -> bool:
        return bool(await self._request("GET", "/ready"))

    async def completions(self, document: TextDocument, position: Position) -> List[CandidateDTO]:
        data = await self._request("POST", "/completions", self._file_request(document, position))
        return _parse(CompletionResponseDTO, data or {}).completions

    async def exact_match_completion(
        self, document: TextDocument, position: Position
    ) -> Optional[CandidateDTO]:
        identifier = identifier_before(document, position)
        if not identifier:
            return None
        for candidate in await self.completions(document, position):
            if candidate.insertion_text == identifier:
                return candidate
        return None

    async def event_notification(self, document: TextDocument, event_name: str) -> Any:
        return await self._request(
            "POST",
            "/event_notification",
            self._file_request(document, event_name=event_name),
        )

    async def ready_to_parse(self, document: TextDocument) -> List[DiagnosticDTO]:
        data = await self.event_notification(document, "FileReadyToParse")
        if not isinstance(data, list):
            return []
        return [_parse(DiagnosticDTO, item) for item in data]

    async def run_completer_command(
        self, document: TextDocument, position: Position, *arguments: str
    ) -> Any:
        return await self._request(
            "POST",
            "/run_completer_command",
            self._file_request(document, position, command_arguments=list(arguments)),
        )

    async def get_type(
        self, document: TextDocument, position: Position, *, imprecise: bool = False
    ) -> MessageDTO:
        command = "GetTypeImprecise" if imprecise else "GetType"
        data = await self.run_completer_command(document, position, command)
        if isinstance(data, str):
            return MessageDTO(message=data)
        return _parse(MessageDTO, data or {})

    async def goto(self, document: TextDocument, position: Position) -> List[LocationDTO]:
        data = await self.run_completer_command(document, position, "GoTo")
        if isinstance(data, dict):
            data = [data]
        if not isinstance(data, list):
            return []
        return [_parse(LocationDTO, item) for item in data]

    async def fixit(self, document: TextDocument, position: Position) -> List[FixItDTO]:
        data = await self.run_completer_command(document, position, "FixIt")
        return _parse(FixItResponseDTO, data or {}).fixits

    async def shutdown(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            await self._request("POST", "/shutdown")
        except (BackendError, httpx.HTTPError) as exc:
            logger.debug("ycmd shutdown request failed: %s", exc)
        finally:
            await self._client.aclose()
            await self._stop_process()
            self._cleanup_files()

    async def _stop_process(self) -> None:
        process = self._process
        if process is None or process.returncode is not None:
            return
        try:
            await asyncio.wait_for(process.wait(), SHUTDOWN_GRACE_SECONDS)
            return
        except asyncio.TimeoutError:
            pass
        process.terminate()
        try:
            await asyncio.wait_for(process.wait(), SHUTDOWN_GRACE_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("ycmd (pid %s) ignored SIGTERM; killing", process.pid)
            process.kill()
            await process.wait()

    def _cleanup_files(self) -> None:
        if self._options_path is not None:
            self._options_path.unlink(missing_ok=True)
        if self._stderr_log is not None:
            self._stderr_log.close()
            if not self.settings.debug:
                Path(self._stderr_log.name).unlink(missing_ok=True)
