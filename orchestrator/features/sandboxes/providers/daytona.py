from __future__ import annotations

import json
import logging
import shlex
from collections.abc import AsyncIterator
from typing import Any

import httpx

from orchestrator.features.sandboxes.agent_runtime import (
    AGENT_RUNTIME_CODE,
    AGENT_RUNTIME_REQUIREMENTS,
    build_runtime_import_code,
    runtime_file_path,
)
from orchestrator.features.sandboxes.errors import SandboxCommandError, SandboxProvisionError
from orchestrator.features.sandboxes.types import (
    CodeOutput,
    CommandResult,
    CreateWorkspaceOptions,
    FileEntry,
    SandboxKind,
    WorkspaceInfo,
    WorkspaceStatus,
)
from orchestrator.features.shared.credentials import embed_token, redact

from .base import SandboxProvider

logger = logging.getLogger(__name__)

_STATE_MAP = {
    "started": WorkspaceStatus.RUNNING,
    "running": WorkspaceStatus.RUNNING,
    "creating": WorkspaceStatus.CREATING,
    "starting": WorkspaceStatus.CREATING,
    "pending_build": WorkspaceStatus.CREATING,
    "restoring": WorkspaceStatus.CREATING,
    "paused": WorkspaceStatus.PAUSED,
    "stopping": WorkspaceStatus.PAUSED,
    "stopped": WorkspaceStatus.STOPPED,
    "archived": WorkspaceStatus.STOPPED,
    "error": WorkspaceStatus.ERROR,
    "build_failed": WorkspaceStatus.ERROR,
}
_DEFAULT_BRANCHES = {"main", "master"}
_INSTALL_DEPENDENCIES = "npm install || yarn install || pnpm install || true"


def _workspace_status(raw_state: Any) -> WorkspaceStatus:
    return _STATE_MAP.get(str(raw_state or "").strip().lower(), WorkspaceStatus.ERROR)


class DaytonaSandboxProvider(SandboxProvider):
    """Daytona workspaces driven through the Daytona REST API."""

    kind = SandboxKind.DAYTONA
    name = "Daytona"

    def __init__(
        self,
        *,
        api_url: str,
        api_key: str,
        repo_dir: str = "/workspace/repo",
        agent_path: str = "/workspace/coding_agent",
        preview_port: int = 3000,
        command_timeout: float = 120.0,
        provision_timeout: float = 600.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._api_url = api_url.rstrip("/")
        self._api_key = api_key
        self._repo_dir = repo_dir
        self._agent_path = agent_path
        self._preview_port = preview_port
        self._command_timeout = command_timeout
        self._provision_timeout = provision_timeout
        self._transport = transport
        # Interpreter context per workspace; lost on pause, re-created by prepare_runtime.
        self._contexts: dict[str, str] = {}

    def is_available(self) -> bool:
        return bool(self._api_key)

    def _client(self, timeout: float | None = None) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self._api_url,
            headers={
                "Authorization": f"Bearer {self._api_key}",
                "Content-Type": "application/json",
            },
            timeout=timeout or self._command_timeout,
            transport=self._transport,
        )

    async def _request(
        self,
        method: str,
        path: str,
        *,
        body: dict[str, Any] | None = None,
        timeout: float | None = None,
        error_message: str,
    ) -> dict[str, Any]:
        try:
            async with self._client(timeout) as client:
                response = await client.request(method, path, json=body)
                response.raise_for_status()
                if not response.content:
                    return {}
                payload = response.json()
                return payload if isinstance(payload, dict) else {"items": payload}
        except httpx.HTTPStatusError as exc:
            detail = exc.response.text[:500]
            raise SandboxCommandError(
                f"{error_message}: {detail}" if detail else error_message,
                upstream_status=exc.response.status_code,
            ) from exc
        except httpx.HTTPError as exc:
            raise SandboxCommandError(f"{error_message}: {exc}") from exc

    def _to_info(self, payload: dict[str, Any]) -> WorkspaceInfo:
        return WorkspaceInfo(
            id=str(payload["id"]),
            status=_workspace_status(payload.get("state") or payload.get("status")),
            preview_url=payload.get("previewUrl"),
            ephemeral=bool(payload.get("ephemeral", False)),
        )

    async def create_workspace(self, options: CreateWorkspaceOptions) -> WorkspaceInfo:
        payload = await self._request(
            "POST",
            "/workspaces",
            body={
                "name": options.name,
                "language": "python",
                "envVars": {"WORKSPACE_DIR": self._repo_dir, **options.env_vars},
            },
            timeout=options.timeout or self._provision_timeout,
            error_message="Failed to create workspace",
        )
        workspace_id = str(payload["id"])
        logger.info("Provisioning Daytona workspace %s for %s", workspace_id, options.name)

        try:
            await self._provision(workspace_id, options)
            preview_url = await self.get_preview_url(workspace_id, self._preview_port)
        except Exception as exc:
            self._contexts.pop(workspace_id, None)
            try:
                await self.delete_workspace(workspace_id)
            except SandboxCommandError:
                logger.warning("Failed to delete half-provisioned workspace %s", workspace_id, exc_info=True)
            if isinstance(exc, SandboxProvisionError):
                raise
            message = redact(str(exc), options.git_token)
            raise SandboxProvisionError(f"Failed to provision sandbox: {message}") from exc

        return WorkspaceInfo(id=workspace_id, status=WorkspaceStatus.RUNNING, preview_url=preview_url)

    async def _provision(self, workspace_id: str, options: CreateWorkspaceOptions) -> None:
        timeout = options.timeout or self._provision_timeout
        requirements = " ".join(shlex.quote(item) for item in AGENT_RUNTIME_REQUIREMENTS)
        await self._run_step(
            workspace_id,
            "install agent runtime",
            f"pip install --quiet {requirements}",
            timeout=timeout,
        )

        clone_url = embed_token(options.repo_url, options.git_token)
        await self._run_step(
            workspace_id,
            "clone repository",
            f"git clone {shlex.quote(clone_url)} {shlex.quote(self._repo_dir)}",
            timeout=timeout,
            secret=options.git_token,
        )
        if options.branch and options.branch not in _DEFAULT_BRANCHES:
            await self._run_step(
                workspace_id,
                "checkout branch",
                f"git checkout {shlex.quote(options.branch)}",
                cwd=self._repo_dir,
                timeout=timeout,
            )
        await self._run_step(
            workspace_id,
            "install dependencies",
            _INSTALL_DEPENDENCIES,
            cwd=self._repo_dir,
            timeout=timeout,
        )

        await self.write_file(workspace_id, runtime_file_path(self._agent_path), AGENT_RUNTIME_CODE)
        await self.prepare_runtime(workspace_id)

    async def _run_step(
        self,
        workspace_id: str,
        step: str,
        command: str,
        *,
        cwd: str | None = None,
        timeout: float | None = None,
        secret: str | None = None,
    ) -> CommandResult:
        result = await self.execute_command(workspace_id, command, cwd=cwd, timeout=timeout)
        if not result.ok:
            output = redact((result.stderr or result.stdout).strip(), secret)
            raise SandboxProvisionError(f"Failed to {step}: {output[:500]}")
        return result

    async def get_workspace(self, workspace_id: str) -> WorkspaceInfo | None:
        try:
            payload = await self._request(
                "GET",
                f"/workspaces/{workspace_id}",
                error_message="Failed to read workspace",
            )
        except SandboxCommandError as exc:
            if exc.upstream_status == 404:
                return None
            raise
        return self._to_info(payload)

    async def resume_workspace(self, workspace_id: str) -> WorkspaceInfo:
        payload = await self._request(
            "POST",
            f"/workspaces/{workspace_id}/resume",
            timeout=self._provision_timeout,
            error_message="Failed to resume workspace",
        )
        self._contexts.pop(workspace_id, None)
        if "id" not in payload:
            payload = {**payload, "id": workspace_id}
        return self._to_info(payload)

    async def pause_workspace(self, workspace_id: str) -> None:
        await self._request(
            "POST",
            f"/workspaces/{workspace_id}/pause",
            error_message="Failed to pause workspace",
        )
        self._contexts.pop(workspace_id, None)

    async def delete_workspace(self, workspace_id: str) -> None:
        await self._request(
            "DELETE",
            f"/workspaces/{workspace_id}",
            error_message="Failed to delete workspace",
        )
        self._contexts.pop(workspace_id, None)

    async def execute_command(
        self,
        workspace_id: str,
        command: str,
        *,
        cwd: str | None = None,
        env_vars: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> CommandResult:
        effective_timeout = timeout or self._command_timeout
        payload = await self._request(
            "POST",
            f"/workspaces/{workspace_id}/exec",
            body={
                "command": command,
                "cwd": cwd,
                "env": env_vars or {},
                "timeout": int(effective_timeout),
            },
            # Leave headroom for the remote side to report its own timeout.
            timeout=effective_timeout + 10,
            error_message="Command execution failed",
        )
        return CommandResult(
            stdout=str(payload.get("stdout") or ""),
            stderr=str(payload.get("stderr") or ""),
            exit_code=int(payload.get("exitCode") or 0),
        )

    async def _create_context(self, workspace_id: str) -> str:
        payload = await self._request(
            "POST",
            f"/workspaces/{workspace_id}/code/contexts",
            body={"language": "python", "cwd": self._repo_dir},
            error_message="Failed to create interpreter context",
        )
        context_id = str(payload["id"])
        self._contexts[workspace_id] = context_id
        return context_id

    async def run_code(
        self,
        workspace_id: str,
        code: str,
        *,
        env_vars: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[CodeOutput]:
        context_id = self._contexts.get(workspace_id)
        if context_id is None:
            # A fresh context has not imported the agent runtime yet.
            context_id = await self._load_runtime(workspace_id)
        async for output in self._stream_code(workspace_id, context_id, code, env_vars=env_vars, timeout=timeout):
            yield output

    async def _stream_code(
        self,
        workspace_id: str,
        context_id: str,
        code: str,
        *,
        env_vars: dict[str, str] | None = None,
        timeout: float | None = None,
    ) -> AsyncIterator[CodeOutput]:
        body = {"code": code, "contextId": context_id, "envs": env_vars or {}}
        try:
            async with self._client(timeout or self._provision_timeout) as client:
                async with client.stream(
                    "POST",
                    f"/workspaces/{workspace_id}/code/run",
                    json=body,
                ) as response:
                    response.raise_for_status()
                    async for line in response.aiter_lines():
                        output = _parse_code_line(line)
                        if output is not None:
                            yield output
        except httpx.HTTPStatusError as exc:
            yield CodeOutput(type="error", content=f"Code execution failed ({exc.response.status_code})")
        except httpx.HTTPError as exc:
            yield CodeOutput(type="error", content=f"Code execution failed: {exc}")
        yield CodeOutput(type="done", content="Execution completed")

    async def _load_runtime(self, workspace_id: str) -> str:
        context_id = await self._create_context(workspace_id)
        import_code = build_runtime_import_code(self._agent_path)
        async for output in self._stream_code(workspace_id, context_id, import_code):
            if output.type == "error":
                self._contexts.pop(workspace_id, None)
                raise SandboxCommandError(f"Failed to load agent runtime: {output.content}")
        return context_id

    async def prepare_runtime(self, workspace_id: str) -> None:
        await self._load_runtime(workspace_id)

    async def get_preview_url(self, workspace_id: str, port: int = 3000) -> str:
        payload = await self._request(
            "GET",
            f"/workspaces/{workspace_id}/ports/{port}/preview",
            error_message="Failed to get preview URL",
        )
        url = payload.get("url")
        if not isinstance(url, str) or not url:
            raise SandboxCommandError("Preview URL missing from provider response")
        return url

    async def read_file(self, workspace_id: str, path: str) -> str:
        result = await self.execute_command(workspace_id, f"cat {shlex.quote(path)}")
        if not result.ok:
            raise SandboxCommandError(f"Failed to read file: {result.stderr.strip()}")
        return result.stdout

    async def write_file(self, workspace_id: str, path: str, content: str) -> None:
        await self._request(
            "PUT",
            f"/workspaces/{workspace_id}/files",
            body={"path": path, "content": content},
            error_message=f"Failed to write {path}",
        )

    async def list_files(self, workspace_id: str, path: str) -> list[FileEntry]:
        result = await self.execute_command(workspace_id, f"ls -la {shlex.quote(path)} | tail -n +2")
        if not result.ok:
            raise SandboxCommandError(f"Failed to list files: {result.stderr.strip()}")
        entries: list[FileEntry] = []
        for line in result.stdout.splitlines():
            parts = line.split()
            if len(parts) < 9:
                continue
            name = " ".join(parts[8:])
            if name in {".", ".."}:
                continue
            try:
                size: int | None = int(parts[4])
            except ValueError:
                size = None
            entries.append(
                FileEntry(
                    path=f"{path.rstrip('/')}/{name}",
                    type="directory" if parts[0].startswith("d") else "file",
                    size=size,
                )
            )
        return entries

    async def create_snapshot(self, workspace_id: str, label: str) -> str:
        payload = await self._request(
            "POST",
            f"/workspaces/{workspace_id}/checkpoints",
            body={"label": label},
            timeout=self._provision_timeout,
            error_message="Failed to create snapshot",
        )
        return str(payload["id"])

    async def restore_snapshot(self, workspace_id: str, snapshot_id: str) -> None:
        await self._request(
            "POST",
            f"/workspaces/{workspace_id}/checkpoints/{snapshot_id}/restore",
            timeout=self._provision_timeout,
            error_message="Failed to restore snapshot",
        )
        self._contexts.pop(workspace_id, None)


def _parse_code_line(line: str) -> CodeOutput | None:
    if not line.strip():
        return None
    try:
        payload = json.loads(line)
    except json.JSONDecodeError:
        return CodeOutput(type="stdout", content=line)
    if not isinstance(payload, dict):
        return CodeOutput(type="stdout", content=line)
    output_type = payload.get("type")
    if output_type not in {"stdout", "stderr", "error"}:
        return None
    return CodeOutput(type=output_type, content=str(payload.get("content") or ""))
