"""Coding-agent runtime that is uploaded into each workspace.

The runtime runs inside the workspace's code interpreter and prints one JSON
object per line (`{"type", "content", "metadata"?}`), which the agent provider
reads back through `SandboxProvider.run_code`.
"""
from __future__ import annotations

import json
from pathlib import PurePosixPath
from textwrap import dedent

AGENT_RUNTIME_MARKER = "ORCHESTRATOR_CODING_AGENT_RUNTIME"
AGENT_RUNTIME_MODULE = "coding_agent"
AGENT_RUNTIME_REQUIREMENTS = ("claude-agent-sdk",)

AGENT_RUNTIME_CODE = dedent(
    '''
    # ORCHESTRATOR_CODING_AGENT_RUNTIME
    import asyncio
    import json
    import os

    from claude_agent_sdk import (
        AssistantMessage,
        ClaudeAgentOptions,
        ResultMessage,
        SystemMessage,
        TextBlock,
        ThinkingBlock,
        ToolUseBlock,
        query,
    )

    SYSTEM_PROMPT = """You are a product builder assistant helping non-technical users build features for their applications.

    ## Your Role
    - You help users describe and build features in plain language
    - You never show code directly to users, only results and previews
    - You communicate in simple, non-technical language

    ## During Build
    - Provide progress updates in plain language
    - Focus on what is happening, not how
    - If something fails, explain the issue simply and suggest a fix
    """

    ALLOWED_TOOLS = ["Read", "Edit", "Write", "Glob", "Grep", "Bash"]


    def _emit(message_type, content, metadata=None):
        payload = {"type": message_type, "content": content}
        if metadata:
            payload["metadata"] = metadata
        print(json.dumps(payload, default=str), flush=True)


    def _system_prompt(preview_url):
        if not preview_url:
            return SYSTEM_PROMPT
        return (
            SYSTEM_PROMPT
            + "\\n## Preview URL\\n"
            + f"The user can see a live preview of their application at: {preview_url}\\n"
            + "When you make changes, remind them to check the preview.\\n"
        )


    def _emit_message(message):
        if isinstance(message, SystemMessage):
            _emit("thinking", str(message.subtype or "initializing"))
            return
        if isinstance(message, AssistantMessage):
            for block in message.content:
                if isinstance(block, TextBlock) and block.text:
                    _emit("text", block.text)
                elif isinstance(block, ThinkingBlock):
                    _emit("thinking", block.thinking)
                elif isinstance(block, ToolUseBlock):
                    _emit("tool_use", block.name, {"tool": block.name, "input": block.input})
            return
        if isinstance(message, ResultMessage):
            metadata = {"is_error": message.is_error, "num_turns": message.num_turns}
            if message.is_error:
                _emit("error", str(message.result or "Agent run failed"), metadata)
            else:
                _emit("result", str(message.result or "Done"), metadata)


    async def run_query(prompt, working_directory=None, preview_url=None, model=None):
        options = ClaudeAgentOptions(
            allowed_tools=ALLOWED_TOOLS,
            permission_mode="acceptEdits",
            system_prompt=_system_prompt(preview_url),
            cwd=working_directory or os.environ.get("WORKSPACE_DIR", "/workspace/repo"),
            model=model,
        )
        try:
            async for message in query(prompt=prompt, options=options):
                _emit_message(message)
        except Exception as exc:
            _emit("error", str(exc) or "Unknown error occurred")


    def run_query_sync(prompt, working_directory=None, preview_url=None, model=None):
        asyncio.run(run_query(prompt, working_directory, preview_url, model))
    '''
).lstrip()


def runtime_file_path(agent_path: str) -> str:
    return f"{agent_path}.py"


def build_runtime_import_code(agent_path: str) -> str:
    agent_dir = str(PurePosixPath(agent_path).parent)
    return dedent(
        f"""
        import sys
        if {agent_dir!r} not in sys.path:
            sys.path.insert(0, {agent_dir!r})
        import {AGENT_RUNTIME_MODULE}
        """
    ).strip()


def build_query_code(
    prompt: str,
    *,
    working_directory: str,
    preview_url: str | None = None,
    model: str | None = None,
) -> str:
    # json.dumps output is a valid Python string literal for any prompt text.
    args = ", ".join(
        [
            json.dumps(prompt),
            json.dumps(working_directory),
            repr(preview_url),
            repr(model),
        ]
    )
    return f"{AGENT_RUNTIME_MODULE}.run_query_sync({args})"
