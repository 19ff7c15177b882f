"""Python execution in an isolated E2B sandbox."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import Any

from loguru import logger
from pydantic import BaseModel, Field

from agentchat.config import Settings
from agentchat.tools.base import Tool, ToolContext, tool

SandboxFactory = Callable[[str], Awaitable[Any]]


async def create_e2b_sandbox(api_key: str) -> Any:
    from e2b_code_interpreter import AsyncSandbox

    return await AsyncSandbox.create(api_key=api_key)


class RunPythonArgs(BaseModel):
    code: str = Field(min_length=1, description="The Python code to execute in the sandbox")


def _result_payload(result: Any) -> dict:
    payload: dict[str, Any] = {}
    for attr in ("text", "html", "markdown", "png", "svg", "json"):
        value = getattr(result, attr, None)
        if value:
            payload[attr] = value
    return payload


def make_run_python_tool(settings: Settings, sandbox_factory: SandboxFactory | None = None) -> Tool:
    factory = sandbox_factory or create_e2b_sandbox

    @tool("run_python", RunPythonArgs)
    async def run_python(args: RunPythonArgs, ctx: ToolContext) -> dict:
        """Execute Python code in a secure sandbox and return its output.

        Use this to run scripts, data analysis or calculations. Returns
        stdout, stderr, rich results (text, images) and any error.
        """
        if not settings.e2b_api_key:
            raise RuntimeError("E2B API key is not set (E2B_API_KEY)")

        sandbox = await factory(settings.e2b_api_key)
        try:
            execution = await sandbox.run_code(args.code)
        finally:
            try:
                await sandbox.kill()
            except Exception as exc:
                logger.warning("Could not shut down sandbox: {}", exc)

        error = execution.error
        stdout = list(execution.logs.stdout)
        stderr = list(execution.logs.stderr)
        return {
            "stdout": "".join(stdout),
            "stderr": "".join(stderr),
            "results": [_result_payload(r) for r in execution.results],
            "logs": {"stdout": stdout, "stderr": stderr},
            "error": f"{error.name}: {error.value}" if error else None,
        }

    return run_python
