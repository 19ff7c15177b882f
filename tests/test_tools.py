"""Tests for the individual chat tools."""

from __future__ import annotations

import json
from types import SimpleNamespace

import httpx
import pytest

from agentchat.tools import build_tool_registry
from agentchat.tools.base import ToolContext
from agentchat.tools.calculator import CalculatorArgs, calculator, evaluate
from agentchat.tools.executor import ToolCallState, ToolExecutor, ToolInvocation
from agentchat.tools.registry import ToolRegistry
from agentchat.tools.sandbox import make_run_python_tool
from agentchat.tools.web import MAX_PAGE_CHARS, make_create_logo_tool, make_read_page_tool
from conftest import make_settings


@pytest.fixture()
def ctx() -> ToolContext:
    return ToolContext(user_id="u1", chat_id="c1")


def _only(tool) -> ToolRegistry:
    return ToolRegistry([tool])


class TestCalculator:
    @pytest.mark.parametrize(
        "expression, expected",
        [
            ("1 + 2 * 3", 7),
            ("2^10", 1024),
            ("sqrt(16) + abs(-2)", 6.0),
            ("10 // 3", 3),
            ("-(4 % 3)", -1),
        ],
    )
    def test_evaluates(self, expression: str, expected: float):
        assert evaluate(expression) == expected

    def test_integral_floats_render_without_decimals(self, ctx: ToolContext):
        assert calculator.handler(CalculatorArgs(expression="sqrt(16)"), ctx) == {"result": "4"}

    def test_division_by_zero_is_reported(self, ctx: ToolContext):
        result = calculator.handler(CalculatorArgs(expression="1/0"), ctx)
        assert result["error"].startswith("Evaluation error:")
        assert result["error"].endswith("for expression: 1/0")

    @pytest.mark.parametrize("expression", ["__import__('os')", "open('x')", "a + 1", "2 ** 100000", "1 +"])
    def test_rejects_everything_else(self, expression: str):
        with pytest.raises(ValueError):
            evaluate(expression)


class TestVisuals:
    async def test_chart_echoes_its_input_by_alias(self, settings, ctx: ToolContext):
        registry = build_tool_registry(settings)
        inv = await ToolExecutor(registry).run(
            ToolInvocation(
                "t1",
                "create_chart",
                {
                    "chartType": "bar",
                    "title": "Sales",
                    "labels": ["Q1", "Q2"],
                    "series": [{"name": "2024", "data": [1, 2]}],
                },
            ),
            ctx,
        )
        assert inv.state == ToolCallState.RESULT
        assert inv.result["chartType"] == "bar"
        assert "xAxisLabel" not in inv.result

    async def test_chart_with_mismatched_series_reports_error(self, settings, ctx: ToolContext):
        registry = build_tool_registry(settings)
        inv = await ToolExecutor(registry).run(
            ToolInvocation(
                "t1",
                "create_chart",
                {"chartType": "line", "title": "x", "labels": ["a"], "series": [{"name": "s", "data": [1, 2]}]},
            ),
            ctx,
        )
        assert "error" in inv.result

    async def test_palette_renders_css(self, settings, ctx: ToolContext):
        color = {"hue": 200, "saturation": 50, "lightness": 40.5}
        category = {"name": "Ocean", "base": color, "shades": [color]}
        registry = build_tool_registry(settings)
        inv = await ToolExecutor(registry).run(
            ToolInvocation(
                "t1",
                "generate_color_palette",
                {"primary": category, "secondary": category, "accent": category},
            ),
            ctx,
        )
        primary = inv.result["palette"]["primary"]
        assert primary["base"] == "hsl(200, 50%, 40.5%)"
        assert len(primary["shades"]) == 1
        assert "generatedAt" in inv.result

    async def test_palette_rejects_out_of_range_colors(self, settings, ctx: ToolContext):
        bad = {"name": "x", "base": {"hue": 400, "saturation": 0, "lightness": 0}}
        registry = build_tool_registry(settings)
        inv = await ToolExecutor(registry).run(
            ToolInvocation("t1", "generate_color_palette", {"primary": bad, "secondary": bad, "accent": bad}),
            ctx,
        )
        assert inv.state == ToolCallState.FAILED

    async def test_temperature(self, settings, ctx: ToolContext):
        registry = build_tool_registry(settings)
        inv = await ToolExecutor(registry).run(ToolInvocation("t1", "get_temperature", {"city": "Paris"}), ctx)
        assert inv.result == {"city": "Paris", "temperature": 30, "unit": "celsius"}


class TestReadPage:
    async def test_returns_title_url_and_content(self, tmp_path, ctx: ToolContext):
        seen: list[httpx.Request] = []

        def handler(request: httpx.Request) -> httpx.Response:
            seen.append(request)
            return httpx.Response(
                200,
                json={"code": 200, "data": {"title": "Example", "url": "https://example.com/", "content": "# Hi"}},
            )

        settings = make_settings(tmp_path, jina_api_key="jina-key")
        read_page = make_read_page_tool(settings, httpx.MockTransport(handler))
        inv = await ToolExecutor(_only(read_page)).run(
            ToolInvocation("t1", "read_page", {"url": "https://example.com"}), ctx
        )

        assert inv.result == {"title": "Example", "url": "https://example.com/", "content": "# Hi"}
        assert seen[0].headers["Authorization"] == "Bearer jina-key"
        assert json.loads(seen[0].content) == {"url": "https://example.com/"}

    async def test_long_content_is_truncated(self, tmp_path, ctx: ToolContext):
        body = {"code": 200, "data": {"url": "https://example.com/", "content": "x" * (MAX_PAGE_CHARS + 10)}}
        transport = httpx.MockTransport(lambda request: httpx.Response(200, json=body))
        settings = make_settings(tmp_path, jina_api_key="k")
        read_page = make_read_page_tool(settings, transport)

        inv = await ToolExecutor(_only(read_page)).run(
            ToolInvocation("t1", "read_page", {"url": "https://example.com"}), ctx
        )

        assert inv.result["content"].endswith("\n\n[truncated]")
        assert len(inv.result["content"]) == MAX_PAGE_CHARS + len("\n\n[truncated]")

    async def test_http_error_becomes_error_payload(self, tmp_path, ctx: ToolContext):
        transport = httpx.MockTransport(lambda request: httpx.Response(429, json={"detail": "slow down"}))
        settings = make_settings(tmp_path, jina_api_key="k")
        read_page = make_read_page_tool(settings, transport)

        inv = await ToolExecutor(_only(read_page)).run(
            ToolInvocation("t1", "read_page", {"url": "https://example.com"}), ctx
        )

        assert inv.result == {"error": "Reader request failed with status 429: slow down"}

    async def test_missing_key_fails_the_invocation(self, tmp_path, ctx: ToolContext):
        read_page = make_read_page_tool(make_settings(tmp_path, jina_api_key=""))
        inv = await ToolExecutor(_only(read_page)).run(
            ToolInvocation("t1", "read_page", {"url": "https://example.com"}), ctx
        )
        assert inv.state == ToolCallState.FAILED
        assert "JINA_API_KEY" in inv.error


class TestCreateLogo:
    async def test_returns_images(self, tmp_path, ctx: ToolContext):
        def handler(request: httpx.Request) -> httpx.Response:
            assert request.headers["Authorization"] == "Key fal-key"
            return httpx.Response(200, json={"images": [{"url": "https://cdn/logo.png"}], "seed": 7})

        settings = make_settings(tmp_path, fal_key="fal-key")
        logo = make_create_logo_tool(settings, httpx.MockTransport(handler))
        inv = await ToolExecutor(_only(logo)).run(ToolInvocation("t1", "create_logo", {"prompt": "a fox"}), ctx)

        assert inv.result == {"images": [{"url": "https://cdn/logo.png"}], "seed": 7}

    async def test_missing_key_is_reported_to_the_model(self, tmp_path, ctx: ToolContext):
        logo = make_create_logo_tool(make_settings(tmp_path, fal_key=""))
        inv = await ToolExecutor(_only(logo)).run(ToolInvocation("t1", "create_logo", {"prompt": "a fox"}), ctx)
        assert inv.result == {"error": "Fal AI API key is not configured."}


class FakeSandbox:
    def __init__(self, execution) -> None:
        self.execution = execution
        self.killed = False
        self.code: str | None = None

    async def run_code(self, code: str):
        self.code = code
        return self.execution

    async def kill(self) -> None:
        self.killed = True


class TestRunPython:
    def _execution(self, error=None):
        return SimpleNamespace(
            logs=SimpleNamespace(stdout=["hello\n"], stderr=[]),
            results=[SimpleNamespace(text="42", png=None)],
            error=error,
        )

    async def test_collects_output_and_kills_the_sandbox(self, tmp_path, ctx: ToolContext):
        sandbox = FakeSandbox(self._execution())

        async def factory(api_key: str):
            assert api_key == "e2b-key"
            return sandbox

        run_python = make_run_python_tool(make_settings(tmp_path, e2b_api_key="e2b-key"), factory)
        inv = await ToolExecutor(_only(run_python)).run(
            ToolInvocation("t1", "run_python", {"code": "print('hello')"}), ctx
        )

        assert inv.result["stdout"] == "hello\n"
        assert inv.result["results"] == [{"text": "42"}]
        assert inv.result["error"] is None
        assert sandbox.killed
        assert sandbox.code == "print('hello')"

    async def test_execution_error_is_formatted(self, tmp_path, ctx: ToolContext):
        sandbox = FakeSandbox(self._execution(error=SimpleNamespace(name="NameError", value="x is not defined")))

        async def factory(api_key: str):
            return sandbox

        run_python = make_run_python_tool(make_settings(tmp_path, e2b_api_key="k"), factory)
        inv = await ToolExecutor(_only(run_python)).run(ToolInvocation("t1", "run_python", {"code": "x"}), ctx)

        assert inv.result["error"] == "NameError: x is not defined"


class TestDocumentTools:
    async def test_without_documents_the_call_fails(self, settings, ctx: ToolContext):
        registry = build_tool_registry(settings)
        inv = await ToolExecutor(registry).run(
            ToolInvocation("t1", "create_document", {"title": "Essay", "kind": "text"}), ctx
        )
        assert inv.state == ToolCallState.FAILED
        assert "Documents are not available" in inv.error

    def test_registry_has_every_tool(self, settings):
        assert sorted(build_tool_registry(settings).names()) == [
            "calculator",
            "create_chart",
            "create_document",
            "create_logo",
            "generate_color_palette",
            "get_temperature",
            "read_page",
            "run_python",
            "update_document",
        ]
