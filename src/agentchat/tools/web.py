"""Tools that call external HTTP services: page reading and logo generation."""

from __future__ import annotations

import httpx
from loguru import logger
from pydantic import BaseModel, Field, HttpUrl, ValidationError

from agentchat.config import Settings
from agentchat.tools.base import Tool, ToolContext, tool

MAX_PAGE_CHARS = 40_000

# ---------------------------------------------------------------------------
# Page reading (Jina Reader)
# ---------------------------------------------------------------------------


class ReadPageArgs(BaseModel):
    url: HttpUrl = Field(description="The URL of the webpage to read")


class _ReaderData(BaseModel):
    title: str | None = None
    url: str
    content: str


class _ReaderResponse(BaseModel):
    code: int
    data: _ReaderData


def _error_detail(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:500]
    if isinstance(body, dict) and body.get("detail"):
        return str(body["detail"])
    return str(body)[:500]


def make_read_page_tool(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> Tool:
    @tool("read_page", ReadPageArgs)
    async def read_page(args: ReadPageArgs, ctx: ToolContext) -> dict:
        """Read the main content of a webpage.

        Returns the page title, its final URL after redirects and the content
        as Markdown. Links and images are left out.
        """
        if not settings.jina_api_key:
            raise RuntimeError("Jina API key is not set (JINA_API_KEY)")

        async with httpx.AsyncClient(transport=transport, timeout=30.0) as client:
            try:
                response = await client.post(
                    settings.jina_reader_url,
                    json={"url": str(args.url)},
                    headers={
                        "Accept": "application/json",
                        "Authorization": f"Bearer {settings.jina_api_key}",
                        "X-Retain-Images": "none",
                    },
                )
            except httpx.HTTPError as exc:
                return {"error": f"Failed to read web page content: {exc}"}

        if response.is_error:
            return {
                "error": f"Reader request failed with status {response.status_code}: {_error_detail(response)}"
            }

        try:
            parsed = _ReaderResponse.model_validate(response.json())
        except (ValueError, ValidationError) as exc:
            logger.warning("Unexpected reader response for {}: {}", args.url, exc)
            return {"error": "Reader response could not be parsed"}

        content = parsed.data.content
        if len(content) > MAX_PAGE_CHARS:
            content = content[:MAX_PAGE_CHARS] + "\n\n[truncated]"
        return {"title": parsed.data.title, "url": parsed.data.url, "content": content}

    return read_page


# ---------------------------------------------------------------------------
# Logo generation (fal.ai Ideogram v3)
# ---------------------------------------------------------------------------


class CreateLogoArgs(BaseModel):
    prompt: str = Field(min_length=1, description="The text prompt for the logo generation")


class _FalImage(BaseModel):
    url: str
    content_type: str | None = None
    file_name: str | None = None


class _FalResponse(BaseModel):
    images: list[_FalImage] = Field(min_length=1)
    seed: int | None = None


def make_create_logo_tool(settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> Tool:
    @tool("create_logo", CreateLogoArgs)
    async def create_logo(args: CreateLogoArgs, ctx: ToolContext) -> dict:
        """Generate a logo or image from a text prompt.

        Returns the URLs of the generated images.
        """
        if not settings.fal_key:
            return {"error": "Fal AI API key is not configured."}

        logger.info("Generating logo | prompt={}", args.prompt[:80])
        async with httpx.AsyncClient(transport=transport, timeout=90.0) as client:
            try:
                response = await client.post(
                    settings.fal_logo_url,
                    json={"prompt": args.prompt},
                    headers={"Authorization": f"Key {settings.fal_key}"},
                )
            except httpx.HTTPError as exc:
                return {"error": f"Logo generation failed: {exc}"}

        if response.is_error:
            return {"error": f"Logo generation failed with status {response.status_code}: {_error_detail(response)}"}

        try:
            parsed = _FalResponse.model_validate(response.json())
        except (ValueError, ValidationError):
            return {"error": "Logo service returned an unexpected response"}

        return {"images": [image.model_dump(exclude_none=True) for image in parsed.images], "seed": parsed.seed}

    return create_logo
