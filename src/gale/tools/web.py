"""Web tools: URL fetch and grounded search."""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING
from urllib import parse as urllib_parse

import html2markdown
import httpx
from loguru import logger
from pydantic import BaseModel, Field

from gale.tools.base import BaseTool, CancellationToken, ProgressCallback, ToolErrorType, ToolResult

if TYPE_CHECKING:
    from gale.client.grounding import GroundedAnswer

MAX_URLS = 20
MAX_FETCH_BYTES = 1_000_000
WEB_REQUEST_TIMEOUT_SECONDS = 20
WEB_USER_AGENT = "gale-web-tools/1.0"

GroundedSearch = Callable[[str], Awaitable["GroundedAnswer | None"]]


def extract_urls(prompt: str) -> tuple[list[str], list[str]]:
    """Split whitespace tokens of ``prompt`` into http(s) URLs and errors."""
    urls: list[str] = []
    errors: list[str] = []
    for token in prompt.split():
        token = token.strip("<>()[]{}\"',;")
        if "://" not in token:
            continue
        parsed = urllib_parse.urlparse(token)
        if parsed.scheme not in {"http", "https"}:
            errors.append(f'Unsupported protocol in URL: "{token}". Only http and https are supported.')
            continue
        if not parsed.netloc:
            errors.append(f'Malformed URL: "{token}"')
            continue
        if token not in urls:
            urls.append(token)
    return urls[:MAX_URLS], errors


def _html_to_markdown(content: str) -> str:
    rendered = html2markdown.convert(content)
    lines = [line.rstrip() for line in rendered.splitlines()]
    return "\n".join(line for line in lines if line.strip())


class WebFetchInput(BaseModel):
    prompt: str = Field(
        ...,
        min_length=1,
        description="The prompt containing URL(s) (up to 20) and instructions for processing their content.",
    )


class WebFetchTool(BaseTool):
    name = "web_fetch"
    display_name = "WebFetch"
    description = (
        "Fetches content from web URLs (up to 20) found in the prompt and converts HTML to markdown. "
        "Useful for reading web pages, documentation and online resources."
    )
    params_model = WebFetchInput
    cancel_label = "Web fetch"

    def __init__(self, *, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._transport = transport

    async def invoke(
        self, params: WebFetchInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        urls, errors = extract_urls(params.prompt)
        if errors:
            return ToolResult.failure(
                f"URL parsing errors: {', '.join(errors)}", ToolErrorType.INVALID_PARAMETERS, display="Error: Invalid URLs"
            )
        if not urls:
            return ToolResult.failure(
                "No valid URLs found in prompt", ToolErrorType.INVALID_PARAMETERS, display="Error: No URLs"
            )

        sections: list[str] = []
        async with httpx.AsyncClient(
            timeout=WEB_REQUEST_TIMEOUT_SECONDS,
            transport=self._transport,
            follow_redirects=True,
            headers={
                "User-Agent": WEB_USER_AGENT,
                "Accept": "text/html,application/xhtml+xml,application/xml;q=0.9,*/*;q=0.8",
            },
        ) as client:
            for url in urls:
                if cancel.cancelled:
                    return ToolResult.cancelled(self.cancel_label)
                try:
                    response = await client.get(url)
                except httpx.HTTPError as exc:
                    logger.warning("tool.web_fetch.error url={} error={}", url, exc)
                    return ToolResult.failure(f"Error fetching {url}: {exc}", ToolErrorType.WEB_FETCH_FAILED)
                if not response.is_success:
                    return ToolResult.failure(
                        f"Request for {url} failed with status code {response.status_code} {response.reason_phrase}",
                        ToolErrorType.WEB_FETCH_FAILED,
                    )
                sections.append(self._render(url, response))
                if progress is not None:
                    progress(f"Fetched {url}")

        return ToolResult.success("\n\n".join(sections), display=f"Fetched {len(urls)} URL(s)")

    @staticmethod
    def _render(url: str, response: httpx.Response) -> str:
        body = response.content
        truncated = len(body) > MAX_FETCH_BYTES
        text = body[:MAX_FETCH_BYTES].decode(response.encoding or "utf-8", errors="replace")
        if "html" in response.headers.get("content-type", "html"):
            text = _html_to_markdown(text)
        text = text.strip() or "(empty response body)"
        if truncated:
            text += "\n\n[truncated: response exceeded byte limit]"
        return f"Content from {url}:\n{text}"


class WebSearchInput(BaseModel):
    query: str = Field(..., min_length=1, description="The search query.")


class WebSearchTool(BaseTool):
    name = "web_search"
    display_name = "WebSearch"
    description = "Searches the web using Google Search grounding. Returns an answer with source citations."
    params_model = WebSearchInput
    cancel_label = "Web search"

    def __init__(self, search: GroundedSearch) -> None:
        self._search = search

    async def invoke(
        self, params: WebSearchInput, cancel: CancellationToken, progress: ProgressCallback | None = None
    ) -> ToolResult:
        try:
            answer = await self._search(params.query)
        except Exception as exc:
            logger.warning("tool.web_search.error query={} error={}", params.query, exc)
            return ToolResult.failure(
                f'Error during web search for query "{params.query}": {exc}',
                ToolErrorType.WEB_SEARCH_FAILED,
                display="Error performing web search",
            )
        if answer is None:
            return ToolResult.success(
                f'No search results or information found for query: "{params.query}"', display="No information found"
            )
        if progress is not None:
            progress("Web search completed")
        return ToolResult.success(
            f'Web search results for "{params.query}":\n\n{answer.render()}',
            display=f'Search results for "{params.query}" returned',
        )
