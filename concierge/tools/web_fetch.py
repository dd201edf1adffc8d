import asyncio
import html
import re
from typing import Any, Dict
from urllib.parse import urlparse

import aiohttp

from concierge.exceptions import ToolExecutionError, ToolInputValidationError
from concierge.tools.base import BaseTool

MAX_CONTENT_CHARS = 4000

_SCRIPT_STYLE = re.compile(r"<(script|style)[^>]*>.*?</\1>", re.IGNORECASE | re.DOTALL)
_TAG = re.compile(r"<[^>]+>")
_WHITESPACE = re.compile(r"\s+")


def html_to_text(markup: str) -> str:
    text = _SCRIPT_STYLE.sub(" ", markup)
    text = _TAG.sub(" ", text)
    return _WHITESPACE.sub(" ", html.unescape(text)).strip()


class WebFetchTool(BaseTool):
    """Fetches a web page and returns its readable text, truncated."""

    priority = 50
    capability = "Reading web pages"

    def __init__(self, timeout: float = 10.0, max_chars: int = MAX_CONTENT_CHARS):
        super().__init__()
        self.timeout = timeout
        self.max_chars = max_chars

    @property
    def name(self) -> str:
        return "web_fetch"

    @property
    def description(self) -> str:
        return "Fetch the text content of a web page by URL."

    @property
    def parameters(self) -> Dict[str, Any]:
        return {
            "type": "object",
            "properties": {
                "url": {"type": "string", "description": "http:// or https:// URL"}
            },
            "required": ["url"],
        }

    async def execute(self, url: str = "", **kwargs) -> str:
        parsed = urlparse(url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise ToolInputValidationError(
                f"Invalid URL: {url!r}", tool_name=self.name, invalid_input=url
            )

        timeout = aiohttp.ClientTimeout(total=self.timeout)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as response:
                    if response.status >= 400:
                        raise ToolExecutionError(
                            f"HTTP {response.status} fetching {url}", tool_name=self.name
                        )
                    body = await response.text(errors="replace")
                    content_type = response.headers.get("Content-Type", "")
        except asyncio.TimeoutError as e:
            raise ToolExecutionError(
                f"Request timeout fetching {url}", tool_name=self.name, original_error=e
            ) from e
        except aiohttp.ClientError as e:
            raise ToolExecutionError(
                f"Network error fetching {url}: {e}",
                tool_name=self.name,
                original_error=e,
            ) from e

        text = html_to_text(body) if "html" in content_type else body.strip()
        if len(text) > self.max_chars:
            text = text[: self.max_chars] + "... [truncated]"
        return text
