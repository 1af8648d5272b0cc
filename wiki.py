from typing import Optional
from urllib.parse import quote

import httpx

import config
from errors import ParseError, WikiRedirectError


class WikiClient:
    """MediaWiki API access over a (rate limited) httpx client."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        api_url: str = None,
        base_url: str = None,
    ):
        self.client = client
        self.api_url = api_url or config.WIKI_API_URL
        self.base_url = (base_url or config.WIKI_BASE_URL).rstrip("/") + "/"

    async def _parse(self, page: str, prop: str) -> dict:
        response = await self.client.get(
            self.api_url,
            params={
                "page": page,
                "action": "parse",
                "format": "json",
                "prop": prop,
                "formatversion": 2,
            },
        )
        response.raise_for_status()
        data = response.json()
        if "error" in data:
            raise ParseError(page, reason=data["error"].get("info", "wiki API error"))
        return data.get("parse") or {}

    async def get_parse_tree(self, page: str) -> str:
        parse = await self._parse(page, "parsetree")
        tree = parse.get("parsetree")
        if tree is None:
            raise ParseError(page, reason="wiki API response is missing 'parsetree'")
        if tree.startswith("<root>#REDIRECT"):
            raise WikiRedirectError(page, _redirect_target(tree))
        return tree

    async def get_html(self, page: str) -> str:
        parse = await self._parse(page, "text")
        text = parse.get("text")
        if isinstance(text, dict):  # formatversion 1
            text = text.get("*")
        if text is None:
            raise ParseError(page, reason="wiki API response is missing 'text'")
        return text

    async def download_file(self, name: str) -> Optional[bytes]:
        """File contents, or None if the wiki has no such file."""
        url = self.base_url + "Special:Redirect/file/" + quote(name.replace(" ", "_"))
        response = await self.client.get(url)
        if response.status_code == 404:
            return None
        response.raise_for_status()
        return response.content


def _redirect_target(tree: str) -> str:
    start = tree.find("[[")
    end = tree.find("]]", start)
    if start < 0 or end < 0:
        return ""
    return tree[start + 2 : end]
