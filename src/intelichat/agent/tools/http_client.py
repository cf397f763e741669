"""
HTTP Tool Client.

Executes database-configured HTTP tool routes:
- `{key}` placeholders in the route path are filled from the arguments
- GET sends the remaining arguments as query parameters, other methods as JSON body
- Bearer (login request, token cached per auth id) and api-key (header or query) auth
- HTTP failures are returned as `{"error": ...}` results rather than raised
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Optional

import aiohttp

from ..domain.entities import ToolAuth, ToolRoute
from ..domain.exceptions import ToolExecutionError, UnknownToolError
from ..domain.ports import IAgentStore
from ..orchestrator.cache import TTLCache

logger = logging.getLogger(__name__)


@dataclass
class HttpToolConfig:
    """Configuration for the HTTP tool client."""

    timeout: float = 30.0
    route_cache_ttl_seconds: float = 300.0
    verify_ssl: bool = True


@dataclass
class HttpRequest:
    """A fully built tool request."""

    method: str
    url: str
    headers: dict[str, str] = field(default_factory=dict)
    params: dict[str, Any] = field(default_factory=dict)
    json_body: Optional[dict[str, Any]] = None


def build_request(
    route: ToolRoute,
    arguments: dict[str, Any],
    bearer_token: Optional[str] = None,
) -> HttpRequest:
    """Build the HTTP request for a route and the model's arguments.

    Arguments consumed by path placeholders are not sent again as
    parameters or body fields.
    """
    url = f"{route.base_url}{route.path}"
    remaining = dict(arguments)
    for key, value in arguments.items():
        placeholder = f"{{{key}}}"
        if placeholder in url:
            url = url.replace(placeholder, str(value))
            remaining.pop(key)

    method = (route.method or "POST").upper()
    request = HttpRequest(
        method=method,
        url=url,
        headers={"Content-Type": "application/json", "Accept": "application/json"},
    )

    auth = route.auth
    if auth is not None:
        if auth.type == "bearer" and bearer_token:
            request.headers["Authorization"] = f"Bearer {bearer_token}"
        elif auth.type == "api-key":
            key_name = auth.config.get("key_name")
            key_value = auth.config.get("key_value")
            if key_name and key_value is not None:
                if auth.config.get("in") == "query":
                    request.params[key_name] = key_value
                elif auth.config.get("in") == "header":
                    request.headers[key_name] = str(key_value)

    if method == "GET":
        request.params.update(remaining)
    else:
        request.json_body = remaining

    return request


class HttpToolClient:
    """Client for HTTP-backed tools configured in the agent store.

    Usage:
        client = HttpToolClient(agent_store, HttpToolConfig(timeout=30))

        result = await client.call_tool("pendingDocuments", {"dot_number": "123"})
        if "error" in result:
            ...

        await client.close()
    """

    def __init__(self, store: IAgentStore, config: Optional[HttpToolConfig] = None):
        """Initialize the client.

        Args:
            store: Store holding the tool routes
            config: Client configuration
        """
        self.store = store
        self.config = config or HttpToolConfig()
        self._session: Optional[aiohttp.ClientSession] = None
        self._routes: TTLCache[ToolRoute] = TTLCache(self.config.route_cache_ttl_seconds)
        self._tokens: dict[int, str] = {}

    async def _get_session(self) -> aiohttp.ClientSession:
        """Get or create HTTP session."""
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.config.timeout)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self) -> None:
        """Close the client session."""
        if self._session and not self._session.closed:
            await self._session.close()
            self._session = None

    async def get_route(self, tool_name: str) -> Optional[ToolRoute]:
        """Return the configured route for a tool (cached)."""
        route = self._routes.get(tool_name)
        if route is None:
            route = await self.store.get_tool_route(tool_name)
            if route is not None:
                self._routes.set(tool_name, route)
        return route

    async def has_tool(self, tool_name: str) -> bool:
        return await self.get_route(tool_name) is not None

    async def _get_bearer_token(self, auth: ToolAuth) -> str:
        """Log in with the auth's login request and cache the token."""
        if auth.id in self._tokens:
            return self._tokens[auth.id]

        token_url = auth.config.get("token_url")
        if not token_url:
            raise ToolExecutionError(
                f"Auth configuration {auth.id} has no token_url",
                tool_name="auth",
            )

        session = await self._get_session()
        async with session.request(
            (auth.config.get("method") or "POST").upper(),
            token_url,
            headers=auth.config.get("headers") or {"Content-Type": "application/json"},
            json=auth.config.get("body"),
            ssl=self.config.verify_ssl,
        ) as response:
            response.raise_for_status()
            data = await response.json()

        token = data.get(auth.config.get("token_path", "token")) if isinstance(data, dict) else None
        if not token:
            raise ToolExecutionError(
                "Token not found in the login response",
                tool_name="auth",
            )

        self._tokens[auth.id] = token
        return token

    async def call_tool(self, tool_name: str, arguments: dict[str, Any]) -> Any:
        """Execute an HTTP tool.

        Returns:
            Decoded response body, or `{"error": ...}` on HTTP failure

        Raises:
            UnknownToolError: If no active route is configured for the tool
        """
        route = await self.get_route(tool_name)
        if route is None:
            raise UnknownToolError(tool_name)

        bearer_token = None
        if route.auth is not None and route.auth.type == "bearer":
            try:
                bearer_token = await self._get_bearer_token(route.auth)
            except (aiohttp.ClientError, ToolExecutionError) as e:
                logger.error(f"Authentication for tool {tool_name} failed: {e}")
                return {"error": f"Authentication failed: {e}"}

        request = build_request(route, arguments, bearer_token=bearer_token)
        logger.info(f"Calling tool {tool_name}: {request.method} {request.url}")

        session = await self._get_session()
        try:
            async with session.request(
                request.method,
                request.url,
                headers=request.headers,
                params=request.params or None,
                json=request.json_body,
                ssl=self.config.verify_ssl,
            ) as response:
                if response.status >= 400:
                    text = await response.text()
                    logger.error(
                        f"Tool {tool_name} returned {response.status}: {text[:500]}"
                    )
                    if response.status == 401 and route.auth is not None:
                        self._tokens.pop(route.auth.id, None)
                    return {"error": f"Request failed with status code {response.status}"}

                if response.content_type == "application/json":
                    return await response.json()
                return {"response": await response.text()}

        except aiohttp.ClientError as e:
            logger.error(f"Error calling tool {tool_name}: {e}")
            return {"error": str(e)}
