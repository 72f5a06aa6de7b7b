"""Parse `mcphost://mcp/add?...` links into validated server configurations."""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from urllib.parse import parse_qsl, urlsplit

from pydantic import ValidationError

from mcphost.core.logger import get_logger
from mcphost.mcp.errors import DeepLinkInvalid
from mcphost.mcp.security import validate_whitelisted_command
from mcphost.models.server import ServerConfig, TransportType

logger = get_logger(__name__)

DEEP_LINK_SCHEME = "mcphost"


@dataclass(frozen=True)
class DeepLinkServer:
    name: str
    config: ServerConfig


def server_id_from_name(name: str) -> str:
    return re.sub(r"\s+", "-", name.strip().lower())


def parse_deep_link(url: str) -> DeepLinkServer:
    """Turn an add-server deep link into a config.

    Stdio links must pass whitelist validation, since the command comes from
    outside the application.
    """
    parts = urlsplit(url)
    if parts.scheme != DEEP_LINK_SCHEME:
        raise DeepLinkInvalid(f"Invalid protocol for deep link: {parts.scheme or '(none)'}")

    segments = [segment for segment in (parts.netloc, *parts.path.split("/")) if segment]
    if segments != ["mcp", "add"]:
        raise DeepLinkInvalid(f"Unknown deep link action: {'/'.join(segments) or '(none)'}")

    params = dict(parse_qsl(parts.query, keep_blank_values=True))
    name = params.get("name", "").strip()
    transport = params.get("type", "").strip()
    if not name or not transport:
        raise DeepLinkInvalid("Deep link requires both 'name' and 'type' parameters")
    if transport not in {member.value for member in TransportType}:
        raise DeepLinkInvalid(f"Invalid MCP server type: {transport}")

    entry: dict[str, object] = {"id": server_id_from_name(name), "transport": transport}
    if transport == TransportType.STDIO:
        command = params.get("command", "").strip()
        if not command:
            raise DeepLinkInvalid("Missing command for stdio MCP server")
        args_param = params.get("args", "")
        args = args_param.split(",") if args_param else []
        validate_whitelisted_command(command, args)
        entry.update(command=command, args=args, env={})
    else:
        base_url = params.get("url", "").strip()
        if not base_url:
            raise DeepLinkInvalid(f"Missing URL for {transport.upper()} MCP server")
        entry.update(base_url=base_url, headers=_parse_headers(params.get("headers")))

    try:
        config = ServerConfig.model_validate(entry)
    except ValidationError as exc:
        raise DeepLinkInvalid(f"Invalid server configuration in deep link: {exc}") from exc
    logger.info("Parsed MCP add deep link for %s (%s)", config.id, transport)
    return DeepLinkServer(name=name, config=config)


def _parse_headers(raw: str | None) -> dict[str, str]:
    if not raw:
        return {}
    try:
        headers = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise DeepLinkInvalid(f"Deep link headers are not valid JSON: {exc}") from exc
    if not isinstance(headers, dict):
        raise DeepLinkInvalid("Deep link headers must be a JSON object")
    return {str(key): str(value) for key, value in headers.items()}
