"""Environment-driven configuration for the relay and the tool server."""

import os
import shlex
from dataclasses import dataclass, field

DEFAULT_TOOL_SERVER_COMMAND = "python -m toolrelay.tool_server --stdio"


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    return int(value) if value else default


def _env_list(name: str, default: list[str]) -> list[str]:
    value = os.getenv(name)
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass
class ToolServerConnectionConfig:
    """How the relay reaches the MCP tool server.

    A configured ``url`` selects streamable HTTP; otherwise the server is
    spawned as a stdio subprocess from ``command``.
    """

    url: str | None = None
    token: str | None = None
    command: list[str] = field(default_factory=lambda: shlex.split(DEFAULT_TOOL_SERVER_COMMAND))

    @property
    def transport(self) -> str:
        return "http" if self.url else "stdio"

    @classmethod
    def from_env(cls) -> "ToolServerConnectionConfig":
        return cls(
            url=os.getenv("TOOL_SERVER_URL") or None,
            token=os.getenv("TOOL_SERVER_TOKEN") or None,
            command=shlex.split(os.getenv("TOOL_SERVER_COMMAND", DEFAULT_TOOL_SERVER_COMMAND)),
        )


@dataclass
class RelaySettings:
    """Settings for the chat relay service."""

    port: int = 3001
    cors_origins: list[str] = field(default_factory=lambda: ["http://localhost:3000"])
    max_turns: int = 10
    max_tool_calls: int = 50
    chunk_size: int = 5
    tool_server: ToolServerConnectionConfig = field(default_factory=ToolServerConnectionConfig)

    @classmethod
    def from_env(cls) -> "RelaySettings":
        return cls(
            port=_env_int("PORT", 3001),
            cors_origins=_env_list("CORS_ORIGINS", ["http://localhost:3000"]),
            max_turns=_env_int("MAX_AGENT_TURNS", 10),
            max_tool_calls=_env_int("MAX_TOOL_CALLS", 50),
            chunk_size=_env_int("CHUNK_SIZE", 5),
            tool_server=ToolServerConnectionConfig.from_env(),
        )


@dataclass
class ToolServerSettings:
    """Settings for the weather MCP tool server."""

    port: int = 3002
    session_idle_seconds: float = 5 * 60
    nws_api_base: str = "https://api.weather.gov"
    user_agent: str = "weather-app/1.0"

    @classmethod
    def from_env(cls) -> "ToolServerSettings":
        return cls(
            port=_env_int("PORT", 3002),
            session_idle_seconds=float(os.getenv("SESSION_IDLE_SECONDS", 5 * 60)),
            nws_api_base=os.getenv("NWS_API_BASE", "https://api.weather.gov"),
        )
