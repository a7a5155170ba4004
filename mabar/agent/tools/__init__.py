"""Toolbox — ToolRegistry and the factory that creates all matchmaking tools."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

from langchain_core.tools import BaseTool
from loguru import logger

from mabar.agent.analyzer import analyze_price_sensitivity
from mabar.agent.tools.base import error_response
from mabar.agent.tools.bookings import make_booking_tools
from mabar.agent.tools.conversation import make_conversation_tools
from mabar.agent.tools.players import make_player_tools
from mabar.agent.tools.sessions import make_session_tools
from mabar.agent.tools.venues import make_venue_tools
from mabar.core.config.schema import Config
from mabar.core.parse.client import ParseClient
from mabar.core.parse.repository import MatchmakingRepository
from mabar.memory.models import ToolboxResponse

# Action names the logic model tends to invent
ACTION_ALIASES: dict[str, str] = {
    "findVenues": "getAvailableVenues",
    "searchVenues": "getAvailableVenues",
    "findPlayers": "getAvailablePlayers",
    "findSessions": "findOpenSessions",
    "getOpenSessions": "findOpenSessions",
    "createSession": "createNewSession",
    "bookCourt": "createNewSession",
    "getBookings": "getUserBookings",
}

# Parameter names the logic model uses (after snake_case) → tool arg names
_PARAM_ALIASES: dict[str, str] = {
    "time_slot": "time",
    "area": "location",
    "skill": "skill_level",
    "level": "skill_level",
    "budget": "price_range",
    "venue": "venue_name",
    "session_date": "date",
}

_CAMEL = re.compile(r"(?<!^)(?=[A-Z])")


@dataclass
class ToolInfo:
    """Metadata for a registered tool."""

    tool: BaseTool
    group: str


class ToolRegistry:
    """Name → tool lookup plus the single execution entry point for actions."""

    def __init__(self, parse: ParseClient | None = None) -> None:
        self.parse = parse
        self._tools: dict[str, ToolInfo] = {}
        self._groups: dict[str, list[str]] = {}

    def register_group(self, group: str, tools: list) -> None:
        """Register a list of tools under a group name."""
        self._groups[group] = []
        for t in tools:
            self._tools[t.name] = ToolInfo(tool=t, group=group)
            self._groups[group].append(t.name)

    def get_catalog(self) -> list[dict[str, Any]]:
        """Full catalog for API introspection."""
        result = []
        for name in sorted(self._tools):
            info = self._tools[name]
            result.append({
                "name": name,
                "group": info.group,
                "description": (info.tool.description or "").split("\n")[0],
            })
        return result

    def catalog_text(self) -> str:
        """Action list for the logic model's system prompt."""
        lines = []
        for name, info in self._tools.items():
            fields = []
            if info.tool.args_schema:
                fields = [f for f in info.tool.args_schema.model_fields if f != "session_token"]
            args = ", ".join(fields)
            lines.append(f"- {name}({args}): {(info.tool.description or '').strip()}")
        return "\n".join(lines)

    def resolve(self, action: str | None) -> str | None:
        """Canonical action name, or None when unknown."""
        if not action:
            return None
        name = ACTION_ALIASES.get(action, action)
        return name if name in self._tools else None

    async def execute(
        self,
        action: str | None,
        params: dict[str, Any] | None = None,
        session_token: str | None = None,
    ) -> ToolboxResponse:
        """Run one toolbox action.

        Parameters
        ----------
        action : str
            Action name (aliases accepted).
        params : dict, optional
            Model-supplied parameters, camelCase or snake_case.
        session_token : str, optional
            Injected into tools that need the logged-in user.

        Returns
        -------
        ToolboxResponse
            Never raises; backend failures become a service-error response.
        """
        name = self.resolve(action)
        if name is None:
            logger.warning(f"Unknown toolbox action: {action}")
            return error_response(str(action), f"Unknown action '{action}'")

        tool = self._tools[name].tool
        args = _normalize_params(params or {})
        tool_fields = set(tool.args_schema.model_fields) if tool.args_schema else set()
        args = {k: v for k, v in args.items() if k in tool_fields and v is not None}
        if "session_token" in tool_fields:
            args["session_token"] = session_token or ""

        try:
            shown = {k: v for k, v in args.items() if k != "session_token"}
            logger.debug(f"Executing action: {name}({shown})")
            result = await tool.ainvoke(args)
        except Exception as e:
            logger.error(f"Toolbox error: {name} → {e}")
            return error_response(name, str(e))

        if not isinstance(result, ToolboxResponse):
            result = ToolboxResponse.model_validate(result)
        logger.debug(
            f"Action result: {name} → {result.results.total_results} result(s), "
            f"{len(result.session_cards)} card(s)"
        )
        return result

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: str) -> bool:
        return name in self._tools


def _normalize_params(params: dict[str, Any]) -> dict[str, Any]:
    """camelCase → snake_case, then map alias keys onto tool arg names."""
    out: dict[str, Any] = {}
    for key, value in params.items():
        snake = _CAMEL.sub("_", key).lower()
        target = _PARAM_ALIASES.get(snake, snake)
        # An explicit tool arg wins over its alias
        if target in out and snake != target:
            continue
        if isinstance(value, str):
            value = value.strip()
        out[target] = value
    if "skill_level" in out and isinstance(out["skill_level"], str):
        out["skill_level"] = out["skill_level"].lower()
    # "budget", "under 200k" → numeric range
    if "price_range" in out and not isinstance(out["price_range"], dict):
        out["price_range"] = analyze_price_sensitivity(str(out["price_range"])).price_range
    if isinstance(out.get("facilities"), str):
        out["facilities"] = [f.strip() for f in out["facilities"].split(",") if f.strip()]
    return out


def make_tools(config: Config, parse: ParseClient | None = None) -> ToolRegistry:
    """Create all matchmaking tools and return a ToolRegistry.

    Parameters
    ----------
    config : Config
        Application config.
    parse : ParseClient, optional
        Backend client; built from ``config.parse`` when omitted.

    Returns
    -------
    ToolRegistry
        Registry with all tools registered under their groups.
    """
    parse = parse or ParseClient.from_config(config)
    repo = MatchmakingRepository(parse, city=config.assistant.city)
    max_cards = config.assistant.max_cards

    registry = ToolRegistry(parse)
    registry.register_group("venues", make_venue_tools(repo, max_cards))
    registry.register_group("players", make_player_tools(repo, max_cards))
    registry.register_group("sessions", make_session_tools(repo, max_cards))
    registry.register_group("bookings", make_booking_tools(repo, max_cards))
    registry.register_group("conversation", make_conversation_tools())

    if not config.parse_enabled:
        logger.warning("Parse backend not configured — toolbox actions will fail")
    logger.debug(f"Toolbox ready: {len(registry)} actions")
    return registry


__all__ = ["ACTION_ALIASES", "ToolInfo", "ToolRegistry", "make_tools"]
