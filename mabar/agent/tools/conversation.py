"""Conversation tool — explicit request for more details."""

from __future__ import annotations

from langchain_core.tools import tool

from mabar.agent.tools.base import ask_response
from mabar.memory.models import ToolboxResponse

_GREETING = (
    "Hi! I'm MaBar, your padel buddy. Tell me when and where you'd like to play "
    "and your level, and I'll find you a game."
)


def make_conversation_tools() -> list:

    @tool("needMoreInfo")
    async def need_more_info(question: str = "") -> ToolboxResponse:
        """Ask the user for the details still missing (time, area, skill level)."""
        return ask_response(question or _GREETING)

    return [need_more_info]
