"""Pydantic data models — matchmaking domain, LLM output schemas, API."""

from __future__ import annotations

from typing import Any, Literal, get_args

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

Intent = Literal[
    "find_venue", "find_players", "join_session", "create_session", "general_inquiry"
]
CardType = Literal[
    "existing-session", "create-new", "no-availability", "user-booking", "join-confirmation"
]
PresentationFormat = Literal["cards", "text", "mixed"]

INTENTS: frozenset[str] = frozenset(get_args(Intent))
CARD_TYPES: frozenset[str] = frozenset(get_args(CardType))
FORMATS: frozenset[str] = frozenset(get_args(PresentationFormat))


# ════════════════════════════════════════════════════════════
# DOMAIN MODELS
# ════════════════════════════════════════════════════════════


class ConversationMessage(BaseModel):
    role: Literal["user", "model"]
    text: str
    timestamp: float = 0.0


class SessionCard(BaseModel):
    """UI payload describing one recommended option."""

    type: CardType
    data: dict[str, Any] = Field(default_factory=dict)


class ToolboxResult(BaseModel):
    """Raw records returned by a toolbox action."""

    venues: list[dict[str, Any]] = Field(default_factory=list)
    players: list[dict[str, Any]] = Field(default_factory=list)
    sessions: list[dict[str, Any]] = Field(default_factory=list)
    bookings: list[dict[str, Any]] = Field(default_factory=list)
    total_results: int = 0
    error: str | None = None
    requires_auth: bool = False

    def model_post_init(self, __context: Any) -> None:
        if not self.total_results:
            self.total_results = (
                len(self.venues) + len(self.players) + len(self.sessions) + len(self.bookings)
            )

    @property
    def has_results(self) -> bool:
        return self.total_results > 0 and not self.error


class ToolboxResponse(BaseModel):
    """What every toolbox action returns."""

    text: str = ""
    session_cards: list[SessionCard] = Field(default_factory=list)
    needs_more_info: bool = False
    results: ToolboxResult = Field(default_factory=ToolboxResult)


class IntentAnalysis(BaseModel):
    intent: Intent = "general_inquiry"
    confidence: float = 0.5
    extracted_info: dict[str, Any] = Field(default_factory=dict)
    missing_info: list[str] = Field(default_factory=list)
    is_complete: bool = False


class InfoGatheringResult(BaseModel):
    needs_more_info: bool = True
    next_question: str = "How can I help you with padel?"
    accumulated_info: dict[str, Any] = Field(default_factory=dict)
    ready_for_toolbox: bool = False
    toolbox_action: str | None = None
    toolbox_params: dict[str, Any] = Field(default_factory=dict)
    intent: Intent = "general_inquiry"
    confidence: float = 0.5


class AIResponse(BaseModel):
    """Final answer of one conversational turn."""

    text: str
    session_cards: list[SessionCard] = Field(default_factory=list)
    needs_more_info: bool = False
    conversation_complete: bool = False


# ════════════════════════════════════════════════════════════
# LLM OUTPUT SCHEMAS (validated before use)
# ════════════════════════════════════════════════════════════


class LogicDecision(BaseModel):
    """Info-gathering decision emitted by the logic model."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    intent: str = "general_inquiry"
    confidence: float = 0.5
    extracted_info: dict[str, Any] = Field(default_factory=dict, alias="extractedInfo")
    accumulated_info: dict[str, Any] = Field(default_factory=dict, alias="accumulatedInfo")
    missing_info: list[str] = Field(default_factory=list, alias="missingInfo")
    is_complete: bool = Field(default=False, alias="isComplete")
    needs_more_info: bool = Field(default=True, alias="needsMoreInfo")
    next_question: str | None = Field(default=None, alias="nextQuestion")
    ready_for_toolbox: bool = Field(default=False, alias="readyForToolbox")
    toolbox_action: str | None = Field(default=None, alias="toolboxAction")
    toolbox_params: dict[str, Any] = Field(default_factory=dict, alias="toolboxParams")

    @field_validator("intent", mode="before")
    @classmethod
    def _known_intent(cls, v: Any) -> str:
        return v if v in INTENTS else "general_inquiry"

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp(cls, v: Any) -> float:
        try:
            return min(1.0, max(0.0, float(v)))
        except (TypeError, ValueError):
            return 0.5

    @field_validator("extracted_info", "accumulated_info", "toolbox_params", mode="before")
    @classmethod
    def _dict_or_empty(cls, v: Any) -> Any:
        return {} if v is None else v

    @field_validator("missing_info", mode="before")
    @classmethod
    def _list_or_empty(cls, v: Any) -> Any:
        return [] if v is None else v

    @field_validator("needs_more_info", mode="before")
    @classmethod
    def _only_false_is_false(cls, v: Any) -> bool:
        return v is not False


class PresenterOutput(BaseModel):
    """Presentation emitted by the presenter model."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    format: str = "mixed"
    message: str = Field(min_length=1, validation_alias=AliasChoices("message", "text"))
    cards: list[Any] = Field(
        default_factory=list, validation_alias=AliasChoices("cards", "sessionCards")
    )
    reasoning: str = ""
    alternatives: list[str] = Field(default_factory=list)

    @field_validator("format", mode="before")
    @classmethod
    def _known_format(cls, v: Any) -> str:
        return v if v in FORMATS else "mixed"

    @field_validator("cards", "alternatives", mode="before")
    @classmethod
    def _list_or_empty(cls, v: Any) -> Any:
        return [] if v is None else v


# ════════════════════════════════════════════════════════════
# API REQUEST / RESPONSE
# ════════════════════════════════════════════════════════════


class ChatRequest(BaseModel):
    message: str = Field(min_length=1)
    user_id: str | None = None
    session_id: str | None = None
    interaction_type: Literal["text", "card"] = "text"
    debug: bool = False


class ChatResponse(BaseModel):
    response: str
    session_id: str
    session_cards: list[SessionCard] = Field(default_factory=list)
    needs_more_info: bool = False
    conversation_complete: bool = False
    trace: dict[str, Any] | None = None


class AnalyzeRequest(BaseModel):
    text: str


class ConversationStateResponse(BaseModel):
    session_id: str
    history: list[ConversationMessage] = Field(default_factory=list)
    accumulated: dict[str, Any] = Field(default_factory=dict)


class HealthResponse(BaseModel):
    status: str
    agent_ready: bool
    version: str = ""
    parse_configured: bool = False
    tools_count: int = 0


class SessionInfo(BaseModel):
    session_id: str
    started_at: str
    ended_at: str | None = None
    close_reason: str | None = None
    message_count: int = 0
