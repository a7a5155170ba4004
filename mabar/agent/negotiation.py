"""Presentation policy — choose cards / text / mixed for a set of toolbox results.

A deterministic propose/evaluate loop with a hard round budget. The proposer
looks at result quality, the evaluator checks UX limits (option count,
enough context for alternatives). No LLM calls.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from loguru import logger

from mabar.memory.models import ToolboxResult


class Complexity(str, Enum):
    SIMPLE = "simple"
    MEDIUM = "medium"
    COMPLEX = "complex"


class Approach(str, Enum):
    SHOW_RESULTS_WITH_CARDS = "show_results_with_cards"
    SHOW_RESULTS_WITH_EXPLANATION = "show_results_with_explanation"
    PROVIDE_ALTERNATIVES = "provide_alternatives"
    SIMPLIFY_PRESENTATION = "simplify_presentation"
    GATHER_MORE_INFO = "gather_more_info"
    HYBRID_APPROACH = "hybrid_approach"


class Concern(str, Enum):
    NONE = ""
    TOO_MANY_OPTIONS = "too_many_options"
    TOO_COMPLEX = "too_complex"
    INSUFFICIENT_INFO = "insufficient_info"


# Evaluator formats → presenter formats
_FORMATS = {
    "cards": "cards",
    "text": "text",
    "simple_text": "text",
    "text_with_suggestions": "text",
    "mixed": "mixed",
}

MAX_VENUE_CARDS = 5
MAX_PLAYER_CARDS = 8


@dataclass
class Proposal:
    approach: Approach
    reasoning: str
    round: int


@dataclass
class Evaluation:
    agrees: bool
    reasoning: str
    concern: Concern = Concern.NONE
    final_decision: dict[str, Any] | None = None


@dataclass
class NegotiationRound:
    round: int
    proposal: Proposal
    evaluation: Evaluation


@dataclass
class PresentationDecision:
    """Outcome of the policy: what format to present in, and why."""

    agreed: bool
    final_decision: dict[str, Any]
    reasoning: str
    rounds: int
    complexity: Complexity
    history: list[NegotiationRound] = field(default_factory=list)

    @property
    def format(self) -> str:
        return _FORMATS.get(self.final_decision.get("format", "mixed"), "mixed")

    def to_dict(self) -> dict[str, Any]:
        return {
            "agreed": self.agreed,
            "format": self.format,
            "final_decision": self.final_decision,
            "reasoning": self.reasoning,
            "rounds": self.rounds,
            "complexity": self.complexity.value,
            "history": [
                {
                    "round": r.round,
                    "approach": r.proposal.approach.value,
                    "agrees": r.evaluation.agrees,
                    "concern": r.evaluation.concern.value,
                }
                for r in self.history
            ],
        }


class PresentationPolicy:
    """Bounded propose/evaluate loop.

    Parameters
    ----------
    max_rounds : int
        Round budget; exhausting it yields the conservative text decision.
    """

    def __init__(self, max_rounds: int = 3) -> None:
        self.max_rounds = max_rounds

    def decide(self, results: ToolboxResult, analysis: dict[str, Any]) -> PresentationDecision:
        """Pick a presentation format.

        Parameters
        ----------
        results : ToolboxResult
            Raw toolbox records.
        analysis : dict
            ``confidence`` (float) and ``user_context`` (accumulated info).
        """
        complexity = self.assess_complexity(results, analysis)
        if complexity is Complexity.SIMPLE:
            return self.quick_consensus(results)

        history: list[NegotiationRound] = []
        previous: Evaluation | None = None
        for round_no in range(1, self.max_rounds + 1):
            proposal = self.propose(round_no, results, analysis, previous)
            evaluation = self.evaluate(proposal, results, analysis)
            history.append(NegotiationRound(round_no, proposal, evaluation))
            logger.debug(
                f"Negotiation round {round_no}: {proposal.approach.value} → "
                f"{'agree' if evaluation.agrees else evaluation.concern.value}"
            )
            if evaluation.agrees and evaluation.final_decision is not None:
                return PresentationDecision(
                    agreed=True,
                    final_decision=evaluation.final_decision,
                    reasoning=evaluation.reasoning,
                    rounds=round_no,
                    complexity=complexity,
                    history=history,
                )
            previous = evaluation

        logger.info(f"No consensus after {self.max_rounds} round(s), using conservative text")
        return PresentationDecision(
            agreed=False,
            final_decision={"format": "text", "approach": "conservative"},
            reasoning="negotiation timeout",
            rounds=len(history),
            complexity=complexity,
            history=history,
        )

    # ── Policy rules ────────────────────────────────────────

    @staticmethod
    def assess_complexity(results: ToolboxResult, analysis: dict[str, Any]) -> Complexity:
        has_results = _has_results(results)
        confidence = analysis.get("confidence", 0.5)
        context = analysis.get("user_context") or {}

        if has_results and confidence > 0.8 and len(context) >= 2:
            return Complexity.SIMPLE
        if not has_results or confidence < 0.4 or not context:
            return Complexity.COMPLEX
        return Complexity.MEDIUM

    @staticmethod
    def quick_consensus(results: ToolboxResult) -> PresentationDecision:
        has_results = _has_results(results)
        return PresentationDecision(
            agreed=True,
            final_decision={
                "format": "cards" if has_results else "text",
                "approach": "standard",
            },
            reasoning="clear results available" if has_results else "no results, provide guidance",
            rounds=0,
            complexity=Complexity.SIMPLE,
        )

    @staticmethod
    def propose(
        round_no: int,
        results: ToolboxResult,
        analysis: dict[str, Any],
        previous: Evaluation | None = None,
    ) -> Proposal:
        if round_no == 1 or previous is None:
            if _has_results(results) and analysis.get("confidence", 0.5) > 0.7:
                return Proposal(
                    Approach.SHOW_RESULTS_WITH_CARDS,
                    "high-confidence results fit cards",
                    round_no,
                )
            if _has_results(results):
                return Proposal(
                    Approach.SHOW_RESULTS_WITH_EXPLANATION,
                    "results with lower confidence need explanation",
                    round_no,
                )
            return Proposal(
                Approach.PROVIDE_ALTERNATIVES, "no direct results, suggest alternatives", round_no
            )

        if previous.concern is Concern.TOO_COMPLEX:
            return Proposal(Approach.SIMPLIFY_PRESENTATION, "simplify per feedback", round_no)
        if previous.concern is Concern.INSUFFICIENT_INFO:
            return Proposal(Approach.GATHER_MORE_INFO, "need more user details", round_no)
        return Proposal(Approach.HYBRID_APPROACH, "combine cards and explanation", round_no)

    @staticmethod
    def evaluate(
        proposal: Proposal, results: ToolboxResult, analysis: dict[str, Any]
    ) -> Evaluation:
        context = analysis.get("user_context") or {}

        if proposal.approach is Approach.SHOW_RESULTS_WITH_CARDS:
            if len(results.venues) > MAX_VENUE_CARDS or len(results.players) > MAX_PLAYER_CARDS:
                return Evaluation(
                    agrees=False,
                    reasoning="too many cards would overwhelm the user",
                    concern=Concern.TOO_MANY_OPTIONS,
                )
            if _has_results(results):
                return Evaluation(
                    agrees=True,
                    reasoning="good number of results for cards",
                    final_decision={"format": "cards", "max_items": 3},
                )

        elif proposal.approach is Approach.PROVIDE_ALTERNATIVES:
            has_place = context.get("location") or context.get("area")
            has_time = context.get("time") or context.get("timeSlot") or context.get("date")
            if not has_place and not has_time:
                return Evaluation(
                    agrees=False,
                    reasoning="need location or time before suggesting alternatives",
                    concern=Concern.INSUFFICIENT_INFO,
                )
            return Evaluation(
                agrees=True,
                reasoning="alternatives are meaningful with the current context",
                final_decision={"format": "text_with_suggestions", "include_questions": True},
            )

        elif proposal.approach is Approach.SIMPLIFY_PRESENTATION:
            return Evaluation(
                agrees=True,
                reasoning="simpler is better here",
                final_decision={"format": "simple_text", "max_options": 2},
            )

        return Evaluation(
            agrees=True,
            reasoning="acceptable approach for this scenario",
            final_decision={"format": "mixed", "adaptive": True},
        )


def _has_results(results: ToolboxResult | None) -> bool:
    return results is not None and results.has_results
