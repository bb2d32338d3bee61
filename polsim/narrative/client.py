"""
Narrative Client — the text-generation collaborator behind LiteLLM.

Two kinds of request:
    generate_text     free prose (news copy, event summaries)
    request_judgment  a small JSON object validated against a pydantic model;
                      unparsable or out-of-range content raises
                      MalformedResponseError carrying the raw reply

A failed completion call raises NarrativeUnavailableError chained to the
underlying LiteLLM exception.

The engine treats the model as a black box. A malformed judgment is the
caller's decision to skip or abort; it never crashes the process.
"""

from __future__ import annotations

import json
import logging
from typing import Any, TypeVar

import litellm
from pydantic import BaseModel, Field, ValidationError

from polsim.config import settings
from polsim.errors import MalformedResponseError, NarrativeUnavailableError
from polsim.model.issues import Issue
from polsim.model.schema import Policy, PoliticalCube, PolicyPosition

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)

SYSTEM_PROMPT = (
    "You are the chronicler of a multiplayer political simulation set in a "
    "British settler colony of the 1850s. Stay in period, be concise, and "
    "never invent players or institutions that are not in the context."
)


# ════════════════════════════════════════════════════════════════
# Request & response models
# ════════════════════════════════════════════════════════════════


class NarrativeContext(BaseModel):
    """Structured prompt context: what happened, how bad, and the numbers behind it."""

    event_type: str = Field(description="e.g. 'policy_enacted', 'election', 'scandal'")
    severity: int = Field(default=5, ge=1, le=10)
    indicators: dict[str, float] = Field(
        default_factory=dict, description="Named numeric trend indicators"
    )
    summary: str = ""


class PolicyEffectEstimate(BaseModel):
    """Estimated economic effect of a policy, in fixed ranges."""

    gdp_change: float = Field(ge=-5, le=5, description="Percent change in GDP")
    unemployment_change: float = Field(ge=-3, le=3, description="Percentage-point change")
    revenue: float = Field(ge=-1000, le=1000, description="Change in treasury revenue")

    def as_impact(self) -> dict[str, float]:
        return self.model_dump()


class PolicyAnalysis(BaseModel):
    """Coarse classification of a free-text policy."""

    policy_type: str = Field(description="tax, trade, labor, land or other")
    increases_taxes: bool = False
    protectionist: bool = False
    restricts_land_sales: bool = False


def analysis_to_position(analysis: PolicyAnalysis) -> PolicyPosition:
    """Translate a policy classification into the stances it implies."""
    issues: dict[Issue, float] = {}
    economic = 0.0

    if analysis.policy_type == "tax":
        issues[Issue.TAXES] = 5 if analysis.increases_taxes else -5
        economic = -3 if analysis.increases_taxes else 3
    elif analysis.policy_type == "trade":
        issues[Issue.PROTECTIONISM] = 5 if analysis.protectionist else -5
    elif analysis.policy_type == "labor":
        issues[Issue.WORKER_RIGHTS] = 5
        economic = -3
    elif analysis.policy_type == "land":
        issues[Issue.LAND_SALES] = -5 if analysis.restricts_land_sales else 5
        issues[Issue.PROPERTY_RIGHTS] = 3

    return PolicyPosition(cube=PoliticalCube(economic=economic), issue_positions=issues)


# ════════════════════════════════════════════════════════════════
# Client
# ════════════════════════════════════════════════════════════════


class NarrativeClient:
    """
    Thin async wrapper over ``litellm.acompletion``.

    Usage:
        client = NarrativeClient()
        estimate = await client.request_judgment(context, PolicyEffectEstimate)
    """

    def __init__(self, model: str | None = None, temperature: float | None = None) -> None:
        self.model = model or settings.narrative_model
        self.temperature = (
            settings.narrative_temperature if temperature is None else temperature
        )

    def _messages(self, context: NarrativeContext, instruction: str) -> list[dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {
                "role": "system",
                "content": f"Context:\n{json.dumps(context.model_dump(), indent=2, default=str)}",
            },
            {"role": "user", "content": instruction},
        ]

    async def _complete(self, messages: list[dict[str, str]], **kwargs: Any) -> str:
        try:
            response = await litellm.acompletion(
                model=self.model,
                messages=messages,
                temperature=self.temperature,
                **kwargs,
            )
        except Exception as e:
            logger.error("Narrative completion failed: %s", e)
            raise NarrativeUnavailableError(f"Completion via {self.model} failed: {e}") from e
        return response.choices[0].message.content or ""

    async def generate_text(
        self,
        context: NarrativeContext,
        instruction: str = "Write a short period news report of this event.",
    ) -> str:
        return await self._complete(self._messages(context, instruction))

    async def request_judgment(
        self,
        context: NarrativeContext,
        schema: type[T],
        instruction: str | None = None,
    ) -> T:
        """
        Ask for a JSON object matching ``schema``.

        Args:
            context: What the judgment is about.
            schema: Pydantic model the reply must validate against.
            instruction: Override for the default request text.

        Returns:
            The validated model.

        Raises:
            MalformedResponseError: If the reply is not a JSON object or fails validation.
        """
        fields = ", ".join(schema.model_fields)
        instruction = instruction or (
            f"Respond with a single JSON object with exactly these fields: {fields}."
        )
        content = await self._complete(
            self._messages(context, instruction),
            response_format={"type": "json_object"},
        )

        try:
            data = json.loads(content)
        except json.JSONDecodeError as e:
            logger.warning("Unparsable %s judgment: %s", schema.__name__, e)
            raise MalformedResponseError(f"Response is not valid JSON: {e}", raw=content) from e

        if not isinstance(data, dict):
            raise MalformedResponseError(
                f"Expected a JSON object, got {type(data).__name__}", raw=content
            )

        try:
            return schema.model_validate(data)
        except ValidationError as e:
            logger.warning("Invalid %s judgment: %s", schema.__name__, e)
            raise MalformedResponseError(
                f"Response failed {schema.__name__} validation: {e.error_count()} errors",
                raw=content,
            ) from e

    async def estimate_policy_effects(self, policy: Policy) -> PolicyEffectEstimate:
        context = NarrativeContext(
            event_type="policy_enacted",
            summary=f"{policy.title} [{policy.category}]: {policy.description}",
        )
        return await self.request_judgment(
            context,
            PolicyEffectEstimate,
            instruction=(
                "Estimate this policy's economic effect. Respond with a JSON object with "
                "gdp_change (-5 to 5, percent), unemployment_change (-3 to 3, points) "
                "and revenue (-1000 to 1000)."
            ),
        )

    async def analyze_policy(self, title: str, description: str) -> PolicyAnalysis:
        context = NarrativeContext(event_type="policy_proposed", summary=f"{title}: {description}")
        return await self.request_judgment(
            context,
            PolicyAnalysis,
            instruction=(
                "Classify this policy. Respond with a JSON object with policy_type "
                "(tax, trade, labor, land or other) and booleans increases_taxes, "
                "protectionist, restricts_land_sales."
            ),
        )
