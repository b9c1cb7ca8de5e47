"""Async Claude API client for single-shot completions."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any

import anthropic

from desktop_agent.config import settings

logger = logging.getLogger(__name__)


class ModelError(Exception):
    """The model service could not produce a completion (transport, auth, rate limit)."""


@dataclass(frozen=True)
class GenerationParams:
    """Sampling parameters for one completion request."""

    temperature: float = 0.3
    max_tokens: int = 1024
    top_p: float | None = None
    stream: bool = False


def plan_params() -> GenerationParams:
    """Parameters used for action-plan generation."""
    return GenerationParams(
        temperature=settings.plan_temperature,
        max_tokens=settings.plan_max_tokens,
        top_p=settings.plan_top_p,
        stream=False,
    )


def analysis_params() -> GenerationParams:
    """Parameters used for content analysis."""
    return GenerationParams(
        temperature=settings.analysis_temperature,
        max_tokens=settings.analysis_max_tokens,
    )


def split_system(messages: list[dict[str, str]]) -> tuple[str | None, list[dict[str, str]]]:
    """Lift ``system`` role messages out of a role-tagged list.

    Claude takes the system prompt as a separate parameter, so any
    system entries are joined and returned apart from the chat turns.
    """
    system_parts = [m["content"] for m in messages if m.get("role") == "system"]
    turns = [
        {"role": m["role"], "content": m["content"]}
        for m in messages
        if m.get("role") != "system"
    ]
    system = "\n\n".join(system_parts) if system_parts else None
    return system, turns


class ModelClient:
    """Thin wrapper over ``anthropic.AsyncAnthropic`` bound to one API key."""

    def __init__(self, api_key: str, model: str | None = None) -> None:
        self._client = anthropic.AsyncAnthropic(api_key=api_key)
        self.model = model or settings.chat_model

    async def complete(
        self,
        messages: list[dict[str, str]],
        params: GenerationParams | None = None,
    ) -> str:
        """Return the completion text for a role-tagged message list.

        Raises:
            ModelError: on any API or transport failure.
        """
        params = params or GenerationParams()
        system, turns = split_system(messages)

        kwargs: dict[str, Any] = {
            "model": self.model,
            "max_tokens": params.max_tokens,
            "temperature": params.temperature,
            "messages": turns,
        }
        if params.top_p is not None:
            kwargs["top_p"] = params.top_p
        if system is not None:
            kwargs["system"] = system

        try:
            if params.stream:
                parts: list[str] = []
                async with self._client.messages.stream(**kwargs) as stream:
                    async for text in stream.text_stream:
                        parts.append(text)
                return "".join(parts)

            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            logger.warning("Model call failed: %s", exc)
            raise ModelError(str(exc)) from exc

        return "".join(block.text for block in response.content if block.type == "text")
