"""
Claude API client for candidate generation.

The repair pipeline only depends on the GenerationClient protocol: a
callable taking a prompt and the preceding conversation and returning the
model's text. ClaudeClient implements it with the Anthropic SDK.
"""

import logging
from dataclasses import dataclass
from typing import Optional, Protocol

import anthropic

from ..models import ConversationTurn

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"


class GenerationClient(Protocol):
    """
    Abstract language model.

    ``history`` holds the turns preceding ``prompt`` (system turns included);
    ``prompt`` is the new user message. ``temperature`` is a diversity hint
    the client may ignore.
    """

    def __call__(
        self,
        prompt: str,
        history: list[ConversationTurn],
        temperature: Optional[float] = None,
    ) -> str:
        ...


@dataclass
class GenerationUsage:
    """Token usage accumulated over a client's lifetime."""
    requests: int = 0
    input_tokens: int = 0
    output_tokens: int = 0


def to_messages(prompt: str, history: list[ConversationTurn]) -> tuple[str, list[dict]]:
    """
    Convert a transcript into the Messages API shape.

    System turns are joined into the ``system`` parameter. Consecutive turns
    with the same role are merged, since the API expects user and assistant
    turns to alternate.
    """
    system_parts = []
    messages: list[dict] = []
    for turn in [*history, ConversationTurn(role="user", content=prompt)]:
        if turn.role == "system":
            system_parts.append(turn.content)
            continue
        if messages and messages[-1]["role"] == turn.role:
            messages[-1]["content"] += "\n\n" + turn.content
        else:
            messages.append({"role": turn.role, "content": turn.content})
    return "\n\n".join(system_parts), messages


class ClaudeClient:
    """
    GenerationClient backed by the Claude API.

    Usage:
        client = ClaudeClient()
        text = client("Fix this bug ...", history=[], temperature=0.3)
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = 4096,
        temperature: float = 0.0,
        system_prompt: Optional[str] = None,
    ):
        self.client = anthropic.Anthropic(api_key=api_key)
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.system_prompt = system_prompt
        self.usage = GenerationUsage()

    def __call__(
        self,
        prompt: str,
        history: list[ConversationTurn],
        temperature: Optional[float] = None,
    ) -> str:
        system, messages = to_messages(prompt, history)
        if not system and self.system_prompt:
            system = self.system_prompt

        request = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            # The API accepts temperatures in [0, 1]
            "temperature": min(1.0, self.temperature if temperature is None else temperature),
            "messages": messages,
        }
        if system:
            request["system"] = system

        message = self.client.messages.create(**request)

        self.usage.requests += 1
        self.usage.input_tokens += message.usage.input_tokens
        self.usage.output_tokens += message.usage.output_tokens
        logger.debug(
            "Generation used %d input / %d output tokens",
            message.usage.input_tokens, message.usage.output_tokens,
        )

        return "".join(block.text for block in message.content if block.type == "text")
