"""Reasoning oracle: maps the conversation so far to a reply and side-effecting actions."""

from __future__ import annotations

import json
import logging
from collections.abc import Sequence
from typing import Protocol

from pydantic import ValidationError

from agents.errors import OracleFailureError
from agents.schemas import OracleAction, OracleDecision
from agents.sessions import Turn
from agents.state_utils import render_transcript
from llm.base import BaseLLMClient
from prompts.loader import load_prompt

LOGGER = logging.getLogger(__name__)

CONTEXT_TEMPLATE = """You are screening an incoming call. A pre-recorded greeting has already been played.
Caller number: {caller_address}
Conversation so far:
{transcript}

{instructions}"""


class ReasoningOracle(Protocol):
    async def generate(self, caller_address: str, turns: Sequence[Turn]) -> OracleDecision:
        ...


def _strip_code_fence(raw: str) -> str:
    text = raw.strip()
    if text.startswith("```"):
        text = text.split("\n", 1)[1] if "\n" in text else ""
        if text.rstrip().endswith("```"):
            text = text.rstrip()[:-3]
    return text.strip()


def parse_oracle_response(raw: str) -> OracleDecision:
    """Parse the oracle's JSON answer; plain prose is accepted as a reply without actions."""

    text = _strip_code_fence(raw or "")
    if not text:
        raise OracleFailureError("Oracle returned an empty response.")

    try:
        payload = json.loads(text)
    except json.JSONDecodeError as exc:
        if text[0] in "{[":
            LOGGER.warning("Oracle returned invalid JSON: %s", raw)
            raise OracleFailureError("Oracle returned invalid JSON.") from exc
        return OracleDecision(reply=text)

    if not isinstance(payload, dict):
        raise OracleFailureError("Oracle JSON is not an object.")

    actions: list[OracleAction] = []
    for item in payload.get("actions") or []:
        try:
            actions.append(OracleAction.model_validate(item))
        except ValidationError as exc:
            LOGGER.warning("Skipping invalid oracle action %s: %s", item, exc)

    reply = payload.get("reply") or payload.get("text") or ""
    return OracleDecision(reply=reply, actions=actions)


class ScreeningOracle:
    """LLM-backed oracle with a fixed action vocabulary."""

    def __init__(self, llm_client: BaseLLMClient) -> None:
        self._llm = llm_client
        self._system_prompt = load_prompt("screening_system.txt")
        self._instructions = load_prompt("screening_instructions.txt")

    def build_messages(self, caller_address: str, turns: Sequence[Turn]) -> list[dict[str, str]]:
        context = CONTEXT_TEMPLATE.format(
            caller_address=caller_address or "Unknown",
            transcript=render_transcript(turns),
            instructions=self._instructions,
        )
        return [
            {"role": "system", "content": self._system_prompt},
            {"role": "user", "content": context},
        ]

    async def generate(self, caller_address: str, turns: Sequence[Turn]) -> OracleDecision:
        messages = self.build_messages(caller_address, turns)
        try:
            raw = await self._llm.chat(messages, temperature=0.2, json_mode=True)
        except Exception as exc:
            raise OracleFailureError(f"Oracle request failed: {exc}") from exc
        return parse_oracle_response(raw)
