"""Pydantic schemas exchanged with the reasoning oracle."""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field, field_validator, model_validator


class OracleActionKind(str, Enum):
    REQUEST_HOLD = "request_hold"
    SEND_NOTIFICATION = "send_notification"
    TERMINATE = "terminate"
    FORWARD = "forward"


# Tool names used by earlier prompt revisions map onto the same vocabulary.
ACTION_ALIASES: dict[str, OracleActionKind] = {
    "requesthold": OracleActionKind.REQUEST_HOLD,
    "request_hold": OracleActionKind.REQUEST_HOLD,
    "onhold": OracleActionKind.REQUEST_HOLD,
    "hold": OracleActionKind.REQUEST_HOLD,
    "sendnotification": OracleActionKind.SEND_NOTIFICATION,
    "send_notification": OracleActionKind.SEND_NOTIFICATION,
    "smsinfo": OracleActionKind.SEND_NOTIFICATION,
    "notify": OracleActionKind.SEND_NOTIFICATION,
    "terminate": OracleActionKind.TERMINATE,
    "hangup": OracleActionKind.TERMINATE,
    "forward": OracleActionKind.FORWARD,
}


class OracleAction(BaseModel):
    """One side-effecting action requested by the oracle."""

    action: OracleActionKind
    name: str | None = None
    summary: str | None = None

    @field_validator("action", mode="before")
    @classmethod
    def normalize_action(cls, value: Any) -> Any:
        if isinstance(value, str):
            key = value.strip().lower().replace("-", "_").replace(" ", "")
            return ACTION_ALIASES.get(key, ACTION_ALIASES.get(key.replace("_", ""), value))
        return value

    @model_validator(mode="after")
    def notification_has_payload(self) -> OracleAction:
        if self.action is OracleActionKind.SEND_NOTIFICATION:
            self.name = (self.name or "").strip() or "Unknown Caller"
            self.summary = (self.summary or "").strip() or "No reason given"
        return self


class OracleDecision(BaseModel):
    """Next reply text and/or actions for one conversation turn."""

    reply: str = ""
    actions: list[OracleAction] = Field(default_factory=list)

    @field_validator("reply", mode="before")
    @classmethod
    def reply_as_text(cls, value: Any) -> str:
        return str(value or "").strip()

    @property
    def is_empty(self) -> bool:
        return not self.reply and not self.actions
