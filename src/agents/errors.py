"""Domain-specific exceptions for call screening.

These exceptions are safe to import from API layers without triggering provider imports.
"""

from __future__ import annotations


class AssistantError(Exception):
    status_code: int = 500
    default_detail: str = "Assistant error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.default_detail)
        self.detail = detail or self.default_detail


class UnknownSessionError(AssistantError):
    status_code = 404
    default_detail = "Call session is not tracked."


class SessionAlreadyExistsError(AssistantError):
    status_code = 409
    default_detail = "Call session already exists."


class InvalidPhaseTransitionError(AssistantError):
    status_code = 409
    default_detail = "Call phase transition not allowed."


class DuplicateSideEffectError(AssistantError):
    status_code = 409
    default_detail = "Side effect already fired for this call."


class OracleFailureError(AssistantError):
    status_code = 503
    default_detail = "Reasoning oracle request failed."


class SynthesisFailureError(AssistantError):
    status_code = 503
    default_detail = "Speech synthesis failed."


class TelephonyError(AssistantError):
    status_code = 502
    default_detail = "Telephony provider request failed."


class AssetNotFoundError(AssistantError):
    status_code = 404
    default_detail = "Audio file not found."


class RangeNotSatisfiableError(AssistantError):
    status_code = 416
    default_detail = "Requested range not satisfiable."

    def __init__(self, size: int, detail: str | None = None) -> None:
        super().__init__(detail)
        self.size = size


class MalformedEncodingDescriptorError(AssistantError):
    status_code = 400
    default_detail = "Encoding descriptor has no type/subtype separator."
