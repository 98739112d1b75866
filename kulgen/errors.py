"""Exception hierarchy raised by stages and the orchestrator."""

from __future__ import annotations

from typing import Optional

from .services.base import (
    BlockedResult,
    EmptyResult,
    MalformedResult,
    ProviderFailure,
    SynthesisResult,
    TextInsteadOfImageResult,
)


class GenerationError(Exception):
    """Base class; ``stage`` names the stage that produced the failure."""

    def __init__(self, message: str, *, stage: Optional[str] = None) -> None:
        self.stage = stage
        self.detail = message
        super().__init__(f"{stage}: {message}" if stage else message)

    def with_stage(self, stage: str) -> "GenerationError":
        """Attach the stage label, keeping the first label if already set."""
        if self.stage is None:
            self.stage = stage
            self.args = (f"{stage}: {self.detail}",)
        return self


class SynthesisError(GenerationError):
    """The synthesis service did not produce a usable answer."""


class BlockedError(SynthesisError):
    def __init__(self, reason: str, *, stage: Optional[str] = None) -> None:
        self.reason = reason
        super().__init__(f"request was blocked: {reason}", stage=stage)


class EmptyResponseError(SynthesisError):
    def __init__(self, message: str = "service returned an empty response", *, stage: Optional[str] = None) -> None:
        super().__init__(message, stage=stage)


class TextInsteadOfImageError(SynthesisError):
    def __init__(self, text: str, *, stage: Optional[str] = None) -> None:
        self.text = text
        super().__init__(f'service returned text instead of an image: "{text}"', stage=stage)


class ProviderError(SynthesisError):
    def __init__(self, code: Optional[int], message: str, *, stage: Optional[str] = None) -> None:
        self.code = code
        self.message = message
        super().__init__(f"provider error {code}: {message}", stage=stage)


class InvalidCredentialError(ProviderError):
    """The API key is missing or was rejected."""


class RateLimitError(ProviderError):
    """The provider refused the call because of quota or rate limits."""


class MalformedResponseError(SynthesisError):
    pass


class UnknownSynthesisError(SynthesisError):
    pass


class MalformedMetadataError(ValueError):
    """Pose metadata text could not be parsed; callers degrade instead of failing."""


class InvalidRequestError(GenerationError, ValueError):
    """The caller supplied inputs the pipeline cannot act on."""


class InvalidImageError(GenerationError):
    """Image bytes could not be decoded."""


class PipelineBusyError(GenerationError):
    """A run or quick composite is already in progress for the session."""


def provider_error(code: Optional[int], message: str) -> ProviderError:
    """Classify a provider failure into its distinguished sub-case."""
    text = message or ""
    if code == 400 and "API key not valid" in text:
        return InvalidCredentialError(code, text)
    if code in (None, 401, 403) and "key" in text.lower():
        return InvalidCredentialError(code, text)
    if code == 429:
        return RateLimitError(code, text)
    return ProviderError(code, text)


def error_from_result(result: SynthesisResult) -> SynthesisError:
    """Build the exception matching a failed gateway result."""
    if isinstance(result, BlockedResult):
        return BlockedError(result.reason)
    if isinstance(result, EmptyResult):
        return EmptyResponseError()
    if isinstance(result, TextInsteadOfImageResult):
        return TextInsteadOfImageError(result.text)
    if isinstance(result, ProviderFailure):
        return provider_error(result.code, result.message)
    if isinstance(result, MalformedResult):
        return MalformedResponseError(result.detail)
    return UnknownSynthesisError(f"unexpected result {type(result).__name__}")
