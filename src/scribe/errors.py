"""Error taxonomy for transcript normalization and correction.

Every error carries a ``user_message`` that is safe to show to end users and a
``retryable`` flag telling the caller whether the same request may succeed
later without changes.
"""


class ScribeError(Exception):
    """Base class for all domain errors."""

    user_message = "Something went wrong."
    retryable = False

    def __init__(self, message: str | None = None):
        super().__init__(message or self.user_message)
        self.message = message or self.user_message


class NotFound(ScribeError):
    """Transcript does not exist or belongs to another user."""

    user_message = "Transcription not found or access denied."


class NotReady(ScribeError):
    """Transcript has not finished processing or has no text."""

    user_message = "Transcription must be completed before correction."
    retryable = True


class NoSegments(ScribeError):
    """Transcript has no diarization data to correct."""

    user_message = "No speaker segments available for correction."


class InvalidInstruction(ScribeError):
    """Correction instruction is empty or unusable."""

    user_message = "Please describe the correction you want to make."


class ReassemblyMismatch(ScribeError):
    """Rewritten text could not be mapped back onto the original segments."""

    user_message = "Correction failed, try rephrasing your instructions."

    def __init__(self, message: str | None = None, expected: int = 0, received: int = 0):
        super().__init__(message)
        self.expected = expected
        self.received = received


class ProviderFailure(ScribeError):
    """ASR or text-generation provider returned an error or timed out."""

    user_message = "The transcription service is unavailable. Please try again."
    retryable = True


class Conflict(ScribeError):
    """Another correction was applied to the same transcript concurrently."""

    user_message = "This transcript was modified by another request. Reload and try again."
    retryable = True
