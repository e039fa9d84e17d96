"""Model-based rewrite of a speaker transcript, mapped back onto segments.

The text-generation provider only ever sees and returns the formatted
"{speakerTag}: {text}" transcript. This module owns the reverse mapping:
splitting the returned text back into per-speaker blocks and re-attaching
each block to the original segment at the same position, so timestamps and
confidence survive the rewrite untouched.
"""

import concurrent.futures
import logging
import os
import re
from abc import ABC, abstractmethod

from scribe.config import RewriteConfig
from scribe.errors import ProviderFailure, ReassemblyMismatch, ScribeError
from scribe.logging import log_event
from scribe.models.transcript import SpeakerSegment
from scribe.nlp.prompts import REWRITE_SYSTEM, build_rewrite_prompt, clean_model_output
from scribe.output.formatters import format_speaker_transcript

logger = logging.getLogger(__name__)


class TextGenerationProvider(ABC):
    """Rewrites a full speaker-labeled transcript according to an instruction."""

    @abstractmethod
    def rewrite(self, full_text: str, instruction: str) -> str:
        """
        Rewrite a formatted transcript.

        Args:
            full_text: "{speakerTag}: {text}" blocks separated by blank lines
            instruction: Free-text correction instruction

        Returns:
            Corrected transcript in the same block format
        """
        ...


class ClaudeTextGenerator(TextGenerationProvider):
    """Text generation through the Anthropic Messages API."""

    def __init__(self, config: RewriteConfig | None = None):
        self.config = config or RewriteConfig()
        self._client = None

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False

    def close(self):
        """Close the Anthropic client."""
        if self._client is not None:
            self._client.close()
            self._client = None

    @property
    def client(self):
        """Lazy-load the Anthropic client.

        The API key comes from ANTHROPIC_API_KEY, which may be set in the
        project .env file (loaded on package import).
        """
        if self._client is None:
            if not os.environ.get("ANTHROPIC_API_KEY"):
                raise ProviderFailure(
                    "ANTHROPIC_API_KEY not found. Set it in .env file or as environment variable."
                )
            from anthropic import Anthropic
            # Retries are the caller's decision; the applier enforces its own deadline
            self._client = Anthropic(timeout=self.config.timeout_seconds, max_retries=0)
        return self._client

    def rewrite(self, full_text: str, instruction: str) -> str:
        from anthropic import APIConnectionError, APIError, APIStatusError, RateLimitError

        try:
            response = self.client.messages.create(
                model=self.config.model,
                max_tokens=self.config.max_tokens,
                temperature=self.config.temperature,
                system=REWRITE_SYSTEM,
                messages=[{"role": "user", "content": build_rewrite_prompt(full_text, instruction)}],
            )
        except RateLimitError as e:
            raise ProviderFailure(f"Rate limited: {e}") from e
        except APIConnectionError as e:
            raise ProviderFailure(f"Connection error: {e}") from e
        except APIStatusError as e:
            # Don't expose API key details
            if e.status_code == 401:
                raise ProviderFailure(
                    "Authentication failed. Check your .env file or ANTHROPIC_API_KEY environment variable."
                ) from e
            raise ProviderFailure(f"API error ({e.status_code}): {e.message}") from e
        except APIError as e:
            raise ProviderFailure(f"API error: {e}") from e

        if not response.content:
            raise ProviderFailure("Empty response from Claude API")

        for block in response.content:
            if getattr(block, "type", None) == "text":
                if response.stop_reason == "max_tokens":
                    logger.warning("Rewrite output hit max_tokens and is likely truncated")
                return block.text

        raise ProviderFailure("No text content in API response")


def _tag_alternation(segments: list[SpeakerSegment]) -> str:
    # Longest first so "Speaker 10" is not read as "Speaker 1" + "0"
    tags = sorted({seg.speaker_tag for seg in segments}, key=len, reverse=True)
    return "|".join(re.escape(tag) for tag in tags)


def reassemble_segments(original: list[SpeakerSegment], corrected_text: str) -> list[SpeakerSegment]:
    """Map a rewritten transcript back onto the original segments by position.

    The text is split on blank lines that precede a known speaker tag
    (case-insensitive). Block i must carry the tag of original segment i.
    Only ``text`` is taken from the rewrite; every other field comes from the
    original segment.

    Raises:
        ReassemblyMismatch: If the block count or tag order differs.
    """
    if not original:
        return []

    text = corrected_text.strip()
    if not text:
        raise ReassemblyMismatch(
            "Rewrite returned empty text", expected=len(original), received=0
        )

    boundary = re.compile(rf"\n\s*\n(?=[ \t]*(?:{_tag_alternation(original)})[ \t]*:)", re.IGNORECASE)
    blocks = boundary.split(text)

    if len(blocks) != len(original):
        raise ReassemblyMismatch(
            f"Rewrite returned {len(blocks)} speaker blocks, expected {len(original)}",
            expected=len(original),
            received=len(blocks),
        )

    result = []
    for i, (segment, block) in enumerate(zip(original, blocks)):
        prefix = re.match(rf"\s*{re.escape(segment.speaker_tag)}\s*:", block, re.IGNORECASE)
        if not prefix:
            raise ReassemblyMismatch(
                f"Block {i} does not start with {segment.speaker_tag!r}",
                expected=len(original),
                received=len(blocks),
            )
        result.append(segment.model_copy(update={"text": block[prefix.end():].strip()}))

    return result


class AIRewriteApplier:
    """Runs a text-generation provider under a deadline and re-segments its output."""

    def __init__(self, provider: TextGenerationProvider, timeout_seconds: float | None = None):
        self.provider = provider
        self.timeout_seconds = timeout_seconds or RewriteConfig().timeout_seconds

    def _call_provider(self, full_text: str, instruction: str) -> str:
        executor = concurrent.futures.ThreadPoolExecutor(max_workers=1)
        future = executor.submit(self.provider.rewrite, full_text, instruction)
        try:
            return future.result(timeout=self.timeout_seconds)
        except concurrent.futures.TimeoutError as e:
            future.cancel()
            raise ProviderFailure(
                f"Rewrite timed out after {self.timeout_seconds:.0f}s"
            ) from e
        except ScribeError:
            raise
        except Exception as e:
            raise ProviderFailure(f"Rewrite provider failed: {type(e).__name__}: {e}") from e
        finally:
            # Don't block on a hung provider call
            executor.shutdown(wait=False)

    def rewrite_segments(
        self,
        segments: list[SpeakerSegment],
        instruction: str,
    ) -> list[SpeakerSegment]:
        """Rewrite segments per instruction, preserving timing and speaker fields.

        Raises:
            ProviderFailure: On provider error or timeout.
            ReassemblyMismatch: If the output cannot be aligned to the input.
        """
        if not segments:
            return []

        full_text = format_speaker_transcript(segments)
        logger.info(f"Requesting rewrite of {len(segments)} segments ({len(full_text)} chars)")
        log_event("rewrite_request", {"segments": len(segments), "chars": len(full_text)})

        output = clean_model_output(self._call_provider(full_text, instruction))
        return reassemble_segments(segments, output)
