"""Submit-and-poll loop around an ASR provider."""

import logging
import time
from collections.abc import Callable

from scribe.asr.base import ASROptions, ASRProvider
from scribe.config import ASRConfig, DiarizationConfig
from scribe.diarization.normalizer import DiarizationResult, normalize
from scribe.errors import ProviderFailure

logger = logging.getLogger(__name__)

TERMINAL_STATUSES = ("completed", "error")


def build_word_boost(
    context: str | None,
    limit: int = 100,
    min_length: int = 4,
) -> list[str]:
    """Extract vocabulary hints from free-form context.

    Keeps whitespace-separated tokens of at least ``min_length`` characters,
    in order and without deduplication, capped at ``limit``.
    """
    if not context:
        return []
    words = [w for w in context.split() if len(w) >= min_length]
    return words[:limit]


def build_options(config: ASRConfig, context: str | None = None) -> ASROptions:
    """Translate config plus optional context into provider job options."""
    return ASROptions(
        speaker_labels=config.speaker_labels,
        language_detection=config.language_detection,
        language_confidence_threshold=config.language_confidence_threshold,
        word_boost=build_word_boost(
            context, config.word_boost_limit, config.word_boost_min_length
        ),
    )


def wait_for_completion(
    provider: ASRProvider,
    job_id: str,
    config: ASRConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> dict:
    """Poll until the job reaches a terminal status or the timeout elapses.

    Raises:
        ProviderFailure: On timeout or when the provider reports an error.
    """
    config = config or ASRConfig()
    deadline = clock() + config.poll_timeout
    polls = 0

    while True:
        payload = provider.poll(job_id)
        polls += 1
        status = payload.get("status")

        if status == "completed":
            logger.info(f"{provider.name} job {job_id} completed after {polls} polls")
            return payload
        if status == "error":
            raise ProviderFailure(
                f"Transcription failed: {payload.get('error') or 'unknown error'}"
            )

        if clock() + config.poll_interval > deadline:
            raise ProviderFailure(
                f"Transcription timed out after {config.poll_timeout:.0f}s (job {job_id})"
            )
        logger.debug(f"Job {job_id} status={status}, polling again in {config.poll_interval}s")
        sleep(config.poll_interval)


def transcribe_with_diarization(
    provider: ASRProvider,
    audio_url: str,
    context: str | None = None,
    config: ASRConfig | None = None,
    diarization_config: DiarizationConfig | None = None,
    sleep: Callable[[float], None] = time.sleep,
    clock: Callable[[], float] = time.monotonic,
) -> DiarizationResult:
    """Run a full provider job and normalize the result into speaker segments."""
    config = config or ASRConfig()
    options = build_options(config, context)

    job_id = provider.submit(audio_url, options)
    logger.info(
        f"Submitted {provider.name} job {job_id} "
        f"(speaker_labels={options.speaker_labels}, word_boost={len(options.word_boost)})"
    )

    payload = wait_for_completion(provider, job_id, config, sleep=sleep, clock=clock)
    return normalize(payload, diarization_config)
