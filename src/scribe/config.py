"""Configuration management for Scribe."""

import fcntl
import os
import sys
from contextlib import contextmanager
from pathlib import Path

import toml
from pydantic import BaseModel, Field, ValidationError

from scribe.errors import Conflict

CONFIG_DIR = Path.home() / ".scribe"
CONFIG_FILE = CONFIG_DIR / "config.toml"
LOCK_DIR = CONFIG_DIR / "locks"
LOGS_DIR = CONFIG_DIR / "logs"


# =============================================================================
# Per-transcript locking
# =============================================================================

def _validate_lock_name(name: str) -> None:
    # Lock names become file names
    if not name or not all(c.isalnum() or c in "_-" for c in name):
        raise ValueError(f"Invalid lock name: {name}")


@contextmanager
def transcript_lock(transcript_id: str):
    """Hold an exclusive, non-blocking lock for one transcript.

    Raises Conflict immediately if another holder (thread or process) already
    owns the lock, instead of waiting for it.

    Usage:
        with transcript_lock("abc123"):
            # ... read, compute, write ...
    """
    name = f"transcript_{transcript_id}"
    _validate_lock_name(name)

    LOCK_DIR.mkdir(parents=True, exist_ok=True)
    lock_file = LOCK_DIR / f"{name}.lock"

    fd = os.open(str(lock_file), os.O_CREAT | os.O_WRONLY, 0o600)
    try:
        lock_fh = os.fdopen(fd, "w", encoding="utf-8")
    except Exception:
        os.close(fd)
        raise

    try:
        try:
            fcntl.flock(lock_fh.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            raise Conflict(f"Correction already in progress for transcript {transcript_id}")
        try:
            yield lock_fh
        finally:
            fcntl.flock(lock_fh.fileno(), fcntl.LOCK_UN)
    finally:
        lock_fh.close()


class DiarizationConfig(BaseModel):
    """Diarization post-processing settings."""

    # Raise instead of warn when the provider returns out-of-order utterances
    strict_ordering: bool = False


class ASRConfig(BaseModel):
    """ASR provider job settings."""

    speaker_labels: bool = True
    language_detection: bool = True
    language_confidence_threshold: float = Field(default=0.5, ge=0.0, le=1.0)
    poll_interval: float = Field(default=3.0, gt=0.0, description="Seconds between polls")
    poll_timeout: float = Field(default=600.0, gt=0.0, description="Give up after this many seconds")
    word_boost_limit: int = Field(default=100, ge=0)
    word_boost_min_length: int = Field(default=4, ge=1)


class RouterConfig(BaseModel):
    """Correction routing settings."""

    # Emit rules that only match whole words
    whole_word: bool = False
    # find terms this short (or shorter) are flagged low confidence
    short_term_length: int = Field(default=2, ge=0)


class RewriteConfig(BaseModel):
    """Model-based rewrite settings for complex corrections."""

    model: str = "claude-sonnet-4-5-20250929"
    max_tokens: int = Field(default=16000, ge=256)
    temperature: float = Field(default=0.0, ge=0.0, le=1.0)
    timeout_seconds: float = Field(default=120.0, gt=0.0)


class StoreConfig(BaseModel):
    """Reference transcript store settings."""

    db_path: Path = Field(default_factory=lambda: CONFIG_DIR / "transcripts.db")


class ScribeConfig(BaseModel):
    """Main configuration model."""

    diarization: DiarizationConfig = Field(default_factory=DiarizationConfig)
    asr: ASRConfig = Field(default_factory=ASRConfig)
    router: RouterConfig = Field(default_factory=RouterConfig)
    rewrite: RewriteConfig = Field(default_factory=RewriteConfig)
    store: StoreConfig = Field(default_factory=StoreConfig)


def load_config() -> ScribeConfig:
    """Load configuration from file, or create defaults."""
    if CONFIG_FILE.exists():
        try:
            data = toml.load(CONFIG_FILE)
            store = data.get("store")
            if isinstance(store, dict) and isinstance(store.get("db_path"), str):
                db_path = Path(store["db_path"]).expanduser()
                if not db_path.is_absolute():
                    raise ValueError(f"Config path must be absolute: db_path={db_path}")
                store["db_path"] = db_path
            config = ScribeConfig(**data)
        except ValidationError as e:
            print(f"Warning: Config validation failed ({e}), using defaults", file=sys.stderr)
            config = ScribeConfig()
        except (toml.TomlDecodeError, ValueError, TypeError) as e:
            print(f"Warning: Failed to load config ({e}), using defaults", file=sys.stderr)
            config = ScribeConfig()
    else:
        config = ScribeConfig()
        save_config(config)

    return config


def save_config(config: ScribeConfig) -> None:
    """Save configuration to file with atomic write."""
    import tempfile

    CONFIG_DIR.mkdir(parents=True, exist_ok=True)
    data = config.model_dump()
    # Convert Path objects to strings for TOML
    data["store"]["db_path"] = str(config.store.db_path)

    temp_fd, temp_path = tempfile.mkstemp(dir=CONFIG_DIR, prefix=".config_", suffix=".toml.tmp")
    try:
        with os.fdopen(temp_fd, "w", encoding="utf-8") as f:
            toml.dump(data, f)

        os.chmod(temp_path, 0o600)
        os.replace(temp_path, CONFIG_FILE)
    except Exception:
        try:
            os.unlink(temp_path)
        except OSError:
            pass
        raise
