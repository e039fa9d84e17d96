"""Correction routing, replacement and model-based rewrites."""

from scribe.nlp.diff import generate_diff, merge_rewrites
from scribe.nlp.replacer import apply_simple_replacements, find_matches
from scribe.nlp.rewriter import (
    AIRewriteApplier,
    ClaudeTextGenerator,
    TextGenerationProvider,
    reassemble_segments,
)
from scribe.nlp.router import CorrectionRouter, InstructionMatcher, PatternMatcher

__all__ = [
    "AIRewriteApplier",
    "ClaudeTextGenerator",
    "CorrectionRouter",
    "InstructionMatcher",
    "PatternMatcher",
    "TextGenerationProvider",
    "apply_simple_replacements",
    "find_matches",
    "generate_diff",
    "merge_rewrites",
    "reassemble_segments",
]
