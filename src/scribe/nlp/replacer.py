"""Literal find/replace over speaker segments.

Replacement only ever touches ``text``. Speaker tag, timestamps and
confidence are carried through unchanged so playback seek and citations stay
aligned after a correction.
"""

import logging
import re

from scribe.models.correction import CorrectionRule, ReplacementResult, SegmentMatch
from scribe.models.transcript import SpeakerSegment

logger = logging.getLogger(__name__)

CONTEXT_CHARS = 50


def compile_rule_pattern(
    find: str,
    case_sensitive: bool = False,
    whole_word: bool = False,
) -> re.Pattern:
    """Compile a literal search term into a regex.

    The term is escaped, so ``.``, ``$`` and friends match themselves.
    """
    if not find:
        raise ValueError("Search term must not be empty")
    pattern = re.escape(find)
    if whole_word:
        pattern = rf"\b{pattern}\b"
    flags = 0 if case_sensitive else re.IGNORECASE
    return re.compile(pattern, flags)


def _pattern_for(rule: CorrectionRule) -> re.Pattern:
    return compile_rule_pattern(rule.find, rule.case_sensitive, rule.whole_word)


def count_matches(
    segments: list[SpeakerSegment],
    find: str,
    case_sensitive: bool = False,
    whole_word: bool = False,
) -> dict[int, int]:
    """Occurrences of ``find`` per segment index; segments without any are omitted."""
    pattern = compile_rule_pattern(find, case_sensitive, whole_word)
    counts: dict[int, int] = {}
    for index, segment in enumerate(segments):
        n = len(pattern.findall(segment.text))
        if n:
            counts[index] = n
    return counts


def apply_simple_replacements(
    segments: list[SpeakerSegment],
    rules: list[CorrectionRule],
) -> ReplacementResult:
    """Apply every rule to every segment.

    Returns new segment objects; the input list and its segments are not
    mutated. A segment counts once toward ``affected_count`` no matter how
    many rules changed it.
    """
    compiled = [(rule, _pattern_for(rule)) for rule in rules]
    corrected: list[SpeakerSegment] = []
    affected = 0

    for segment in segments:
        text = segment.text
        for rule, pattern in compiled:
            # Function replacement so "\1" or "\g<0>" in the replacement stay literal
            text = pattern.sub(lambda _m, r=rule.replace: r, text)

        if text != segment.text:
            affected += 1
            corrected.append(segment.model_copy(update={"text": text}))
        else:
            corrected.append(segment.model_copy())

    logger.info(f"Applied {len(rules)} replacement rules, {affected} segments changed")
    return ReplacementResult(corrected_segments=corrected, affected_count=affected)


def _context(text: str, start: int, end: int, size: int = CONTEXT_CHARS) -> str:
    lo = max(0, start - size)
    hi = min(len(text), end + size)
    snippet = text[lo:hi]
    if lo > 0:
        snippet = "..." + snippet
    if hi < len(text):
        snippet = snippet + "..."
    return snippet


def find_matches(
    segments: list[SpeakerSegment],
    find: str,
    case_sensitive: bool = False,
    whole_word: bool = False,
) -> list[SegmentMatch]:
    """Locate every occurrence of ``find`` with surrounding context.

    Blank search terms return no matches.
    """
    if not find or not find.strip():
        return []

    pattern = compile_rule_pattern(find, case_sensitive, whole_word)
    matches: list[SegmentMatch] = []
    for index, segment in enumerate(segments):
        for m in pattern.finditer(segment.text):
            matches.append(SegmentMatch(
                segment_index=index,
                char_offset=m.start(),
                matched_text=m.group(0),
                context=_context(segment.text, m.start(), m.end()),
            ))
    return matches
