"""Route a free-text correction instruction into literal rules and leftovers.

Routing is deterministic: the instruction is split into clauses and each
clause is offered to a prioritized list of matchers. Clauses that reduce to
"find X, replace with Y" become ``CorrectionRule`` objects applied by regex;
everything else is forwarded verbatim to the model-based rewriter.
"""

import logging
import re
from abc import ABC, abstractmethod

from metaphone import doublemetaphone
from rapidfuzz import fuzz, process, utils

from scribe.config import RouterConfig
from scribe.models.correction import (
    CorrectionRule,
    EstimatedTime,
    RoutingPlan,
    RoutingSummary,
    UnmatchedRule,
)
from scribe.models.transcript import SpeakerSegment
from scribe.nlp.replacer import compile_rule_pattern, count_matches

logger = logging.getLogger(__name__)

SUBSTITUTION_VERBS = (
    "change", "correct", "fix", "rename", "update", "spell",
    "replace", "swap", "substitute",
)

# Verbs that start a new request inside a run-on instruction
CLAUSE_VERBS = SUBSTITUTION_VERBS + (
    "make", "remove", "delete", "add", "improve", "rewrite", "clean", "capitalize",
    "translate", "shorten", "rephrase", "merge", "split",
)

# Clause boundaries: newlines, semicolons, sentence ends (not after titles like "Dr.")
_CLAUSE_SPLIT = re.compile(
    r"\n+|;|(?<!\bDr\.)(?<!\bMr\.)(?<!\bMs\.)(?<!\bMrs\.)(?<!\bSt\.)(?<!\bvs\.)(?<=[.!?])\s+(?=[A-Z\"'“‘])"
)

# ", change ..." / " and make ..." start a new clause
_VERB_SPLIT = re.compile(
    r"\s*,\s*(?:and\s+|then\s+|also\s+)*(?=(?:%s)\b)|\s+(?:and|then)\s+(?:also\s+)?(?=(?:%s)\b)"
    % ("|".join(CLAUSE_VERBS), "|".join(CLAUSE_VERBS)),
    re.IGNORECASE,
)

_LEADING_NOISE = re.compile(r"^(?:please\s+|also\s+|then\s+|and\s+)+", re.IGNORECASE)
_TRAILING_NOISE = re.compile(
    r"(?:\s+(?:throughout(?:\s+the\s+(?:whole\s+|entire\s+)?transcript)?|everywhere"
    r"|in\s+the\s+(?:whole\s+|entire\s+)?transcript|please))+$",
    re.IGNORECASE,
)
_TRAILING_PUNCT = re.compile(r"[\s.!?,:]+$")
_FIND_PREFIX = re.compile(
    r"^(?:all\s+(?:the\s+)?(?:instances|occurrences|mentions)\s+of\s+|every\s+|the\s+(?:word|name|term|spelling)\s+)",
    re.IGNORECASE,
)
_QUOTES = "\"'`“”‘’"

# "Jon and Mary to Marie": a replacement that continues with further pairs
_PAIR_SPLIT = re.compile(r"\s*,\s*(?:and\s+)?|\s+and\s+", re.IGNORECASE)
_BARE_PAIR = re.compile(
    r"(?P<find>.+?)(?:\s+(?:to|into|with|by)\s+|\s*(?:->|→|=>)\s*)(?P<replace>.+)",
    re.IGNORECASE | re.DOTALL,
)

_WORD = re.compile(r"[\w'\-]+")

# Subjects that describe the whole text rather than a literal term
STYLE_SUBJECTS = frozenset({
    "tone", "style", "grammar", "wording", "phrasing", "punctuation", "formatting",
    "language", "register", "text", "transcript", "everything", "it", "this", "all",
})
_DETERMINER = re.compile(r"^(?:the|its|it's|this|that|all)\s+", re.IGNORECASE)

SUGGESTION_CUTOFF = 70.0
PHONETIC_BONUS = 15.0


class InstructionMatcher(ABC):
    """Strategy that recognizes one phrasing of a literal substitution."""

    name: str = "matcher"

    @abstractmethod
    def match(self, clause: str) -> list[tuple[str, str]] | None:
        """Return the (find, replace) pairs if the clause is a substitution, else None."""
        ...


class PatternMatcher(InstructionMatcher):
    """Matcher driven by a full-match regex with ``find`` and ``replace`` groups."""

    def __init__(self, name: str, pattern: str):
        self.name = name
        self.pattern = re.compile(pattern, re.IGNORECASE | re.DOTALL)

    def match(self, clause: str) -> list[tuple[str, str]] | None:
        m = self.pattern.fullmatch(clause)
        if not m:
            return None
        return expand_pairs(m.group("find"), m.group("replace"))


DEFAULT_MATCHERS: list[InstructionMatcher] = [
    PatternMatcher(
        "change_to",
        r"(?:change|correct|fix|rename|update|spell)\s+(?P<find>.+?)\s+(?:to|into|as)\s+(?P<replace>.+)",
    ),
    PatternMatcher(
        "replace_with",
        r"(?:replace|swap|substitute)\s+(?P<find>.+?)\s+(?:with|by)\s+(?P<replace>.+)",
    ),
    PatternMatcher(
        "arrow",
        r"(?P<find>.+?)\s*(?:->|→|=>)\s*(?P<replace>.+)",
    ),
    PatternMatcher(
        "should_be",
        r"(?P<find>.+?)\s+should\s+(?:be|read)\s+(?P<replace>.+)",
    ),
]


def _strip_quotes(text: str) -> str:
    text = text.strip()
    while len(text) >= 2 and text[0] in _QUOTES and text[-1] in _QUOTES:
        text = text[1:-1].strip()
    return text


def _is_style_subject(find: str) -> bool:
    return _DETERMINER.sub("", find).casefold() in STYLE_SUBJECTS


def expand_pairs(find: str, replace: str) -> list[tuple[str, str]] | None:
    """Split a matched substitution into one (find, replace) pair per term.

    "John" / "Jon and Mary to Marie" gives [("John", "Jon"), ("Mary", "Marie")].
    A replacement that mixes plain text with further pairs cannot be split
    safely and yields None, as does a result with no usable pair.
    """
    first, *rest = _PAIR_SPLIT.split(replace.strip())
    tails = [_BARE_PAIR.fullmatch(part.strip()) for part in rest]
    if all(tails):
        raw = [(find, first)] + [(t.group("find"), t.group("replace")) for t in tails]
    elif any(tails):
        return None
    else:
        raw = [(find, replace)]

    pairs = []
    for term, replacement in raw:
        term = _strip_quotes(_FIND_PREFIX.sub("", term.strip()))
        replacement = _strip_quotes(replacement)
        if term and term != replacement:
            pairs.append((term, replacement))
    return pairs or None


def split_clauses(instruction: str) -> list[str]:
    """Split an instruction into independently routable clauses."""
    clauses = []
    for part in _CLAUSE_SPLIT.split(instruction):
        for piece in _VERB_SPLIT.split(part):
            piece = piece.strip()
            if piece:
                clauses.append(piece)
    return clauses


def _clean_clause(clause: str) -> str:
    clause = _LEADING_NOISE.sub("", clause.strip())
    clause = _TRAILING_PUNCT.sub("", clause)
    clause = _TRAILING_NOISE.sub("", clause)
    return _TRAILING_PUNCT.sub("", clause)


def suggest_term(find: str, text: str, cutoff: float = SUGGESTION_CUTOFF) -> str | None:
    """Closest word or phrase in ``text`` to ``find``, for "did you mean" hints.

    Candidates are n-grams with the same word count as ``find``. Ranking uses
    Levenshtein ratio, with a bonus for a shared Double Metaphone code so
    sound-alike misspellings ("Jon" / "John") win over look-alikes.
    """
    n = max(1, len(find.split()))
    words = _WORD.findall(text)
    choices = sorted({" ".join(words[i:i + n]) for i in range(len(words) - n + 1)})
    if not choices:
        return None

    shortlist = process.extract(
        find, choices, scorer=fuzz.ratio, processor=utils.default_process,
        limit=10, score_cutoff=cutoff - PHONETIC_BONUS,
    )
    if not shortlist:
        return None

    find_codes = {c for c in doublemetaphone(find) if c}
    best: tuple[float, str] | None = None
    for choice, score, _index in shortlist:
        if choice.casefold() == find.casefold():
            continue
        if find_codes & {c for c in doublemetaphone(choice) if c}:
            score = min(100.0, score + PHONETIC_BONUS)
        if score >= cutoff and (best is None or score > best[0]):
            best = (score, choice)
    return best[1] if best else None


def estimate_time(complex_count: int, duration_seconds: float | None = None) -> EstimatedTime:
    """Rough wall-clock hints for the regex and model phases."""
    if complex_count == 0:
        return EstimatedTime(regex="< 1 second", ai="0 seconds", total="< 1 second")
    # Longer recordings mean longer rewrite prompts and outputs
    minutes = (duration_seconds or 0.0) / 60
    low = 5 * complex_count + 5 * int(minutes // 10)
    high = low * 2
    span = f"{low}-{high} seconds"
    return EstimatedTime(regex="< 1 second", ai=span, total=span)


class CorrectionRouter:
    """Deterministic instruction router.

    Matchers are tried in order; the first that recognizes a clause wins.
    Pass ``matchers`` to extend or reorder the recognized phrasings.
    """

    def __init__(
        self,
        config: RouterConfig | None = None,
        matchers: list[InstructionMatcher] | None = None,
    ):
        self.config = config or RouterConfig()
        self.matchers = list(matchers) if matchers is not None else list(DEFAULT_MATCHERS)

    def _match_clause(self, clause: str) -> list[tuple[str, str]] | None:
        for matcher in self.matchers:
            found = matcher.match(clause)
            if not found:
                continue
            # "change the tone to formal" is a rewrite, not a literal term
            if any(_is_style_subject(find) for find, _ in found):
                return None
            logger.debug(f"Clause {clause!r} matched by {matcher.name}: {found}")
            return found
        return None

    def parse_instruction(self, instruction: str) -> tuple[list[tuple[str, str]], list[str]]:
        """Split an instruction into candidate substitutions and residual clauses."""
        candidates: list[tuple[str, str]] = []
        residual: list[str] = []

        for clause in split_clauses(instruction):
            cleaned = _clean_clause(clause)
            if not cleaned:
                continue
            found = self._match_clause(cleaned)
            if found:
                candidates.extend(found)
            else:
                residual.append(clause)

        return candidates, residual

    def _confidence(self, find: str, replace: str, segments: list[SpeakerSegment]) -> str:
        short = self.config.short_term_length
        if len(find) <= short or len(replace) <= short:
            return "low"
        if find[0].isupper():
            pattern = compile_rule_pattern(find, whole_word=self.config.whole_word)
            occurrences = [m.group(0) for seg in segments for m in pattern.finditer(seg.text)]
            if occurrences and all(o == find for o in occurrences):
                return "high"
        return "medium"

    def analyze_and_route(
        self,
        segments: list[SpeakerSegment],
        instruction: str,
        formatted_transcript: str,
        duration_seconds: float | None = None,
    ) -> RoutingPlan:
        """Build a routing plan. Pure: segments are never modified."""
        candidates, complex_corrections = self.parse_instruction(instruction)

        rules: list[CorrectionRule] = []
        unmatched: list[UnmatchedRule] = []
        affected: set[int] = set()
        seen: set[str] = set()

        for find, replace in candidates:
            key = find.casefold()
            if key in seen:
                logger.debug(f"Skipping duplicate rule for {find!r}")
                continue
            seen.add(key)

            counts = count_matches(segments, find, whole_word=self.config.whole_word)
            total = sum(counts.values())
            affected.update(counts)

            if total == 0:
                suggestion = suggest_term(find, formatted_transcript)
                logger.info(f"No matches for {find!r}" + (f", closest: {suggestion!r}" if suggestion else ""))
                unmatched.append(UnmatchedRule(find=find, replace=replace, suggestion=suggestion))
                continue

            rules.append(CorrectionRule(
                find=find,
                replace=replace,
                case_sensitive=False,
                whole_word=self.config.whole_word,
                estimated_matches=total,
                confidence=self._confidence(find, replace, segments),
            ))

        total_segments = len(segments)
        summary = RoutingSummary(
            total_corrections=len(rules) + len(complex_corrections),
            simple_count=len(rules),
            complex_count=len(complex_corrections),
            total_segments_affected=len(affected),
            total_segments=total_segments,
            percentage_affected=len(affected) / total_segments if total_segments else 0.0,
        )

        logger.info(
            f"Routing complete: {summary.simple_count} simple, {summary.complex_count} complex, "
            f"{len(unmatched)} unmatched, {summary.total_segments_affected}/{total_segments} segments"
        )

        return RoutingPlan(
            simple_replacements=rules,
            complex_corrections=complex_corrections,
            unmatched=unmatched,
            estimated_time=estimate_time(len(complex_corrections), duration_seconds),
            summary=summary,
        )
