"""Tests for instruction routing."""

import pytest

from scribe.config import RouterConfig
from scribe.models.transcript import SpeakerSegment
from scribe.nlp.router import (
    DEFAULT_MATCHERS,
    CorrectionRouter,
    PatternMatcher,
    estimate_time,
    split_clauses,
    suggest_term,
)

FORMATTED = "Speaker 1: Hello John.\n\nSpeaker 2: Hi John."


@pytest.fixture
def router() -> CorrectionRouter:
    return CorrectionRouter()


def route(router, segments, instruction, duration=None):
    return router.analyze_and_route(segments, instruction, FORMATTED, duration)


class TestSimpleSubstitution:
    def test_change_to(self, router, segments):
        plan = route(router, segments, "Change John to Jon")

        assert len(plan.simple_replacements) == 1
        rule = plan.simple_replacements[0]
        assert rule.find == "John"
        assert rule.replace == "Jon"
        assert rule.estimated_matches == 2
        assert rule.confidence == "high"
        assert rule.case_sensitive is False
        assert plan.complex_corrections == []
        assert plan.unmatched == []

    def test_summary_counts(self, router, segments):
        summary = route(router, segments, "Change John to Jon").summary

        assert summary.total_corrections == 1
        assert summary.simple_count == 1
        assert summary.complex_count == 0
        assert summary.total_segments_affected == 2
        assert summary.total_segments == 2
        assert summary.percentage_affected == 1.0

    def test_no_complex_means_no_model_time(self, router, segments):
        plan = route(router, segments, "Change John to Jon")
        assert plan.estimated_time.ai == "0 seconds"
        assert plan.estimated_time.regex == "< 1 second"

    @pytest.mark.parametrize("instruction", [
        "Replace John with Jon",
        "swap John with Jon",
        "John -> Jon",
        "John → Jon",
        "John => Jon",
        "John should be Jon",
        "John should read Jon",
        "fix John to Jon",
    ])
    def test_phrasings(self, router, segments, instruction):
        plan = route(router, segments, instruction)
        assert [(r.find, r.replace) for r in plan.simple_replacements] == [("John", "Jon")]

    def test_quotes_and_filler_stripped(self, router, segments):
        plan = route(router, segments, 'Please change "John" to "Jon" throughout the transcript.')
        assert [(r.find, r.replace) for r in plan.simple_replacements] == [("John", "Jon")]

    def test_find_prefix_stripped(self, router, segments):
        plan = route(router, segments, "Change all instances of John to Jon")
        assert plan.simple_replacements[0].find == "John"

    def test_lowercase_find_is_medium_confidence(self, router, segments):
        plan = route(router, segments, "Change john to Jon")
        assert plan.simple_replacements[0].confidence == "medium"

    def test_short_find_is_low_confidence(self, router, segments):
        plan = route(router, segments, "Change o to 0")

        rule = plan.simple_replacements[0]
        assert rule.confidence == "low"
        assert rule.estimated_matches == 3

    def test_short_replacement_is_low_confidence(self, router, segments):
        plan = route(router, segments, "Change Hello to Hi")
        assert plan.simple_replacements[0].confidence == "low"

    def test_duplicate_finds_collapse(self, router, segments):
        plan = route(router, segments, "Change John to Jon; change john to Johnny")
        assert len(plan.simple_replacements) == 1
        assert plan.simple_replacements[0].replace == "Jon"

    def test_whole_word_setting_carried_to_rules(self, segments):
        router = CorrectionRouter(RouterConfig(whole_word=True))
        plan = route(router, segments, "Change John to Jon")
        assert plan.simple_replacements[0].whole_word is True


class TestMultipleClauses:
    def test_semicolon(self, router, segments):
        plan = route(router, segments, "Replace Hello with Hey; change John to Jon")
        assert [r.find for r in plan.simple_replacements] == ["Hello", "John"]
        assert plan.summary.total_segments_affected == 2

    def test_comma_before_verb(self, router, segments):
        plan = route(router, segments, "Change John to Jon, replace Hello with Hey")
        assert [r.find for r in plan.simple_replacements] == ["John", "Hello"]

    @pytest.mark.parametrize("instruction", [
        "Change John to Jon and Mary to Marie",
        "Change John to Jon, Mary to Marie",
        "Replace John with Jon and Mary with Marie",
        "Change 'John' to 'Jon' and 'Mary' to 'Marie'",
        "John -> Jon, Mary -> Marie",
    ])
    def test_several_pairs_in_one_clause(self, router, instruction):
        segments = [SpeakerSegment(speaker_tag="Speaker A", start_time=0, end_time=1, text="John met Mary.")]

        plan = router.analyze_and_route(segments, instruction, "")

        assert [(r.find, r.replace) for r in plan.simple_replacements] == [("John", "Jon"), ("Mary", "Marie")]
        assert plan.complex_corrections == []

    def test_replacement_containing_and_stays_whole(self, router, segments):
        plan = route(router, segments, "Change John to Salt and Pepper")
        assert [(r.find, r.replace) for r in plan.simple_replacements] == [("John", "Salt and Pepper")]

    def test_pairs_mixed_with_plain_text_go_to_model(self, router, segments):
        instruction = "Change John to Jon and Mary to Marie and friends"
        plan = route(router, segments, instruction)

        assert plan.simple_replacements == []
        assert plan.complex_corrections == [instruction]

    def test_mixed_simple_and_complex(self, router, segments):
        plan = route(router, segments, "Change John to Jon and make it more formal")

        assert [r.find for r in plan.simple_replacements] == ["John"]
        assert plan.complex_corrections == ["make it more formal"]
        assert plan.summary.total_corrections == 2
        assert plan.summary.complex_count == 1
        assert plan.estimated_time.ai != "0 seconds"


class TestComplexCorrections:
    def test_style_request_is_complex(self, router, segments):
        plan = route(router, segments, "Make the tone more formal.")

        assert plan.simple_replacements == []
        assert plan.complex_corrections == ["Make the tone more formal."]

    def test_style_subject_with_substitution_verb(self, router, segments):
        plan = route(router, segments, "Change the tone to formal")

        assert plan.simple_replacements == []
        assert plan.complex_corrections == ["Change the tone to formal"]

    def test_residual_kept_verbatim(self, router, segments):
        plan = route(router, segments, "Change John to Jon. Fix the grammar in Speaker 2's line.")
        assert plan.complex_corrections == ["Fix the grammar in Speaker 2's line."]


class TestUnmatched:
    def test_zero_match_rule_is_not_emitted(self, router, segments):
        plan = route(router, segments, "Change Jonn to Jon")

        assert plan.simple_replacements == []
        assert len(plan.unmatched) == 1
        assert plan.unmatched[0].find == "Jonn"
        assert plan.unmatched[0].suggestion == "John"
        assert plan.summary.total_corrections == 0

    def test_empty_segments(self, router):
        plan = router.analyze_and_route([], "Change a to b", "")

        assert plan.simple_replacements == []
        assert plan.unmatched[0].suggestion is None
        assert plan.summary.total_segments == 0
        assert plan.summary.percentage_affected == 0.0


class TestPurity:
    def test_segments_untouched(self, router, segments):
        before = [s.model_dump() for s in segments]
        route(router, segments, "Change John to Jon and make it more formal")
        assert [s.model_dump() for s in segments] == before


class TestCustomMatchers:
    def test_extra_phrasing(self, segments):
        becomes = PatternMatcher("becomes", r"(?P<find>.+?)\s+becomes\s+(?P<replace>.+)")
        router = CorrectionRouter(matchers=[becomes, *DEFAULT_MATCHERS])

        plan = route(router, segments, "John becomes Jon")
        assert [(r.find, r.replace) for r in plan.simple_replacements] == [("John", "Jon")]

    def test_identical_find_and_replace_is_ignored(self, router, segments):
        plan = route(router, segments, "Change John to John")
        assert plan.simple_replacements == []


class TestSplitClauses:
    def test_sentences(self):
        assert split_clauses("Change John to Jon. Replace Hello with Hey.") == [
            "Change John to Jon.",
            "Replace Hello with Hey.",
        ]

    def test_titles_do_not_split(self):
        assert split_clauses("Change Dr. Smith to Dr. Jones") == ["Change Dr. Smith to Dr. Jones"]

    def test_newlines(self):
        assert split_clauses("Change a to b\n\nchange c to d") == ["Change a to b", "change c to d"]

    def test_title_substitution_parses(self, router):
        candidates, residual = router.parse_instruction("Change Dr. Smith to Dr. Jones")
        assert candidates == [("Dr. Smith", "Dr. Jones")]
        assert residual == []


class TestSuggestTerm:
    def test_sound_alike(self):
        assert suggest_term("Jonn", FORMATTED) == "John"

    def test_exact_match_not_suggested(self):
        assert suggest_term("John", "John") is None

    def test_multi_word(self):
        assert suggest_term("Strype invoice", "Let's review the Stripe invoice.") == "Stripe invoice"

    def test_nothing_close(self):
        assert suggest_term("Kubernetes", FORMATTED) is None


class TestEstimateTime:
    def test_regex_only(self):
        est = estimate_time(0)
        assert (est.regex, est.ai, est.total) == ("< 1 second", "0 seconds", "< 1 second")

    def test_scales_with_duration(self):
        assert estimate_time(2, 1800).ai == "25-50 seconds"

    def test_unknown_duration(self):
        assert estimate_time(1).total == "5-10 seconds"
