"""Tests for parsing semi-structured model output."""

from transcript_analyst.response_parser import (
    DEFAULT_IMPROVEMENT_GUIDANCE,
    DEFAULT_SEGMENT_GUIDANCE,
    DEFAULT_SEGMENT_TITLE,
    Parsed,
    ParseFailure,
    extract_list_items,
    extract_section,
    parse_critic_evaluation,
    parse_framework_segments,
    parse_gap_analysis,
    parse_gap_suggestions,
    parse_keywords,
    parse_tags,
    parse_themes,
)

CRITIC_FAIL = """## Source Alignment
FAIL
- The speaker never mentioned pricing.
- The revenue figure is not in the transcript.

## Objective Fulfillment
Score: 65%

## Improvement Guidance
Remove the unsupported claims and quote the speaker directly.
"""

CRITIC_PASS = """## Source Alignment
PASS

## Objective Fulfillment
Score: 92%

## Improvement Guidance
Add one more quote about onboarding.
"""


class TestFrameworkSegments:

    def test_parses_object_inside_prose(self):
        text = """Here is the framework:
{
  "segments": [
    {"title": "Pain Points", "objective": "Find pain points", "guidance": "Quote users"},
    {"title": "Pricing", "objective": "Pricing reactions", "guidance": "List objections"}
  ]
}
Hope this helps."""
        result = parse_framework_segments(text)

        assert isinstance(result, Parsed)
        segments = result.value
        assert [s.title for s in segments] == ["Pain Points", "Pricing"]
        assert [s.order for s in segments] == [0, 1]
        assert segments[0].id.startswith("segment-") and segments[0].id.endswith("-0")
        assert len({s.id for s in segments}) == 2

    def test_capitalized_keys_and_missing_fields(self):
        text = '{"Segments": [{"Title": "Risks", "Objective": "Find risks"}]}'
        result = parse_framework_segments(text)

        assert isinstance(result, Parsed)
        segment = result.value[0]
        assert segment.title == "Risks"
        assert segment.objective == "Find risks"
        assert segment.guidance == DEFAULT_SEGMENT_GUIDANCE

    def test_non_object_entries_get_placeholders(self):
        result = parse_framework_segments('{"segments": ["just a string"]}')
        assert isinstance(result, Parsed)
        assert result.value[0].title == DEFAULT_SEGMENT_TITLE

    def test_no_json(self):
        result = parse_framework_segments("I could not design a framework.")
        assert isinstance(result, ParseFailure)
        assert result.raw == "I could not design a framework."

    def test_invalid_json(self):
        assert isinstance(parse_framework_segments('{"segments": [}'), ParseFailure)

    def test_missing_segments_array(self):
        assert isinstance(parse_framework_segments('{"sections": []}'), ParseFailure)
        assert isinstance(parse_framework_segments('{"segments": "none"}'), ParseFailure)

    def test_empty_segments_array_is_valid(self):
        result = parse_framework_segments('{"segments": []}')
        assert isinstance(result, Parsed)
        assert result.value == []


class TestCriticEvaluation:

    def test_fail_with_issues(self):
        evaluation = parse_critic_evaluation("segment-1", CRITIC_FAIL)

        assert evaluation.segment_id == "segment-1"
        assert evaluation.source_alignment is False
        assert evaluation.source_alignment_issues == [
            "The speaker never mentioned pricing.",
            "The revenue figure is not in the transcript.",
        ]
        assert evaluation.objective_fulfillment_score == 65
        assert evaluation.improvement_guidance == "Remove the unsupported claims and quote the speaker directly."
        assert evaluation.evaluation == CRITIC_FAIL.strip()

    def test_pass(self):
        evaluation = parse_critic_evaluation("segment-1", CRITIC_PASS)

        assert evaluation.source_alignment is True
        assert evaluation.source_alignment_issues is None
        assert evaluation.objective_fulfillment_score == 92

    def test_verdict_is_case_insensitive(self):
        evaluation = parse_critic_evaluation("s", "## Source Alignment\npass\n\nScore: 80")
        assert evaluation.source_alignment is True
        assert evaluation.objective_fulfillment_score == 80

    def test_verdict_on_heading_line_keeps_issues(self):
        text = "## Source Alignment FAIL\n- claim A\n\n## Objective Fulfillment\nScore: 50%"
        evaluation = parse_critic_evaluation("s", text)

        assert evaluation.source_alignment is False
        assert evaluation.source_alignment_issues == ["claim A"]

    def test_unstructured_text_gets_defaults(self):
        evaluation = parse_critic_evaluation("s", "Looks fine to me.")

        assert evaluation.source_alignment is False
        assert evaluation.objective_fulfillment_score == 0
        assert evaluation.improvement_guidance == DEFAULT_IMPROVEMENT_GUIDANCE

    def test_score_is_not_clamped(self):
        evaluation = parse_critic_evaluation("s", "## Source Alignment\nPASS\n\nScore: 150%")
        assert evaluation.objective_fulfillment_score == 150


class TestGapSuggestions:

    def test_fenced_array(self):
        text = """Here are the gaps:
```json
[
  {"title": "Team Morale", "objective": "How the team feels", "guidance": "Look at tone", "rationale": "Never covered"},
  {"title": "Budget", "objective": "Budget constraints", "guidance": "Find numbers"}
]
```"""
        result = parse_gap_suggestions(text)

        assert isinstance(result, Parsed)
        morale, budget = result.value
        assert morale.title == "Team Morale"
        assert morale.rationale == "Never covered"
        assert budget.rationale == "No rationale provided"
        assert morale.id.startswith("gap-") and morale.id != budget.id

    def test_unfenced_json_is_rejected(self):
        result = parse_gap_suggestions('[{"title": "Budget"}]')
        assert isinstance(result, ParseFailure)

    def test_fenced_object_is_rejected(self):
        result = parse_gap_suggestions('```json\n{"title": "Budget"}\n```')
        assert isinstance(result, ParseFailure)


class TestGapAnalysis:

    def test_sections_and_new_segments(self):
        text = """# Gap Analysis Summary
The analyses missed two areas.

## Uncovered Themes
- Team morale
- Budget pressure

## Alternative Perspectives
* The customer's view

## Recommendations
- Interview the finance lead

```json
[{"title": "Morale", "objective": "Assess morale", "guidance": "Quote tone"}]
```"""
        report = parse_gap_analysis(text)

        assert report.uncovered_themes == ["Team morale", "Budget pressure"]
        assert report.alternative_perspectives == ["The customer's view"]
        assert report.recommendations == ["Interview the finance lead"]
        assert [s.title for s in report.new_segments] == ["Morale"]
        assert report.new_segments[0].order == 999
        assert "```json" not in report.summary
        assert report.summary.startswith("# Gap Analysis Summary")

    def test_bad_json_block_keeps_summary(self):
        text = "## Uncovered Themes\n- One\n\n```json\n[oops\n```"
        report = parse_gap_analysis(text)

        assert report.new_segments == []
        assert report.summary == text
        assert report.uncovered_themes == ["One"]


class TestSmallParsers:

    def test_tags(self):
        assert parse_tags("interview, product , ,pricing") == ["interview", "product", "pricing"]

    def test_themes(self):
        assert parse_themes(' ["A", "B"] ') == Parsed(["A", "B"])
        assert parse_themes('{"a": 1}') == Parsed([])
        assert isinstance(parse_themes("A, B"), ParseFailure)

    def test_keywords(self):
        assert parse_keywords('["churn", "pricing"]') == Parsed(["churn", "pricing"])

    def test_extract_section_stops_at_next_heading(self):
        content = "# Title\n## Risks\n- one\n- two\n## Next\n- three"
        assert extract_section(content, "## risks") == "- one\n- two"
        assert extract_section(content, "## Missing") == ""
        assert extract_section("## Risks: two\n- one", "## Risks") == ": two\n- one"
        assert extract_section("## Risky bets\n- one", "## Risk") == ""

    def test_extract_list_items(self):
        assert extract_list_items("- a\n* b\n• c\nplain\n-   \n") == ["a", "b", "c"]
