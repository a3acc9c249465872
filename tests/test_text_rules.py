"""Tests for issue text heuristics."""

from contrib_tracker.text_rules import (
    analyze_requirements,
    find_claim,
    is_claimed,
    parse_contribution_guidelines,
)


class TestRequirements:
    def test_code_block_steps_and_expectation(self):
        body = (
            "When exporting a report the totals row is missing.\n\n"
            "1. Create a report with two rows\n"
            "2. Export it as CSV\n\n"
            "```\nname,amount\nfoo,1\nbar,2\n```\n\n"
            "expected: a final totals row with the summed amount, like the PDF export does."
        )
        assert len(body) > 200
        assert analyze_requirements(body) is True

    def test_too_short(self):
        assert analyze_requirements("It should work. 1. click") is False
        assert analyze_requirements("") is False
        assert analyze_requirements(None) is False

    def test_plain_description_is_unclear(self):
        body = "The sidebar overlaps the header on narrow screens and looks broken to me."
        assert analyze_requirements(body) is False

    def test_two_indicators(self):
        body = "The button should be disabled while saving, otherwise duplicates appear in the list."
        assert analyze_requirements(body + "\n- repro on Firefox") is True


class TestClaims:
    def test_claim_phrase_case_insensitive(self):
        comments = [
            {"user": {"login": "x"}, "body": "Nice find"},
            {"user": {"login": "dev"}, "body": "I'm Working On This, PR soon"},
        ]
        assert is_claimed(comments) is True
        assert find_claim(comments) == "dev"

    def test_unclaimed(self):
        comments = [{"user": {"login": "x"}, "body": "Any update?"}, {"body": None}]
        assert is_claimed(comments) is False

    def test_no_comments(self):
        assert is_claimed([]) is False


class TestGuidelines:
    def test_parses_conventions(self):
        content = (
            "# Contributing\n\n"
            "Create a branch named `feat/<issue>-short-name` from main.\n"
            "We use Conventional Commits for every commit.\n"
            "Run the suite with pytest and lint with ruff.\n"
            "Format with black before pushing.\n"
            "You must sign the Contributor License Agreement.\n"
        )
        g = parse_contribution_guidelines(content, "CONTRIBUTING.md")
        assert g.branch_naming_convention == "feat/<issue>-short-name"
        assert g.commit_message_format == "conventional commits"
        assert g.test_framework == "pytest"
        assert g.linter == "Ruff"
        assert g.formatter == "Black"
        assert g.cla_required is True
        assert g.source_path == "CONTRIBUTING.md"

    def test_commit_message_pattern(self):
        g = parse_contribution_guidelines("Keep each commit message short.")
        assert g.commit_message_format is None
        g = parse_contribution_guidelines('Each commit message must follow "type: summary".')
        assert g.commit_message_format == "type: summary"

    def test_cla_needs_whole_word(self):
        g = parse_contribution_guidelines("Please declare your classes clearly.")
        assert g.cla_required is False

    def test_first_test_framework_wins(self):
        g = parse_contribution_guidelines("We run jest for unit tests and mocha for e2e.")
        assert g.test_framework == "Jest"
