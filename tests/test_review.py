import pytest

from resume_agents.pipeline.review import parse_review_verdict, split_correction


@pytest.mark.parametrize("reply", ["APPROVED", "approved.", "**APPROVED** looks good", "  > APPROVED"])
def test_approvals(reply):
    assert parse_review_verdict(reply).approved


def test_critique_prefix_is_normalized():
    verdict = parse_review_verdict("**CRITIQUE:** too long")

    assert not verdict.approved
    assert verdict.violations == ["too long"]
    assert verdict.critique == "CRITIQUE: too long"


def test_unprefixed_rejection_keeps_the_reply():
    verdict = parse_review_verdict("This reads like a sentence, not a title.")

    assert not verdict.approved
    assert verdict.violations == ["This reads like a sentence, not a title."]


def test_empty_reply_is_a_rejection():
    verdict = parse_review_verdict("")

    assert not verdict.approved
    assert "without details" in verdict.critique


def test_split_correction():
    assert split_correction("CRITIQUE: no seniority\n\nStaff Engineer\n") == (
        "CRITIQUE: no seniority",
        "Staff Engineer",
    )
    assert split_correction("CRITIQUE: fine otherwise") == ("CRITIQUE: fine otherwise", None)
