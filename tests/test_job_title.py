import pytest

from resume_agents.pipeline.job_title import (
    ANALYST_PROMPT,
    REVIEWER_PROMPT,
    WRITER_PROMPT,
    generate_job_title,
    strip_markdown,
    title_violations,
)

JD = "Acme is hiring a Staff Platform Engineer to lead our Kubernetes platform."


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("**Senior AI Platform Engineer**", "Senior AI Platform Engineer"),
        ("# Staff Engineer", "Staff Engineer"),
        ("`Lead` _Backend_ Engineer", "Lead Backend Engineer"),
    ],
)
def test_strip_markdown(raw, expected):
    assert strip_markdown(raw) == expected


def test_title_violations():
    assert title_violations("Staff Platform Engineer") == []
    assert title_violations("Engineer") == ["the title has 1 words; use 2-6"]
    assert "the title must not contain markdown" in title_violations("**Staff Engineer**")
    assert "the title must not end with punctuation" in title_violations("Staff Engineer.")


def test_approved_title(backend, config, progress):
    backend.queue("Seniority: Staff. Domain: Platform.", '"Staff Platform Engineer"', "APPROVED")

    title = generate_job_title(
        JD,
        summary="Platform engineer with 10+ years.",
        recent_positions=["Senior Engineer at Acme", "Engineer at Initech", "Intern at Hooli"],
        on_progress=progress,
        backend=backend,
        config=config,
    )

    assert title == "Staff Platform Engineer"
    assert [prompt for prompt, _ in backend.calls] == [ANALYST_PROMPT, WRITER_PROMPT, REVIEWER_PROMPT]
    analyst_prompt = backend.calls_for(ANALYST_PROMPT)[0]
    assert "Engineer at Initech" in analyst_prompt
    assert "Intern at Hooli" not in analyst_prompt
    progress.assert_single_final_done()


def test_format_failure_skips_reviewer(backend, config):
    backend.queue("analysis", "Staff Platform Engineer - leading Kubernetes work.", "Staff Platform Engineer", "APPROVED")

    title = generate_job_title(JD, backend=backend, config=config)

    assert title == "Staff Platform Engineer"
    assert len(backend.calls_for(REVIEWER_PROMPT)) == 1
    assert "punctuation" in backend.calls_for(WRITER_PROMPT)[1]


def test_reviewer_correction_is_suggested(backend, config):
    backend.queue(
        "analysis",
        "Platform Engineer",
        "CRITIQUE: missing seniority\nStaff Platform Engineer",
        "Staff Platform Engineer",
        "APPROVED",
    )

    title = generate_job_title(JD, backend=backend, config=config)

    assert title == "Staff Platform Engineer"
    retry_prompt = backend.calls_for(WRITER_PROMPT)[1]
    assert "missing seniority" in retry_prompt
    assert "Suggested title: Staff Platform Engineer" in retry_prompt


def test_exhausted_title_has_markdown_removed(backend, config, progress):
    backend.queue("analysis", *["**Staff Platform Engineer**"] * 3)

    title = generate_job_title(JD, on_progress=progress, backend=backend, config=config)

    assert title == "Staff Platform Engineer"
    assert backend.calls_for(REVIEWER_PROMPT) == []
    progress.assert_single_final_done()
