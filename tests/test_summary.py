import threading

import pytest

from resume_agents.errors import PipelineCancelled
from resume_agents.pipeline.summary import (
    ANALYST_PROMPT,
    REVIEWER_PROMPT,
    WRITER_PROMPT,
    CandidateFacts,
    WorkExperience,
    experience_label,
    generate_summary,
)

JD = "We need a backend engineer with Python and AWS experience."
CLEAN_SUMMARY = "Senior engineer with 15+ years building Python services on AWS."


@pytest.fixture
def facts():
    return CandidateFacts(
        skills=["Python", "AWS", "Kubernetes"],
        work_experience=[
            WorkExperience(position="Staff Engineer", organization="Acme", start_year=2018),
            WorkExperience(position="Engineer", organization="Initech", start_year=2010, end_year=2018),
        ],
    )


def test_experience_label_uses_earliest_start_year(facts):
    assert experience_label(facts, current_year=2025) == "15+ years"


def test_experience_label_without_dates():
    facts = CandidateFacts(work_experience=[WorkExperience(position="Engineer")])
    assert experience_label(facts) == "extensive experience"
    assert experience_label(CandidateFacts()) == "extensive experience"


def test_approved_summary(backend, config, progress, facts):
    backend.queue("Pillars: backend, cloud, reliability", f'"{CLEAN_SUMMARY}"', "APPROVED")

    result = generate_summary(facts, JD, progress, backend=backend, config=config)

    assert result.approved
    assert result.text == CLEAN_SUMMARY
    assert result.warnings == []
    assert result.unlisted_mentions == []
    assert [prompt for prompt, _ in backend.calls] == [ANALYST_PROMPT, WRITER_PROMPT, REVIEWER_PROMPT]
    assert "Python, AWS, Kubernetes" in backend.calls_for(WRITER_PROMPT)[0]
    assert "Pillars: backend" in backend.calls_for(WRITER_PROMPT)[0]
    progress.assert_single_final_done()


def test_fabricated_mention_is_reported_to_reviewer_and_caller(backend, config, facts):
    text = CLEAN_SUMMARY.replace("on AWS.", "on AWS and Terraform.")
    backend.queue("brief", text, "APPROVED")

    result = generate_summary(facts, JD, backend=backend, config=config)

    assert result.approved
    assert result.unlisted_mentions == ["terraform"]
    assert result.warnings == ["unlisted technology: terraform"]
    assert "terraform" in backend.calls_for(REVIEWER_PROMPT)[0]


def test_reviewer_critique_drives_a_rewrite(backend, config, facts):
    backend.queue(
        "brief",
        "Too short.",
        "CRITIQUE: needs exactly 4 sentences",
        CLEAN_SUMMARY,
        "APPROVED",
    )

    result = generate_summary(facts, JD, backend=backend, config=config)

    assert result.approved
    assert result.text == CLEAN_SUMMARY
    retry_prompt = backend.calls_for(WRITER_PROMPT)[1]
    assert "needs exactly 4 sentences" in retry_prompt
    assert "Too short." in retry_prompt


def test_exhausted_summary_returns_last_draft(backend, config, progress, facts):
    backend.queue(
        "brief",
        "Draft one.", "CRITIQUE: too short",
        "Draft two.", "CRITIQUE: still short",
        "Draft three.", "CRITIQUE: not quite",
    )

    result = generate_summary(facts, JD, progress, backend=backend, config=config)

    assert not result.approved
    assert result.text == "Draft three."
    assert any("not quite" in w for w in result.warnings)
    assert len(backend.calls_for(WRITER_PROMPT)) == 3
    progress.assert_single_final_done()


def test_cancelled_summary_raises(backend, config, facts):
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(PipelineCancelled):
        generate_summary(facts, JD, backend=backend, config=config, cancel_event=cancel_event)
    assert backend.calls == []
