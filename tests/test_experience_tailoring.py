import json

import pytest

from resume_agents.errors import BackendFailure
from resume_agents.pipeline.experience_tailoring import (
    ANALYST_PROMPT,
    FACT_CHECKER_PROMPT,
    RELEVANCE_EVALUATOR_PROMPT,
    WRITER_PROMPT,
    ExperienceDraft,
    check_tailored_experience,
    tailor_experience,
)
from resume_agents.pipeline.summary import WorkExperience

JD = "Platform engineer for Kubernetes workloads on GCP, focused on reliability."
DESCRIPTION = "Maintained the internal deployment tooling for product teams."
ACHIEVEMENTS = ["Cut deploy time from 40 to 8 minutes", "Mentored four junior engineers"]
REWRITE = {
    "description": "Maintained deployment tooling that kept product team releases reliable.",
    "achievements": [
        "Cut deploy time from 40 to 8 minutes, improving release reliability",
        "Mentored four junior engineers on platform practices",
    ],
}


@pytest.fixture
def experience():
    return WorkExperience(
        position="Platform Engineer",
        organization="Globex",
        description=DESCRIPTION,
        achievements=ACHIEVEMENTS,
    )


def test_approved_rewrite(backend, config, progress, experience):
    backend.queue("alignment: high", json.dumps(REWRITE), "APPROVED", "APPROVED")

    result = tailor_experience(experience, JD, progress, backend=backend, config=config)

    assert result.approved
    assert result.description == REWRITE["description"]
    assert result.achievements == REWRITE["achievements"]
    assert result.tech_stack == []
    assert [prompt for prompt, _ in backend.calls] == [
        ANALYST_PROMPT,
        WRITER_PROMPT,
        FACT_CHECKER_PROMPT,
        RELEVANCE_EVALUATOR_PROMPT,
    ]
    assert experience.description == DESCRIPTION
    progress.assert_single_final_done()
    assert progress.events[-1].stage == "complete"


def test_count_mismatch_is_rejected_before_review(backend, config, experience):
    short = {"description": REWRITE["description"], "achievements": REWRITE["achievements"][:1]}
    backend.queue("alignment", json.dumps(short), json.dumps(REWRITE), "APPROVED", "APPROVED")

    result = tailor_experience(experience, JD, backend=backend, config=config)

    assert result.approved
    assert result.achievements == REWRITE["achievements"]
    assert len(backend.calls_for(FACT_CHECKER_PROMPT)) == 1
    retry_prompt = backend.calls_for(WRITER_PROMPT)[1]
    assert "Count mismatch: expected 2 achievements, got 1" in retry_prompt


def test_structurally_invalid_drafts_fall_back_to_originals(backend, config, progress, experience):
    unchanged = {"description": DESCRIPTION, "achievements": ["ok", "fine"]}
    backend.queue("alignment", *[json.dumps(unchanged)] * 3)

    result = tailor_experience(experience, JD, progress, backend=backend, config=config)

    assert not result.approved
    assert result.description == DESCRIPTION
    assert result.achievements == ACHIEVEMENTS
    assert result.warnings == ["no usable output after 3 attempt(s)"]
    assert backend.calls_for(FACT_CHECKER_PROMPT) == []
    progress.assert_single_final_done()


def test_fact_check_rejections_keep_the_last_sound_draft(backend, config, experience):
    backend.queue(
        "alignment",
        json.dumps(REWRITE), "CRITIQUE: reliability is not claimed in the original",
        json.dumps(REWRITE), "CRITIQUE: still overstated",
        json.dumps(REWRITE), "CRITIQUE: still overstated",
    )

    result = tailor_experience(experience, JD, backend=backend, config=config)

    assert not result.approved
    assert result.achievements == REWRITE["achievements"]
    assert result.warnings == ["not approved after 3 attempt(s): still overstated"]
    assert backend.calls_for(RELEVANCE_EVALUATOR_PROMPT) == []


def test_non_object_output_is_a_parse_critique(backend, config, experience):
    backend.queue("alignment", json.dumps(ACHIEVEMENTS), json.dumps(REWRITE), "APPROVED", "APPROVED")

    result = tailor_experience(experience, JD, backend=backend, config=config)

    assert result.approved
    assert "expected a JSON object, got array" in backend.calls_for(WRITER_PROMPT)[1]


def test_tech_stack_is_sorted_after_the_rewrite(backend, config, progress, experience):
    experience = experience.model_copy(update={"tech_stack": ["Terraform", "Kubernetes"]})
    backend.queue(
        "alignment", json.dumps(REWRITE), "APPROVED", "APPROVED",
        "Kubernetes is named in the JD", '["Kubernetes", "Terraform"]',
    )

    result = tailor_experience(experience, JD, progress, backend=backend, config=config)

    assert result.tech_stack == ["Kubernetes", "Terraform"]
    progress.assert_single_final_done()


def test_empty_experience_only_sorts_the_stack(backend, config, progress):
    experience = WorkExperience(position="Intern", organization="Hooli")

    result = tailor_experience(experience, JD, progress, backend=backend, config=config)

    assert result.approved
    assert result.achievements == []
    assert backend.calls == []
    progress.assert_single_final_done()


def test_backend_failure_finishes_failed(backend, config, progress, experience):
    backend.queue(BackendFailure("rate limited", provider="openai"))

    with pytest.raises(BackendFailure):
        tailor_experience(experience, JD, progress, backend=backend, config=config)

    progress.assert_single_final_done()
    assert progress.events[-1].stage == "failed"


@pytest.mark.parametrize(
    "draft, expected",
    [
        (ExperienceDraft(description="", achievements=ACHIEVEMENTS), "Rewritten description is empty"),
        (ExperienceDraft(description="Ran tooling.", achievements=ACHIEVEMENTS), "too short (12 chars, min 50)"),
        (ExperienceDraft(description=DESCRIPTION, achievements=ACHIEVEMENTS), "identical to the original"),
        (ExperienceDraft(description=REWRITE["description"], achievements=["", "Mentored four"]), "Achievement [0] is too short"),
    ],
)
def test_structural_checks(experience, draft, expected):
    violations = check_tailored_experience(experience, draft)

    assert any(expected in v for v in violations)


def test_description_cannot_appear_from_nothing():
    original = WorkExperience(achievements=["Shipped the billing rewrite"])
    draft = ExperienceDraft(
        description="Led billing engineering across the whole company.",
        achievements=["Shipped the billing rewrite on time"],
    )

    assert check_tailored_experience(original, draft) == [
        "Description was added although the original had none"
    ]
