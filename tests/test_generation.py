import json
import threading

import pytest

from resume_agents.errors import BackendFailure, PipelineCancelled
from resume_agents.pipeline.generation import PIPELINE_STAGE, run_generation_pipeline
from resume_agents.pipeline.summary import CandidateFacts, WorkExperience

RAW_JD = "Senior backend engineer, Python and AWS, owns services end to end."
REFINED = """# position-title
Senior Backend Engineer

# core-responsibilities
- Own backend services end to end

# desired-qualifications
- Production experience with Python services

# required-skills
- Python
- AWS"""
SUMMARY = "Senior engineer with 15+ years building Python services on AWS."
ACME_DRAFT = json.dumps({
    "description": "Owned the Python payment services end to end and scaled them on AWS.",
    "achievements": ["Scaled Python APIs to 10k rps", "Ran the engineering book club"],
})
INITECH_DRAFT = json.dumps({
    "description": "",
    "achievements": ["Delivered the only achievement worth listing"],
})


@pytest.fixture
def facts():
    return CandidateFacts(
        skills=["Python", "AWS"],
        work_experience=[
            WorkExperience(
                position="Staff Engineer",
                organization="Acme",
                start_year=2018,
                description="Ran the payments backend.",
                achievements=["Ran the book club", "Scaled Python APIs to 10k rps"],
                tech_stack=["AWS", "Python"],
            ),
            WorkExperience(
                position="Engineer",
                organization="Initech",
                start_year=2010,
                end_year=2018,
                achievements=["Only one achievement"],
            ),
        ],
    )


def _queue_happy_path(backend):
    backend.queue(
        REFINED, "APPROVED",
        "brief", SUMMARY, "APPROVED",
        "alignment", ACME_DRAFT, "APPROVED", "APPROVED",
        "stack analysis", '["Python", "AWS"]',
        "alignment", INITECH_DRAFT, "APPROVED", "APPROVED",
    )


def test_full_run(backend, config, progress, facts):
    _queue_happy_path(backend)

    result = run_generation_pipeline(facts, RAW_JD, progress, backend=backend, config=config)

    assert result.refined_job_description == REFINED
    assert result.summary.text == SUMMARY
    acme, initech = result.work_experience
    assert acme.description.startswith("Owned the Python payment services")
    assert acme.achievements == ["Scaled Python APIs to 10k rps", "Ran the engineering book club"]
    assert acme.tech_stack == ["Python", "AWS"]
    assert acme.start_year == 2018
    assert initech.achievements == ["Delivered the only achievement worth listing"]
    assert initech.description == ""
    assert facts.work_experience[0].achievements[0] == "Ran the book club"
    assert backend.responses == []

    steps = [e.message for e in progress.events if e.stage == PIPELINE_STAGE]
    assert [m.split("]")[0] for m in steps] == ["[1/4", "[2/4", "[3/4", "[4/4"]
    assert "Tailoring experience 1 of 2: Staff Engineer at Acme" in steps[2]
    progress.assert_single_final_done()


def test_unusable_rewrite_keeps_original_experience(backend, config, facts):
    wrong_count = json.dumps({"description": "", "achievements": []})
    backend.queue(
        REFINED, "APPROVED",
        "brief", SUMMARY, "APPROVED",
        "alignment", ACME_DRAFT, "APPROVED", "APPROVED",
        "stack analysis", '["Python", "AWS"]',
        "alignment", wrong_count, wrong_count, wrong_count,
    )

    result = run_generation_pipeline(facts, RAW_JD, backend=backend, config=config)

    assert result.work_experience[1].achievements == ["Only one achievement"]


def test_summary_is_written_against_refined_text(backend, config, facts):
    _queue_happy_path(backend)

    run_generation_pipeline(facts, RAW_JD, backend=backend, config=config)

    _, summary_analyst_prompt = backend.calls[2]
    assert "# required-skills" in summary_analyst_prompt


def test_backend_failure_finishes_failed(backend, config, progress, facts):
    backend.queue(BackendFailure("timed out", provider="openai"))

    with pytest.raises(BackendFailure):
        run_generation_pipeline(facts, RAW_JD, progress, backend=backend, config=config)

    progress.assert_single_final_done()
    assert progress.events[-1].stage == "failed"


def test_cancelled_run(backend, config, progress, facts):
    cancel_event = threading.Event()
    cancel_event.set()

    with pytest.raises(PipelineCancelled):
        run_generation_pipeline(
            facts, RAW_JD, progress, backend=backend, config=config, cancel_event=cancel_event
        )

    assert backend.calls == []
    progress.assert_single_final_done()
    assert progress.events[-1].stage == "cancelled"
