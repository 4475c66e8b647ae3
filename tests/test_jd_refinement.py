import pytest

from resume_agents.pipeline.jd_refinement import REFINER_PROMPT, REVIEWER_PROMPT, refine_text

RAW_JD = """We are hiring!! Senior Platform Engineer at Acme.
You will build Kubernetes clusters and own CI/CD. 5+ years infra experience.
Must know Kubernetes, Terraform, CI/CD."""

REFINED = """# position-title
Senior Platform Engineer

# core-responsibilities
- Build and operate Kubernetes clusters
- Own CI/CD pipelines

# desired-qualifications
- 5+ years of infrastructure experience

# required-skills
- Kubernetes
- Terraform
- CI/CD"""


def test_first_attempt_approved(backend, config, progress):
    backend.queue(f"\n\n{REFINED}\n  \n", "APPROVED")

    result = refine_text(RAW_JD, progress, backend=backend, config=config)

    assert result == REFINED
    assert len(backend.calls_for(REFINER_PROMPT)) == 1
    assert len(backend.calls_for(REVIEWER_PROMPT)) == 1
    progress.assert_single_final_done()


def test_grammar_failure_skips_reviewer(backend, config):
    bad = REFINED.replace("- Own CI/CD pipelines", "- Own **CI/CD** pipelines")
    backend.queue(bad, REFINED, "APPROVED")

    result = refine_text(RAW_JD, backend=backend, config=config)

    assert result == REFINED
    assert len(backend.calls_for(REFINER_PROMPT)) == 2
    assert len(backend.calls_for(REVIEWER_PROMPT)) == 1
    assert "bold markdown" in backend.calls_for(REFINER_PROMPT)[1]


def test_reviewer_critique_is_fed_back(backend, config):
    backend.queue(REFINED, "CRITIQUE: invented a requirement", REFINED, "**APPROVED**")

    result = refine_text(RAW_JD, backend=backend, config=config)

    assert result == REFINED
    assert "invented a requirement" in backend.calls_for(REFINER_PROMPT)[1]


def test_exhaustion_returns_best_attempt(backend, config, progress):
    backend.queue(REFINED, "CRITIQUE: a", REFINED, "CRITIQUE: b", REFINED, "CRITIQUE: c")

    result = refine_text(RAW_JD, progress, backend=backend, config=config)

    assert result == REFINED
    progress.assert_single_final_done()


def test_fenced_output_is_unwrapped(backend, config):
    backend.queue(f"```markdown\n{REFINED}\n```", "APPROVED")

    assert refine_text(RAW_JD, backend=backend, config=config) == REFINED


@pytest.mark.parametrize("raw", ["", "   \n "])
def test_empty_input_is_rejected(backend, config, raw):
    with pytest.raises(ValueError):
        refine_text(raw, backend=backend, config=config)
    assert backend.calls == []
