import json

import pytest

from resume_agents.errors import ValidationExhausted
from resume_agents.pipeline.skills_sorting import (
    BRAIN_PROMPT,
    SCRIBE_PROMPT,
    SkillGroup,
    sort_skill_groups,
)

JD = "Platform engineer: Kubernetes, Go, Terraform, GCP."
GROUPS = [
    SkillGroup(title="Languages", skills=["Python", "Go"]),
    SkillGroup(title="Cloud", skills=["AWS", "GCP", "Kubernetes"]),
]


def _sorted_json(missing=None):
    data = {
        "groupOrder": ["Cloud", "Languages"],
        "skillOrder": {"Cloud": ["Kubernetes", "GCP", "AWS"], "Languages": ["Go", "Python"]},
    }
    if missing is not None:
        data["missingSkills"] = missing
    return json.dumps(data)


def test_valid_sort_is_returned(backend, config, progress):
    backend.queue("Cloud first, then languages.", f"```json\n{_sorted_json()}\n```")

    result = sort_skill_groups(GROUPS, JD, progress, backend=backend, config=config)

    assert result.group_order == ["Cloud", "Languages"]
    assert result.skill_order["Cloud"] == ["Kubernetes", "GCP", "AWS"]
    assert result.missing_skills == []
    assert [prompt for prompt, _ in backend.calls] == [BRAIN_PROMPT, SCRIBE_PROMPT]
    progress.assert_single_final_done()


def test_missing_skills_are_suggestions_only(backend, config):
    backend.queue("analysis", _sorted_json(missing=["Terraform", "kubernetes", "Terraform"]))

    result = sort_skill_groups(GROUPS, JD, backend=backend, config=config)

    assert result.missing_skills == ["Terraform"]
    all_sorted = [s for skills in result.skill_order.values() for s in skills]
    assert "Terraform" not in all_sorted


def test_accepts_mapping_input(backend, config):
    backend.queue("analysis", _sorted_json())
    groups = {"Languages": ["Python", "Go"], "Cloud": ["AWS", "GCP", "Kubernetes"]}

    result = sort_skill_groups(groups, JD, backend=backend, config=config)

    assert result.group_order == ["Cloud", "Languages"]


def test_dropped_skill_triggers_retry(backend, config):
    bad = json.loads(_sorted_json())
    bad["skillOrder"]["Cloud"].remove("AWS")
    backend.queue("analysis", json.dumps(bad), _sorted_json())

    result = sort_skill_groups(GROUPS, JD, backend=backend, config=config)

    assert result.skill_order["Cloud"] == ["Kubernetes", "GCP", "AWS"]
    retry_prompt = backend.calls_for(SCRIBE_PROMPT)[1]
    assert "skillOrder['Cloud'] is missing 'AWS'" in retry_prompt


def test_strict_exhaustion_raises(backend, config, progress):
    bad = json.loads(_sorted_json())
    bad["groupOrder"] = ["Cloud"]
    backend.queue("analysis", *([json.dumps(bad)] * 3))

    with pytest.raises(ValidationExhausted) as exc_info:
        sort_skill_groups(GROUPS, JD, progress, backend=backend, config=config)

    assert len(exc_info.value.attempts) == 3
    assert all("groupOrder is missing 'Languages'" in c for c in exc_info.value.critiques)
    progress.assert_single_final_done()


def test_strict_exhaustion_accepts_valid_fallback(backend, config):
    backend.queue(
        "analysis",
        "not json",
        "still not json",
        f"Here you go: {_sorted_json()} Thanks!",
    )

    result = sort_skill_groups(GROUPS, JD, backend=backend, config=config)

    assert result.group_order == ["Cloud", "Languages"]


def test_duplicate_group_titles_are_rejected(backend, config):
    groups = [SkillGroup(title="Cloud", skills=["AWS"]), SkillGroup(title="Cloud", skills=["GCP"])]

    with pytest.raises(ValueError, match="Duplicate skill group title"):
        sort_skill_groups(groups, JD, backend=backend, config=config)
    assert backend.calls == []


def test_empty_input_returns_immediately(backend, config, progress):
    result = sort_skill_groups([], JD, progress, backend=backend, config=config)

    assert result.group_order == []
    assert backend.calls == []
    progress.assert_single_final_done()
    assert len(progress.events) == 1
