import pytest

from resume_agents.pipeline.fabrication import (
    detect_fabrications,
    extract_mentions,
    normalize_allowed_skills,
)


def test_flags_unlisted_language():
    assert detect_fabrications("Expert in React and Python", ["React", "Node.js"]) == ["python"]


def test_dotted_names_are_matched_whole():
    assert detect_fabrications("Expert in React and Node.js", ["React", "Node.js"]) == []


def test_generic_resume_vocabulary_is_ignored():
    text = (
        "Senior engineer with 12+ years of full-stack experience, specializing in "
        "cloud-native distributed systems."
    )
    assert detect_fabrications(text, []) == []


def test_multiword_skills_match_by_token():
    allowed = ["Amazon Web Services (AWS)", "Google Cloud Platform"]
    text = "Built pipelines on AWS and Google Cloud Platform."
    assert detect_fabrications(text, allowed) == []


def test_superstring_of_allowed_entry_is_allowed():
    assert detect_fabrications("Designed Kubernetes Operators", ["Kubernetes"]) == []


def test_results_keep_order_and_are_unique():
    text = "used Django, then Kafka, then Django again with Terraform."
    assert detect_fabrications(text, ["Python"]) == ["django", "kafka", "terraform"]


def test_short_allow_entries_do_not_match_everything():
    assert detect_fabrications("services with Rust", ["R", "C"]) == ["rust"]


def test_numbers_are_not_mentions():
    assert extract_mentions("Led 2024 migration with 3.5 engineers") == []


@pytest.mark.parametrize(
    "skill, expected_tokens",
    [
        ("CI/CD", {"ci/cd"}),
        ("Amazon Web Services (AWS)", {"amazon", "web", "services", "aws"}),
        ("Go", {"go"}),
    ],
)
def test_allow_list_normalization(skill, expected_tokens):
    normalized = normalize_allowed_skills([skill])
    assert skill.lower() in normalized
    assert expected_tokens <= normalized


def test_third_person_prose_is_not_flagged():
    text = (
        "He is a Senior Software Engineer with 8+ years of experience. She leads teams. "
        "Spearheaded React and Node.js work, e.g. dashboards."
    )
    assert detect_fabrications(text, ["React", "Node.js"]) == []


def test_two_letter_mentions_must_be_acronyms():
    assert extract_mentions("Go services with ML pipelines on AI hardware") == ["ml", "ai"]
    assert detect_fabrications("features built with ML", ["Python"]) == ["ml"]
