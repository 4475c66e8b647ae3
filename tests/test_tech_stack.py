import json
import random

import pytest

from resume_agents.pipeline.tech_stack import OPTIMIZER_PROMPT, SCRIBE_PROMPT, sort_flat_list

ITEMS = ["React", "Next.js", "TypeScript"]
JD = "Frontend role using TypeScript and Next.js."


def test_sorted_list_is_returned(backend, config, progress):
    backend.queue("TypeScript and Next.js are named in the JD.", '["TypeScript", "Next.js", "React"]')

    result = sort_flat_list(ITEMS, JD, progress, backend=backend, config=config)

    assert result == ["TypeScript", "Next.js", "React"]
    assert [prompt for prompt, _ in backend.calls] == [OPTIMIZER_PROMPT, SCRIBE_PROMPT]
    progress.assert_single_final_done()


def test_soft_fallback_keeps_original_order(backend, config, progress):
    backend.queue(
        "analysis",
        '["TypeScript", "Next.js"]',
        '["TypeScript", "Next.js", "React", "Vue"]',
        "I could not decide on an order.",
    )

    result = sort_flat_list(ITEMS, JD, progress, backend=backend, config=config)

    assert result == ["React", "Next.js", "TypeScript"]
    assert len(backend.calls_for(SCRIBE_PROMPT)) == 3
    progress.assert_single_final_done()


def test_case_changes_are_not_accepted(backend, config):
    backend.queue(
        "analysis",
        '["typescript", "Next.js", "React"]',
        '["TypeScript", "Next.js", "React"]',
    )

    result = sort_flat_list(ITEMS, JD, backend=backend, config=config)

    assert result == ["TypeScript", "Next.js", "React"]
    assert "differs only in case" in backend.calls_for(SCRIBE_PROMPT)[1]


@pytest.mark.parametrize("seed", range(10))
def test_output_is_always_a_permutation(backend, config, seed):
    rng = random.Random(seed)
    items = ["Go", "Rust", "Python", "Kafka", "Redis", "Docker"]
    shuffled = items[:]
    rng.shuffle(shuffled)
    wrong = shuffled[:-1] + ["Java"]
    responses = [wrong, shuffled] if seed % 2 else [wrong, wrong, wrong]
    backend.queue("analysis", *[json.dumps(r) for r in responses])

    result = sort_flat_list(items, JD, backend=backend, config=config)

    assert sorted(result) == sorted(items)


def test_empty_list_returns_immediately(backend, config, progress):
    assert sort_flat_list([], JD, progress, backend=backend, config=config) == []
    assert backend.calls == []
    assert [e.done for e in progress.events] == [True]


def test_non_array_output_is_retried_with_a_specific_reason(backend, config):
    backend.queue(
        "analysis",
        '{"technologies": ["TypeScript", "Next.js", "React"]}',
        '["TypeScript", "Next.js", "React"]',
    )

    result = sort_flat_list(ITEMS, JD, backend=backend, config=config)

    assert result == ["TypeScript", "Next.js", "React"]
    retry_prompt = backend.calls_for(SCRIBE_PROMPT)[1]
    assert "expected a JSON array, got object" in retry_prompt
