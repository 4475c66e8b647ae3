"""Permutation validator for sort pipelines

A sort result must contain exactly the input elements, only reordered.
Comparison is exact and case-sensitive; case-only differences are
rejected but called out in the violation so the next attempt can fix
the spelling.
"""

from collections import Counter
from typing import Any, Dict, Hashable, List, Mapping, Sequence, Tuple

from pydantic import BaseModel, ConfigDict

from .models import ValidationResult

GROUP_ORDER_KEY = "groupOrder"
SKILL_ORDER_KEY = "skillOrder"
MISSING_SKILLS_KEY = "missingSkills"


class SortSnapshot(BaseModel):
    """
    Immutable ground truth for a sort run, taken once at pipeline start.

    Holds either a flat tuple of items or an ordered tuple of
    (group, items) pairs.
    """

    model_config = ConfigDict(frozen=True)

    items: Tuple[Any, ...] = ()
    groups: Tuple[Tuple[str, Tuple[str, ...]], ...] = ()
    grouped: bool = False

    @classmethod
    def of_items(cls, items: Sequence[Hashable]) -> "SortSnapshot":
        return cls(items=tuple(items))

    @classmethod
    def of_groups(cls, groups: Mapping[str, Sequence[str]]) -> "SortSnapshot":
        return cls(
            groups=tuple((name, tuple(items)) for name, items in groups.items()),
            grouped=True,
        )

    @property
    def group_names(self) -> List[str]:
        return [name for name, _ in self.groups]

    def group_map(self) -> Dict[str, List[str]]:
        """A fresh mutable copy of the grouped ground truth"""
        return {name: list(items) for name, items in self.groups}


def _fmt(values) -> str:
    return ", ".join(repr(v) for v in values)


def check_permutation(
    expected: Sequence[Hashable], candidate: Any, label: str
) -> List[str]:
    """
    Compare a candidate ordering with the expected elements.

    Args:
        expected: Ground-truth elements (order irrelevant)
        candidate: Parsed model output for this collection
        label: Name used in violation messages

    Returns:
        One violation string per failed check (empty when valid)
    """
    if not isinstance(candidate, list):
        return [f"{label} must be a JSON array, got {type(candidate).__name__}"]

    try:
        candidate_counts = Counter(candidate)
    except TypeError:
        return [f"{label} must contain only plain values (strings or numbers)"]

    expected_counts = Counter(expected)
    expected_types = {type(item) for item in expected}
    violations = []

    wrong_type = [
        item for item in candidate_counts
        if expected_types and type(item) not in expected_types
    ]
    if wrong_type:
        violations.append(f"{label} has entries of the wrong type: {_fmt(wrong_type)}")

    missing = list((expected_counts - candidate_counts).elements())
    surplus = candidate_counts - expected_counts
    unexpected = [item for item in surplus if item not in expected_counts]
    duplicated = [item for item in surplus if item in expected_counts]

    if missing:
        violations.append(f"{label} is missing {_fmt(missing)}")
    if unexpected:
        violations.append(f"{label} has unexpected entries {_fmt(unexpected)}")
    if duplicated:
        violations.append(f"{label} repeats {_fmt(duplicated)}")

    # Case-only mismatches are still mismatches, but say so explicitly
    missing_by_fold = {
        item.casefold(): item for item in missing if isinstance(item, str)
    }
    for item in unexpected:
        if isinstance(item, str) and item.casefold() in missing_by_fold:
            violations.append(
                f"{label}: {item!r} differs only in case from {missing_by_fold[item.casefold()]!r}; "
                f"use the original spelling"
            )

    return violations


def _critique(violations: Sequence[str], instruction: str) -> str:
    lines = ["CRITIQUE: the output is not a permutation of the original data."]
    lines.extend(f"- {v}" for v in violations)
    lines.append(instruction)
    return "\n".join(lines)


def validate_flat_permutation(snapshot: SortSnapshot, candidate: Any) -> ValidationResult:
    """Check that candidate is a reordering of the snapshot's flat items"""
    violations = check_permutation(snapshot.items, candidate, "list")
    if not violations:
        return ValidationResult.approve()
    return ValidationResult.reject(
        violations,
        critique=_critique(
            violations,
            "Return a JSON array with every original item exactly once, spelled exactly as given.",
        ),
    )


def validate_group_permutation(snapshot: SortSnapshot, candidate: Any) -> ValidationResult:
    """
    Check a grouped sort result against the snapshot.

    Candidate shape:
        {"groupOrder": [...], "skillOrder": {group: [...]}, "missingSkills": [...]}
    """
    instruction = (
        "Return JSON with every original group in groupOrder and every original "
        "skill under its original group in skillOrder, each exactly once and "
        "spelled exactly as given."
    )

    if not isinstance(candidate, dict):
        violations = [
            f"output must be a JSON object with {GROUP_ORDER_KEY} and {SKILL_ORDER_KEY}"
        ]
        return ValidationResult.reject(violations, critique=_critique(violations, instruction))

    violations = []
    group_order = candidate.get(GROUP_ORDER_KEY)
    skill_order = candidate.get(SKILL_ORDER_KEY)

    if group_order is None:
        violations.append(f"missing {GROUP_ORDER_KEY} field (expected an array of group names)")
    else:
        violations.extend(check_permutation(snapshot.group_names, group_order, GROUP_ORDER_KEY))

    if not isinstance(skill_order, dict):
        violations.append(
            f"missing or invalid {SKILL_ORDER_KEY} field (expected an object of group -> skills)"
        )
    else:
        expected_groups = set(snapshot.group_names)
        missing_groups = [name for name in snapshot.group_names if name not in skill_order]
        extra_groups = [name for name in skill_order if name not in expected_groups]
        if missing_groups:
            violations.append(f"{SKILL_ORDER_KEY} is missing groups {_fmt(missing_groups)}")
        if extra_groups:
            violations.append(f"{SKILL_ORDER_KEY} has unexpected groups {_fmt(extra_groups)}")

        for name, items in snapshot.groups:
            if name in skill_order:
                violations.extend(
                    check_permutation(items, skill_order[name], f"{SKILL_ORDER_KEY}[{name!r}]")
                )

    suggestions = candidate.get(MISSING_SKILLS_KEY)
    if suggestions is not None and not (
        isinstance(suggestions, list) and all(isinstance(s, str) for s in suggestions)
    ):
        violations.append(f"{MISSING_SKILLS_KEY} must be an array of strings when present")

    if not violations:
        return ValidationResult.approve()
    return ValidationResult.reject(violations, critique=_critique(violations, instruction))
