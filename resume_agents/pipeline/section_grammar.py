"""Section-grammar validator for refined job descriptions

A refined job description is exactly four `#` sections in a fixed order,
using `-` bullets and nothing else from markdown:

    # position-title
    Senior Platform Engineer

    # core-responsibilities
    - ...

    # desired-qualifications
    - ...

    # required-skills
    - Kubernetes
    - CI/CD
"""

import re
from typing import Dict, List, Tuple

from .models import ValidationResult

POSITION_TITLE = "position-title"
CORE_RESPONSIBILITIES = "core-responsibilities"
DESIRED_QUALIFICATIONS = "desired-qualifications"
REQUIRED_SKILLS = "required-skills"

SECTION_ORDER = (POSITION_TITLE, CORE_RESPONSIBILITIES, DESIRED_QUALIFICATIONS, REQUIRED_SKILLS)
LIST_SECTIONS = (CORE_RESPONSIBILITIES, DESIRED_QUALIFICATIONS)
MAX_LIST_ITEMS = 5
MAX_SKILL_WORDS = 4

_HEADING_RE = re.compile(r"^#[ \t]+(.+?)[ \t]*$")
_SUB_HEADING_RE = re.compile(r"^[ \t]*#{2,}")
_BULLET_RE = re.compile(r"^[ \t]*-[ \t]+(.*)$")
_BAD_BULLET_RE = re.compile(r"^[ \t]*[*+][ \t]+")
_NUMBERED_RE = re.compile(r"^[ \t]*\d+[.)][ \t]+")
_QUOTE_RE = re.compile(r"^[ \t]*>")
_BOLD_RE = re.compile(r"\*\*[^*]+\*\*|__[^_]+__")
_ITALIC_RE = re.compile(r"(?<![\w*])\*(?![\s*])[^*\n]+(?<![\s*])\*(?![\w*])|(?<!\w)_(?!_)[^_\n]+_(?!\w)")


def _markup_violations(lines: List[str]) -> List[str]:
    """Disallowed markdown anywhere in the text, reported once per kind"""
    found: Dict[str, None] = {}
    for line in lines:
        if _SUB_HEADING_RE.match(line):
            found["sub-headers (##) are not allowed; use only '#' for section titles"] = None
        if _BAD_BULLET_RE.match(line):
            found["only '-' bullets are allowed, not '*' or '+'"] = None
        if _NUMBERED_RE.match(line):
            found["numbered lists are not allowed; use '-' bullets"] = None
        if _QUOTE_RE.match(line):
            found["block quotes (>) are not allowed"] = None
        body = _BAD_BULLET_RE.sub("", line)
        if _BOLD_RE.search(body):
            found["bold markdown (** or __) is not allowed"] = None
        elif _ITALIC_RE.search(body):
            found["italic markdown (* or _) is not allowed"] = None
        if "`" in body:
            found["inline code (`) is not allowed"] = None
    return list(found)


def _split_sections(lines: List[str]) -> Tuple[List[Tuple[str, List[str]]], bool]:
    """
    Group lines under their `#` headings.

    Returns:
        ([(heading, non-blank body lines)], whether text precedes the first heading)
    """
    sections: List[Tuple[str, List[str]]] = []
    preamble = False
    for line in lines:
        heading = _HEADING_RE.match(line)
        if heading:
            sections.append((heading.group(1), []))
        elif line.strip():
            if sections:
                sections[-1][1].append(line.strip())
            elif not _SUB_HEADING_RE.match(line):
                preamble = True
    return sections, preamble


def _skill_items(body: List[str]) -> List[str]:
    items = []
    for line in body:
        bullet = _BULLET_RE.match(line)
        if bullet:
            items.append(bullet.group(1).strip())
        else:
            items.extend(part.strip() for part in line.split(",") if part.strip())
    return items


def _section_violations(name: str, body: List[str]) -> List[str]:
    if not body:
        return [f"section '{name}' is empty"]

    violations = []
    if name == POSITION_TITLE:
        if len(body) > 1:
            violations.append(f"'{POSITION_TITLE}' must be a single line with the job title")

    elif name in LIST_SECTIONS:
        non_bullets = [line for line in body if not _BULLET_RE.match(line)]
        if non_bullets:
            violations.append(f"'{name}' must be a '-' list; found plain text: {non_bullets[0]!r}")
        bullet_count = len(body) - len(non_bullets)
        if bullet_count > MAX_LIST_ITEMS:
            violations.append(f"'{name}' has {bullet_count} items (max {MAX_LIST_ITEMS})")

    elif name == REQUIRED_SKILLS:
        for item in _skill_items(body):
            if len(item.split()) > MAX_SKILL_WORDS:
                violations.append(
                    f"'{REQUIRED_SKILLS}' must list technology names only; "
                    f"{item!r} is more than {MAX_SKILL_WORDS} words"
                )
            elif item.endswith(".") or ": " in item:
                violations.append(
                    f"'{REQUIRED_SKILLS}' must list technology names only; "
                    f"{item!r} reads like a sentence"
                )

    return violations


def validate_section_grammar(text: str) -> ValidationResult:
    """
    Check a refined job description against the four-section grammar.

    Every violated rule is reported, not only the first one, so a single
    critique carries all the feedback for the next attempt.
    """
    lines = text.strip().splitlines()
    violations = _markup_violations(lines)

    sections, preamble = _split_sections(lines)
    if preamble:
        violations.append("text before the first '#' heading is not allowed")

    names = [name for name, _ in sections]
    for expected in SECTION_ORDER:
        if expected not in names:
            violations.append(f"missing required section: # {expected}")
    for name in dict.fromkeys(names):
        if name not in SECTION_ORDER:
            violations.append(f"unexpected section: # {name}")
        elif names.count(name) > 1:
            violations.append(f"duplicate section: # {name}")

    present = [name for name in dict.fromkeys(names) if name in SECTION_ORDER]
    if present != [name for name in SECTION_ORDER if name in present]:
        violations.append("sections must appear in this order: " + ", ".join(SECTION_ORDER))

    for name, body in sections:
        if name in SECTION_ORDER:
            violations.extend(_section_violations(name, body))

    if not violations:
        return ValidationResult.approve()

    critique = "CRITIQUE: the job description does not follow the required format.\n"
    critique += "\n".join(f"- {v}" for v in violations)
    return ValidationResult.reject(violations, critique=critique)
