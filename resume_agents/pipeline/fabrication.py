"""Fabrication detector for generated summaries

Flags technology mentions in free text that do not appear in the
candidate's declared skills. The lexical patterns are heuristics: false
positives and negatives are expected, so findings are reported as
warnings and never block a result.
"""

import re
from typing import Iterable, List, Set, Tuple

# Generic resume vocabulary that looks like a technology to the patterns
IGNORED_TERMS = frozenset({
    "the", "and", "for", "with", "this", "that", "years", "year", "experience",
    "experienced", "senior", "junior", "lead", "principal", "staff", "head",
    "engineer", "engineering", "developer", "development", "architect",
    "manager", "consultant", "specialist", "professional", "candidate",
    "systems", "system", "solutions", "solution", "scalable", "scale",
    "building", "built", "expert", "expertise", "specializing", "specialized",
    "architecting", "architected", "focusing", "focused", "align", "aligning",
    "innovation", "impact", "production", "proven", "track", "record",
    "delivering", "delivered", "driving", "driven", "leading", "led",
    "designing", "designed", "implementation", "implementing", "skilled",
    "strong", "deep", "extensive", "hands-on", "full-stack", "full", "stack",
    "end-to-end", "cloud-native", "event-driven", "production-grade",
    "expert-level", "real-time", "data-driven", "high-performance",
    "cross-functional", "customer-facing", "mission-critical", "enterprise",
    "business", "technical", "technology", "technologies", "platform",
    "platforms", "applications", "application", "services", "service",
    "teams", "team", "software", "web", "including", "across", "results",
    "secure", "intelligent", "modern", "distributed", "performance",
    "reliability", "quality", "delivery", "growth", "customers", "users",
    "seasoned", "results-driven", "passionate", "dedicated", "accomplished",
    "versatile", "highly", "adept", "proficient", "known", "over", "more",
    "responsible", "owned", "collaborated", "partnered", "i", "a", "an", "as",
    "he", "she", "his", "her", "him", "hers", "they", "their", "them", "e.g", "i.e",
    "etc",
})

# Tried in order; later patterns skip text already claimed by earlier ones
_MENTION_PATTERNS = (
    # Dotted identifiers: Node.js, ASP.NET, Vue.js
    re.compile(r"\b[A-Za-z][A-Za-z0-9]*(?:\.[A-Za-z0-9]+)+\b"),
    # Hyphenated compounds: GPT-4, Micro-Frontends, event-driven
    re.compile(r"\b[A-Za-z0-9]+(?:-[A-Za-z0-9]+)+\b"),
    # Capitalized word runs and acronyms: Google Cloud Platform, Python, AWS
    re.compile(r"\b[A-Z][A-Za-z0-9+#]*(?:[ \t]+[A-Z][A-Za-z0-9+#]*)*"),
)

_TOKEN_SPLIT_RE = re.compile(r"[\s/,;()&|]+")
_WORD_SPLIT_RE = re.compile(r"[\s-]+")
_MIN_TOKEN_LENGTH = 3
_MIN_MENTION_LENGTH = 3
# All-caps acronyms may be shorter: AI, ML, UI
_MIN_ACRONYM_LENGTH = 2


def normalize_allowed_skills(allowed_skills: Iterable[str]) -> Set[str]:
    """
    Lower-cased full phrases plus word tokens of at least three characters.

    "Amazon Web Services (AWS)" yields the phrase itself and the tokens
    "amazon", "web", "services", "aws".
    """
    normalized = set()
    for skill in allowed_skills:
        phrase = skill.lower().strip()
        if not phrase:
            continue
        normalized.add(phrase)
        for token in _TOKEN_SPLIT_RE.split(phrase):
            if len(token) >= _MIN_TOKEN_LENGTH:
                normalized.add(token)
    return normalized


def _clean_mention(raw: str) -> str:
    """Lower-case a mention and drop generic words from capitalized runs"""
    mention = raw.lower().strip(" \t.,;:!?")
    if mention in IGNORED_TERMS:
        return ""
    if "-" in mention or " " in mention:
        words = [w for w in _WORD_SPLIT_RE.split(mention) if w]
        if all(w in IGNORED_TERMS for w in words):
            return ""
        if " " in mention:
            mention = " ".join(w for w in mention.split() if w not in IGNORED_TERMS)
    return mention


def _min_length(raw: str) -> int:
    letters = [c for c in raw if c.isalpha()]
    if letters and all(c.isupper() for c in letters):
        return _MIN_ACRONYM_LENGTH
    return _MIN_MENTION_LENGTH


def extract_mentions(text: str) -> List[str]:
    """
    Candidate technology mentions, lower-cased, in order of appearance.

    Ignored vocabulary and purely numeric tokens are removed. Mentions
    shorter than three characters survive only as all-caps acronyms.
    """
    claimed: List[Tuple[int, int]] = []
    found: List[Tuple[int, str]] = []

    for pattern in _MENTION_PATTERNS:
        for match in pattern.finditer(text):
            start, end = match.span()
            if any(start < c_end and c_start < end for c_start, c_end in claimed):
                continue
            claimed.append((start, end))
            raw = match.group(0)
            mention = _clean_mention(raw)
            if len(mention) < _min_length(raw) or mention.replace(".", "").isdigit():
                continue
            found.append((start, mention))

    mentions = []
    for _, mention in sorted(found):
        if mention not in mentions:
            mentions.append(mention)
    return mentions


def is_allowed(mention: str, allowed: Set[str]) -> bool:
    """Exact match, substring or superstring of any normalized allow entry"""
    for entry in allowed:
        if entry == mention:
            return True
        # Containment only for entries long enough not to match by accident ("c", "r")
        if min(len(entry), len(mention)) >= _MIN_TOKEN_LENGTH and (
            mention in entry or entry in mention
        ):
            return True
    return False


def detect_fabrications(text: str, allowed_skills: Iterable[str]) -> List[str]:
    """
    Find technology mentions that are not backed by the allow-list.

    Args:
        text: Generated free text (e.g., a professional summary)
        allowed_skills: Skills the candidate actually declared

    Returns:
        Disallowed mentions, lower-cased, in order of appearance
    """
    allowed = normalize_allowed_skills(allowed_skills)
    return [m for m in extract_mentions(text) if not is_allowed(m, allowed)]
