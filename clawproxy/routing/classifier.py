"""
Prompt complexity classification.

    complex -> metered primary model (expensive)
    daily   -> free reasoning model (code generation, research, content)
    simple  -> cheapest model (greetings, lookups, status checks)

Simple patterns are checked first, so a short greeting is never
classified complex even when it mentions a complex keyword.
"""

from __future__ import annotations

import re
from typing import List, Pattern

from clawproxy.models import TaskTier

SHORT_PROMPT_MAX_CHARS = 25
LONG_CODE_BLOCK_MIN_CHARS = 500

SIMPLE_PATTERNS: List[Pattern[str]] = [
    re.compile(
        r"^(hi|hey|hello|yo|sup|thanks|thank you|ok|okay|bye|cool|nice|good|great)\b",
        re.IGNORECASE,
    ),
    re.compile(r"^(what('s| is) (up|good)|how are you)", re.IGNORECASE),
    re.compile(r"^(yes|no|yeah|nah|sure|alright)\b", re.IGNORECASE),
    re.compile(r"\b(status|ping|check|test)\b", re.IGNORECASE),
    re.compile(r"^(show|list|get|what is)\b", re.IGNORECASE),
]

COMPLEX_PATTERNS: List[Pattern[str]] = [
    re.compile(r"\b(smart ?contract|solidity|audit|security review)\b", re.IGNORECASE),
    re.compile(r"\b(architect(ure)?|system ?design|scalab(le|ility))\b", re.IGNORECASE),
    re.compile(r"\b(production|deploy|mainnet|migration)\b", re.IGNORECASE),
    re.compile(r"\b(write (a |an )?(full|complete|entire|comprehensive))\b", re.IGNORECASE),
    re.compile(r"\b(critical|mission.?critical)\b", re.IGNORECASE),
    re.compile(r"\b(debug|refactor|optimize)\b.*\b(entire|whole|complete|full)\b", re.IGNORECASE),
    re.compile(r"\b(multi-?step|complex) (analysis|reasoning|review)\b", re.IGNORECASE),
    re.compile(r"\b(vulnerability|exploit|attack vector)\b", re.IGNORECASE),
]

LONG_CODE_BLOCK = re.compile(r"```[\s\S]{%d,}" % LONG_CODE_BLOCK_MIN_CHARS)


def is_simple_prompt(prompt: str) -> bool:
    trimmed = prompt.strip()
    if len(trimmed) <= SHORT_PROMPT_MAX_CHARS:
        return True
    return any(pattern.search(trimmed) for pattern in SIMPLE_PATTERNS)


def is_complex_prompt(prompt: str) -> bool:
    trimmed = prompt.strip()
    if any(pattern.search(trimmed) for pattern in COMPLEX_PATTERNS):
        return True
    return LONG_CODE_BLOCK.search(trimmed) is not None


def classify_task(prompt: str) -> TaskTier:
    """
    Classify a user prompt into a task tier.
    """
    if is_simple_prompt(prompt):
        return TaskTier.SIMPLE
    if is_complex_prompt(prompt):
        return TaskTier.COMPLEX
    return TaskTier.DAILY


__all__ = [
    "COMPLEX_PATTERNS",
    "SIMPLE_PATTERNS",
    "classify_task",
    "is_complex_prompt",
    "is_simple_prompt",
]
