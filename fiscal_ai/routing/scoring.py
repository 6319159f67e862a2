"""Satisfaction scoring for progressive enhancement.

A scorer is any callable ``Answer -> float`` returning a value in [0, 1].
The default combines the model-reported confidence with a specificity
heuristic:

    score = 0.7 * confidence + 0.3 * specificity

Specificity starts at 0.5 and is adjusted by answer length, by concrete
markers (amounts, percentages, years, legal references, worked examples)
and by evasive phrasing.
"""
import re
from typing import Callable

from .models import Answer

SatisfactionScorer = Callable[[Answer], float]

CONFIDENCE_WEIGHT = 0.7
SPECIFICITY_WEIGHT = 0.3

SHORT_ANSWER_CHARS = 50
DETAILED_ANSWER_CHARS = 100

CONCRETE_MARKERS = (
    re.compile(r"\d[\d\s.,]*\s?(?:€|eur\b|euros?\b)", re.IGNORECASE),
    re.compile(r"\d+(?:[.,]\d+)?\s?%"),
    re.compile(r"\b(?:19|20)\d{2}\b"),
    re.compile(r"\b(?:article|art\.|loi|cgi|bofip|décret)\b", re.IGNORECASE),
    re.compile(r"\burssaf\b", re.IGNORECASE),
    re.compile(r"\b(?:exemple|par exemple|for example)\b", re.IGNORECASE),
)

EVASIVE_PHRASES = (
    "je ne sais pas",
    "impossible de",
    "consultez un expert",
    "consulter un expert",
    "i don't know",
    "erreur",
)


def specificity(text: str) -> float:
    stripped = text.strip()
    lowered = stripped.lower()
    value = 0.5

    if len(stripped) < SHORT_ANSWER_CHARS:
        value -= 0.3
    elif len(stripped) > DETAILED_ANSWER_CHARS:
        value += 0.1

    markers = sum(1 for pattern in CONCRETE_MARKERS if pattern.search(stripped))
    value += min(0.4, 0.1 * markers)

    if any(phrase in lowered for phrase in EVASIVE_PHRASES):
        value -= 0.3

    return min(1.0, max(0.0, value))


def default_satisfaction_scorer(answer: Answer) -> float:
    score = CONFIDENCE_WEIGHT * answer.confidence + SPECIFICITY_WEIGHT * specificity(answer.text)
    return round(min(1.0, max(0.0, score)), 4)


def confidence_only_scorer(answer: Answer) -> float:
    return answer.confidence
