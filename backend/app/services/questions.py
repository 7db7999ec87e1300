import logging
import re
import uuid
from typing import Any, Dict, List, Sequence

from app.schemas.analysis import QuestionCategory, SuggestedQuestion

logger = logging.getLogger(__name__)

MIN_QUESTION_CHARS = 10

_LIST_PREFIX_RE = re.compile(r"^[\d\.\-\*\s]+")

# Checked in order; the first category whose keyword appears wins
CATEGORY_KEYWORDS = [
    (QuestionCategory.FINANCIAL_RATIOS, ("ratio", "metric", "calculate")),
    (QuestionCategory.TRENDS, ("trend", "over time", "change")),
    (QuestionCategory.RISK_ASSESSMENT, ("risk", "concern", "weakness")),
    (QuestionCategory.RECOMMENDATIONS, ("recommend", "improve", "action")),
]


def categorize_question(question: str) -> QuestionCategory:
    lowered = question.lower()
    for category, keywords in CATEGORY_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return category
    return QuestionCategory.FINANCIAL_RATIOS


def extract_questions_from_text(text: str) -> List[str]:
    """Pull question lines out of a prose or list-formatted reply."""
    questions = []
    for line in text.splitlines():
        trimmed = line.strip()
        if not trimmed.endswith("?"):
            continue
        cleaned = _LIST_PREFIX_RE.sub("", trimmed).strip()
        if len(cleaned) > MIN_QUESTION_CHARS:
            questions.append(cleaned)
    return questions


def clean_questions(candidates: Sequence[Any], limit: int) -> List[str]:
    """Keep substantial strings that end in a question mark, up to ``limit``."""
    cleaned = []
    for candidate in candidates:
        if not isinstance(candidate, str):
            continue
        question = candidate.strip()
        if len(question) > MIN_QUESTION_CHARS and question.endswith("?"):
            cleaned.append(question)
    return cleaned[:limit]


def to_suggested_questions(questions: Sequence[str]) -> List[SuggestedQuestion]:
    batch = uuid.uuid4().hex[:8]
    return [
        SuggestedQuestion(id=f"question-{batch}-{index}", question=question, category=categorize_question(question))
        for index, question in enumerate(questions)
    ]


def fallback_questions(analysis: Dict[str, Any], limit: int = 5) -> List[SuggestedQuestion]:
    """Generic questions shaped by what the analysis contains."""
    questions: List[SuggestedQuestion] = []
    summary = analysis.get("executiveSummary") if isinstance(analysis, dict) else None
    sections = analysis.get("sections") if isinstance(analysis, dict) else None

    if isinstance(summary, dict) and summary.get("creditGrade"):
        questions.append(SuggestedQuestion(
            id="fallback-1",
            question=f"What factors contributed to the {summary['creditGrade']} credit grade?",
            category=QuestionCategory.RISK_ASSESSMENT,
        ))

    if isinstance(sections, list):
        titles = [s.get("title", "") for s in sections if isinstance(s, dict)]
        if any("earnings" in title.lower() for title in titles):
            questions.append(SuggestedQuestion(
                id="fallback-2",
                question="How do the earnings trends compare to industry benchmarks?",
                category=QuestionCategory.TRENDS,
            ))
        if any(isinstance(s, dict) and s.get("recommendations") for s in sections):
            questions.append(SuggestedQuestion(
                id="fallback-3",
                question="What are the most critical recommendations to implement first?",
                category=QuestionCategory.RECOMMENDATIONS,
            ))

    questions.extend([
        SuggestedQuestion(
            id="fallback-4",
            question="What are the key financial ratios I should monitor going forward?",
            category=QuestionCategory.FINANCIAL_RATIOS,
        ),
        SuggestedQuestion(
            id="fallback-5",
            question="What are the main risk factors that could impact future performance?",
            category=QuestionCategory.RISK_ASSESSMENT,
        ),
    ])
    return questions[:limit]
