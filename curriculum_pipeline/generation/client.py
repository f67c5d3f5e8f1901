"""
Generation Client — external assessment generation service

The gateway hands one validated GenerationRequest per call to a
GenerationClient and gets back a GenerationResult. It can also ask for a
CurriculumAnalysis (summary, outline, concepts, objectives) of stored text.
The reference client prompts an OpenAI chat model through LangChain and
parses its JSON reply.

Question mix:
  both types requested  → ~70% multiple choice, rest free response
  only MULTIPLE_CHOICE  → all multiple choice
  only FREE_RESPONSE    → all free response
"""

from __future__ import annotations

import json
import logging
import re
import time
import uuid
from abc import ABC, abstractmethod
from typing import Any

from langchain_core.language_models.chat_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from pydantic import ValidationError

from curriculum_pipeline.core.config import settings
from curriculum_pipeline.core.errors import GenerationError
from curriculum_pipeline.generation.schemas import (
    AnalysisOptions,
    CurriculumAnalysis,
    GeneratedAssignment,
    GeneratedQuestion,
    GenerationRequest,
    GenerationResult,
)

logger = logging.getLogger(__name__)

MULTIPLE_CHOICE_SHARE = 0.7

_CODE_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

_SYSTEM_PROMPT = (
    "You are an experienced teacher who writes assessments from curriculum "
    "material. Only ask about content present in the material. Reply with a "
    "single JSON object and nothing else."
)

_USER_PROMPT = """Create a {assignment_type} with {num_questions} questions.
Difficulty: {difficulty}
Multiple choice questions: {num_mc} (4 options each, one correct)
Free response questions: {num_fr}

Return JSON shaped like:
{{
  "title": "...",
  "description": "...",
  "questions": [
    {{
      "type": "MULTIPLE_CHOICE" | "FREE_RESPONSE",
      "question_text": "...",
      "options": ["...", "...", "...", "..."],
      "correct_option": "...",
      "correct_answer": "...",
      "explanation": "...",
      "concept": "...",
      "difficulty": "easy" | "medium" | "hard"
    }}
  ]
}}

Curriculum material:
{curriculum_text}"""

_ANALYSIS_SYSTEM_PROMPT = (
    "You are an expert educational content analyst who provides structured "
    "analysis in JSON format."
)

_ANALYSIS_PROMPT = """Analyze the curriculum content below and provide:
1. A concise summary (3-5 sentences) highlighting the main topics
2. An outline organized into topics and subtopics
3. The specific concepts or skills covered (e.g. "quadratic equations", "photosynthesis")
4. Learning objectives in measurable terms ("Students will be able to ...")
{hints}
Return JSON shaped like:
{{
  "summary": "...",
  "outline": {{"topics": [{{"name": "...", "subtopics": ["..."]}}]}},
  "concepts": ["..."],
  "objectives": ["..."]
}}

Curriculum content:
{curriculum_text}"""


def question_mix(num_questions: int, question_types: list[str]) -> tuple[int, int]:
    """(multiple_choice, free_response) counts for one request."""
    wants_mc = "MULTIPLE_CHOICE" in question_types
    wants_fr = "FREE_RESPONSE" in question_types

    if wants_mc and wants_fr:
        num_mc = round(num_questions * MULTIPLE_CHOICE_SHARE)
    elif wants_fr:
        num_mc = 0
    else:
        num_mc = num_questions
    return num_mc, num_questions - num_mc


def distribute_points(total_points: int | None, num_questions: int) -> list[int]:
    """One point each by default; otherwise split evenly, remainder to the first questions."""
    if not total_points:
        return [1] * num_questions
    base, remainder = divmod(total_points, num_questions)
    return [base + (1 if i < remainder else 0) for i in range(num_questions)]


# ---------------------------------------------------------------------------
# Abstract client
# ---------------------------------------------------------------------------

class GenerationClient(ABC):
    """Turns validated curriculum text into a draft assignment."""

    @abstractmethod
    async def generate(self, request: GenerationRequest) -> GenerationResult:
        """Raise GenerationError when the service fails or replies with garbage."""

    @abstractmethod
    async def analyze(self, text: str, options: AnalysisOptions) -> CurriculumAnalysis:
        """Summarize validated text; GenerationError on failure or a bad reply."""


# ---------------------------------------------------------------------------
# LangChain / OpenAI implementation
# ---------------------------------------------------------------------------

class LangChainGenerationClient(GenerationClient):
    """
    Args:
        llm: any LangChain chat model; defaults to ChatOpenAI built from settings
             on first use.
    """

    def __init__(self, llm: BaseChatModel | None = None) -> None:
        self._llm = llm

    def _get_llm(self) -> BaseChatModel:
        if self._llm is None:
            from langchain_openai import ChatOpenAI
            self._llm = ChatOpenAI(
                model=settings.llm_model,
                api_key=settings.openai_api_key,
                temperature=settings.llm_temperature,
                max_tokens=settings.llm_max_tokens,
            )
        return self._llm

    async def generate(self, request: GenerationRequest) -> GenerationResult:
        num_mc, num_fr = question_mix(request.num_questions, request.question_types)
        messages = [
            SystemMessage(content=_SYSTEM_PROMPT),
            HumanMessage(content=_USER_PROMPT.format(
                assignment_type = request.assignment_type.lower().replace("_", " "),
                num_questions   = request.num_questions,
                difficulty      = request.difficulty,
                num_mc          = num_mc,
                num_fr          = num_fr,
                curriculum_text = request.curriculum_text,
            )),
        ]

        t0 = time.perf_counter()
        try:
            reply = await self._get_llm().ainvoke(messages)
        except Exception as exc:
            logger.error("Generation call failed | error=%s", exc, exc_info=True)
            raise GenerationError(f"Assessment generation failed: {exc}") from exc

        payload = _parse_reply(reply.content)
        result = _build_result(payload, request)
        logger.info(
            "Generation complete | questions=%d latency_ms=%.0f",
            len(result.questions), (time.perf_counter() - t0) * 1000,
        )
        return result

    async def analyze(self, text: str, options: AnalysisOptions) -> CurriculumAnalysis:
        messages = [
            SystemMessage(content=_ANALYSIS_SYSTEM_PROMPT),
            HumanMessage(content=_ANALYSIS_PROMPT.format(
                hints           = _analysis_hints(options),
                curriculum_text = text,
            )),
        ]

        t0 = time.perf_counter()
        try:
            reply = await self._get_llm().ainvoke(messages)
        except Exception as exc:
            logger.error("Analysis call failed | error=%s", exc, exc_info=True)
            raise GenerationError(f"Curriculum analysis failed: {exc}") from exc

        analysis = _parse_analysis(reply.content)
        logger.info(
            "Analysis complete | topics=%d concepts=%d objectives=%d latency_ms=%.0f",
            len(analysis.outline.topics), len(analysis.concepts), len(analysis.objectives),
            (time.perf_counter() - t0) * 1000,
        )
        return analysis


# ---------------------------------------------------------------------------
# Reply parsing
# ---------------------------------------------------------------------------

def _load_json(content: Any, label: str) -> Any:
    if not isinstance(content, str):
        raise GenerationError(f"{label} returned a non-text reply")

    text = _CODE_FENCE_RE.sub("", content.strip())
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise GenerationError(f"{label} returned invalid JSON: {exc}") from exc


def _parse_reply(content: Any) -> dict:
    payload = _load_json(content, "Assessment generation")

    if not isinstance(payload, dict) or not isinstance(payload.get("questions"), list):
        raise GenerationError("Assessment generation reply has no question list")
    return payload


def _build_result(payload: dict, request: GenerationRequest) -> GenerationResult:
    raw_questions = payload["questions"][: request.num_questions]
    if not raw_questions:
        raise GenerationError("Assessment generation returned no questions")

    points = distribute_points(request.total_points, len(raw_questions))
    try:
        questions = [
            GeneratedQuestion(
                id=str(uuid.uuid4()),
                type=raw.get("type", "MULTIPLE_CHOICE"),
                question_text=raw["question_text"],
                points=points[i],
                question_order=i + 1,
                options=raw.get("options"),
                correct_option=raw.get("correct_option"),
                correct_answer=raw.get("correct_answer"),
                explanation=raw.get("explanation"),
                concept=raw.get("concept"),
                difficulty=raw.get("difficulty"),
            )
            for i, raw in enumerate(raw_questions)
        ]
        assignment = GeneratedAssignment(
            id=str(uuid.uuid4()),
            title=request.title or payload.get("title") or "Generated Assignment",
            description=request.description or payload.get("description"),
            total_points=sum(points),
        )
    except (KeyError, TypeError, AttributeError, ValidationError) as exc:
        raise GenerationError(f"Assessment generation reply is malformed: {exc}") from exc

    return GenerationResult(assignment=assignment, questions=questions)


def _analysis_hints(options: AnalysisOptions) -> str:
    hints = [
        f"Subject: {options.subject}" if options.subject else "",
        f"Grade level: {options.grade_level}" if options.grade_level else "",
        f"Focus areas: {', '.join(options.focus_areas)}" if options.focus_areas else "",
    ]
    return "".join(f"{hint}\n" for hint in hints if hint)


def _parse_analysis(content: Any) -> CurriculumAnalysis:
    payload = _load_json(content, "Curriculum analysis")
    if not isinstance(payload, dict) or not payload.get("summary"):
        raise GenerationError("Curriculum analysis reply has no summary")
    try:
        return CurriculumAnalysis.model_validate(payload)
    except ValidationError as exc:
        raise GenerationError(f"Curriculum analysis reply is malformed: {exc}") from exc
