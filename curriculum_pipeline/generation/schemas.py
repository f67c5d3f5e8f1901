"""
Assessment Generation — Pydantic Request/Response Schemas

Inbound (from callers of the gateway):
  GenerationConfig         material-based generation options
  DirectGenerationRequest  topic-text generation, no stored material
  AnalysisOptions          optional subject / grade / focus hints for analysis

Outbound (to the external generation service):
  GenerationRequest        validated text + options, one object per call

Result (from the external generation service):
  GenerationResult         { assignment, questions }
  CurriculumAnalysis       { summary, outline, concepts, objectives }
"""

from __future__ import annotations

from datetime import datetime
from typing import Literal
from uuid import UUID

from pydantic import BaseModel, Field

Difficulty     = Literal["easy", "medium", "hard", "mixed"]
QuestionType   = Literal["MULTIPLE_CHOICE", "FREE_RESPONSE"]
AssignmentType = Literal[
    "PRACTICE", "QUIZ", "TEST", "HOMEWORK", "CHALLENGE", "ESSAY", "INTERACTIVE_MATH",
]


def _default_question_types() -> list[str]:
    return ["MULTIPLE_CHOICE"]


# ---------------------------------------------------------------------------
# Inbound
# ---------------------------------------------------------------------------

class GenerationConfig(BaseModel):
    """Options for POST /curriculum/{id}/generate-assignment."""
    class_id:        UUID | None         = None
    title:           str | None          = Field(None, max_length=255)
    description:     str | None          = None
    num_questions:   int                 = Field(10, ge=1, le=50)
    difficulty:      Difficulty          = "mixed"
    question_types:  list[QuestionType]  = Field(default_factory=_default_question_types, min_length=1)
    assignment_type: AssignmentType      = "QUIZ"
    total_points:    int | None          = Field(None, gt=0)
    due_date:        datetime | None     = None
    time_limit:      int | None          = Field(None, gt=0, description="Minutes")


class DirectGenerationRequest(BaseModel):
    """Generation from caller-assembled topic text (see build_topic_text)."""
    class_id:        UUID
    curriculum_text: str                 = Field(..., min_length=1, max_length=10000)
    assignment_type: AssignmentType      = "PRACTICE"
    num_questions:   int                 = Field(10, ge=1, le=50)
    difficulty:      Difficulty          = "mixed"
    question_types:  list[QuestionType]  = Field(default_factory=_default_question_types, min_length=1)


class AnalysisOptions(BaseModel):
    """Hints for POST /curriculum/{id}/analyze; all optional."""
    subject:     str | None = Field(None, max_length=100)
    grade_level: str | None = Field(None, max_length=50)
    focus_areas: list[str]  = Field(default_factory=list, max_length=20)


# ---------------------------------------------------------------------------
# Outbound
# ---------------------------------------------------------------------------

class GenerationRequest(BaseModel):
    """Everything the external service receives. curriculum_text is pre-validated."""
    curriculum_text: str
    assignment_type: AssignmentType
    num_questions:   int
    difficulty:      Difficulty
    question_types:  list[QuestionType]
    class_id:        UUID | None     = None
    material_id:     UUID | None     = None
    title:           str | None      = None
    description:     str | None      = None
    total_points:    int | None      = None
    due_date:        datetime | None = None
    time_limit:      int | None      = None


# ---------------------------------------------------------------------------
# Result
# ---------------------------------------------------------------------------

class GeneratedQuestion(BaseModel):
    id:             str
    type:           QuestionType
    question_text:  str
    points:         int = Field(..., ge=0)
    question_order: int = Field(..., ge=1)
    concept:        str | None       = None
    difficulty:     str | None       = None
    options:        list[str] | None = None
    correct_option: str | None       = None
    correct_answer: str | None       = None
    explanation:    str | None       = None


class GeneratedAssignment(BaseModel):
    id:           str
    title:        str
    description:  str | None = None
    total_points: int
    status:       str = "DRAFT"


class GenerationResult(BaseModel):
    assignment: GeneratedAssignment
    questions:  list[GeneratedQuestion]


class OutlineTopic(BaseModel):
    name:      str
    subtopics: list[str] = Field(default_factory=list)


class CurriculumOutline(BaseModel):
    topics: list[OutlineTopic] = Field(default_factory=list)


class CurriculumAnalysis(BaseModel):
    """
    summary    → ai_summary
    outline    → ai_outline
    concepts   → suggested_topics
    objectives → learning_objectives
    """
    summary:    str
    outline:    CurriculumOutline = Field(default_factory=CurriculumOutline)
    concepts:   list[str] = Field(default_factory=list)
    objectives: list[str] = Field(default_factory=list)
