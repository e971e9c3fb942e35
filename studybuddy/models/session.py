from enum import Enum
from typing import List, Optional
from pydantic import BaseModel, Field


class Step(str, Enum):
    subject = "subject"
    material_choice = "material-choice"
    upload = "upload"
    link = "link"
    quiz_type = "quiz-type"
    generating = "generating"
    quiz = "quiz"
    error = "error"
    summary = "summary"


class MaterialSource(str, Enum):
    none = "none"
    upload = "upload"
    link = "link"
    knowledge = "knowledge"


class QuizType(str, Enum):
    open = "open"
    multiple_choice = "multiple-choice"


class Difficulty(str, Enum):
    easy = "easy"
    medium = "medium"
    hard = "hard"


class Verdict(str, Enum):
    correct = "correct"
    incorrect = "incorrect"
    partial = "partial"


class PendingOp(str, Enum):
    question = "question"
    feedback = "feedback"


# ---------- requêtes ----------

class SubjectIn(BaseModel):
    subject: str = Field(..., description="Matière à réviser")


class MaterialIn(BaseModel):
    source: MaterialSource = Field(..., description="upload | link | knowledge")


class LinkIn(BaseModel):
    url: str = Field(..., description="URL du support (non validée)")


class QuizTypeIn(BaseModel):
    quizType: QuizType


class AnswerIn(BaseModel):
    answer: str = ""
    justification: Optional[str] = Field(
        default=None,
        description="Justification exigée au 2e envoi d'une question à choix multiples",
    )


# ---------- réponses ----------

class FileOut(BaseModel):
    index: int
    name: str
    sizeBytes: int = Field(..., ge=0)
    contentType: str
    extracted: bool


class QuestionOut(BaseModel):
    id: int
    kind: QuizType
    prompt: str
    options: List[str] = Field(default_factory=list)
    difficulty: Difficulty
    userAnswer: Optional[str] = None
    userJustification: Optional[str] = None
    feedback: Optional[str] = None
    verdict: Optional[Verdict] = None


class SummaryOut(BaseModel):
    subject: str
    quizType: Optional[QuizType] = None
    questionsAnswered: int
    score: int


class SessionOut(BaseModel):
    sessionId: str
    step: Step
    subject: str
    materialSource: MaterialSource
    linkUrl: Optional[str] = None
    materialLength: int = Field(..., ge=0, description="Taille du texte de support cumulé")
    quizType: Optional[QuizType] = None
    questionIndex: int
    questionsAnswered: int
    score: int
    files: List[FileOut] = Field(default_factory=list)
    question: Optional[QuestionOut] = None
    awaitingJustification: bool = False
    pending: Optional[PendingOp] = None
    busy: bool = False
    canFinish: bool = False
    error: Optional[str] = None
    summary: Optional[SummaryOut] = None


class UploadOut(SessionOut):
    rejected: int = 0
    warning: Optional[str] = None


class DeleteOut(BaseModel):
    ok: bool = True
    id: Optional[str] = None
