"""
Construction des prompts et lecture des réponses du modèle.

Tout ce qui est ici est pur, sauf QuestionGenerator qui envoie un seul
message au client de complétion par opération.
"""

from __future__ import annotations

import re
from typing import List, Optional

from studybuddy.models.session import Difficulty, MaterialSource, QuizType, Verdict
from studybuddy.services.wizard import Question, Session
from studybuddy.utils.abort import AbortSignal

MATERIAL_HEADER = "STUDY MATERIAL:"

_OPTION_RE = re.compile(r"^[a-d]\)")
_VERDICT_RE = re.compile(
    r"^\W*verdict\W*:\W*(partially correct|partly correct|incorrect|correct)\b",
    re.IGNORECASE,
)

QUIZ_TYPE_LABELS = {
    QuizType.open: "open questions",
    QuizType.multiple_choice: "multiple choice questions",
}


def difficulty_for(questions_answered: int) -> Difficulty:
    """0-2 réponses : easy, 3-6 : medium, 7 et plus : hard."""
    if questions_answered < 3:
        return Difficulty.easy
    if questions_answered < 7:
        return Difficulty.medium
    return Difficulty.hard


def material_block(session: Session) -> str:
    source = session.material_source
    if source is MaterialSource.link and session.link_url:
        return (
            f"STUDY MATERIAL LINK: {session.link_url}\n"
            "Fetch and analyse the content at this link and base everything on it."
        )
    if source is MaterialSource.upload and session.material_text.strip():
        return f"{MATERIAL_HEADER}\n{session.material_text}"
    return (
        "No study material was provided. "
        f"Rely on your general knowledge of {session.subject} "
        "at university level."
    )


def build_question_prompt(session: Session, difficulty: Difficulty) -> str:
    quiz_type = session.quiz_type or QuizType.open
    if quiz_type is QuizType.multiple_choice:
        instruction = (
            f"Write 1 {difficulty.value} multiple choice question about the material. "
            "Give exactly 4 answer options, one per line, labelled a), b), c) and d). "
            "Make the wrong options plausible and misleading. "
            "NEVER ask more than one question at a time."
        )
        closing = (
            "Return only the question on the first line followed by the 4 options, "
            "no extra text."
        )
    else:
        instruction = (
            f"Write 1 {difficulty.value} open question about the material. "
            "NEVER ask more than one question at a time."
        )
        closing = "Return only the question, no extra text."

    return (
        "You are a university tutor quizzing a student.\n\n"
        "CONTEXT:\n"
        f"- Subject: {session.subject}\n"
        f"- Quiz type: {QUIZ_TYPE_LABELS[quiz_type]}\n"
        f"- Questions answered: {session.questions_answered}\n"
        f"- Difficulty: {difficulty.value}\n\n"
        f"{material_block(session)}\n\n"
        "INSTRUCTIONS:\n"
        f"{instruction}\n\n"
        f"{closing}"
    )


def _non_empty_lines(raw: str) -> List[str]:
    return [line.strip() for line in (raw or "").splitlines() if line.strip()]


def parse_options(raw: str) -> List[str]:
    """
    Lignes d'options "a) ..." à "d) ..." après la première ligne, dans
    l'ordre rencontré. Ni le nombre ni l'ordre des lettres ne sont vérifiés.
    """
    return [line for line in _non_empty_lines(raw)[1:] if _OPTION_RE.match(line)]


def parse_question(
    raw: str,
    quiz_type: QuizType,
    question_id: int,
    difficulty: Difficulty,
) -> Question:
    if quiz_type is QuizType.multiple_choice:
        lines = _non_empty_lines(raw)
        return Question(
            id=question_id,
            kind=quiz_type,
            prompt=lines[0] if lines else "",
            options=tuple(parse_options(raw)),
            difficulty=difficulty,
        )
    return Question(id=question_id, kind=quiz_type, prompt=raw, difficulty=difficulty)


def build_feedback_prompt(session: Session, question: Question) -> str:
    parts = [
        "You are a university tutor. A student has answered a question.",
        "",
        f"QUESTION: {question.prompt}",
    ]
    if question.options:
        parts.append("OPTIONS:\n" + "\n".join(question.options))
    parts.append("")
    parts.append(f"STUDENT ANSWER: {question.user_answer or ''}")
    if question.user_justification:
        parts.append(f"STUDENT EXPLANATION: {question.user_justification}")
    parts += [
        "",
        material_block(session),
        "",
        "Give feedback as an experienced teacher:",
        "1. Judge whether the answer is correct",
        "2. Explain why it is right or wrong",
        "3. Refer to the study material where relevant",
        "4. Be friendly but critical",
        "5. Help the student understand",
        "",
        "Start your reply with a single line 'Verdict: correct', "
        "'Verdict: partially correct' or 'Verdict: incorrect'.",
        "Return only the feedback, do not ask a new question.",
    ]
    return "\n".join(parts)


def parse_verdict(feedback: str) -> Optional[Verdict]:
    lines = _non_empty_lines(feedback)
    if not lines:
        return None
    m = _VERDICT_RE.match(lines[0])
    if not m:
        return None
    word = m.group(1).lower()
    if word == "correct":
        return Verdict.correct
    if word == "incorrect":
        return Verdict.incorrect
    return Verdict.partial


class QuestionGenerator:
    """Génère questions et feedbacks via le client de complétion."""

    def __init__(self, completion) -> None:
        self._completion = completion

    async def generate_question(
        self,
        session: Session,
        question_id: int,
        abort: Optional[AbortSignal] = None,
    ) -> Question:
        difficulty = difficulty_for(session.questions_answered)
        prompt = build_question_prompt(session, difficulty)
        raw = await self._completion.complete(prompt, abort=abort)
        return parse_question(raw, session.quiz_type or QuizType.open, question_id, difficulty)

    async def generate_feedback(
        self,
        session: Session,
        question: Question,
        abort: Optional[AbortSignal] = None,
    ) -> str:
        prompt = build_feedback_prompt(session, question)
        return await self._completion.complete(prompt, abort=abort)
