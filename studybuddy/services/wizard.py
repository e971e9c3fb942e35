"""
Machine à états de l'assistant d'étude (écrans + session).

`transition(state, event)` est une fonction pure : elle renvoie un nouvel
WizardState ou lève une WizardError, sans jamais modifier l'état reçu.
Les appels externes (génération de question / feedback) ne sont pas faits
ici : l'état passe à `generating` avec `pending` renseigné, et c'est le
moteur (study_engine) qui exécute l'appel puis renvoie QuestionReady,
FeedbackReceived ou GenerationFailed.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from typing import Callable, Dict, Optional, Sequence, Tuple

from studybuddy.models.session import (
    Difficulty,
    MaterialSource,
    PendingOp,
    QuizType,
    Step,
    Verdict,
)
from studybuddy.utils.text_utils import combine_fragments

logger = logging.getLogger(__name__)

# Nombre de réponses avant de proposer "terminer la session"
FINISH_THRESHOLD = 10


class WizardError(Exception):
    pass


class InvalidTransition(WizardError):
    """Événement non accepté à l'étape courante."""


class GuardRejected(WizardError):
    """Événement accepté mais garde non satisfaite (champ vide, index invalide...)."""


# ---------- données ----------

@dataclass(frozen=True)
class UploadedFile:
    name: str
    size_bytes: int
    content_type: str = ""
    extracted_text: str = ""
    extracted: bool = True  # False : extraction échouée, aucun texte retenu


@dataclass(frozen=True)
class Question:
    id: int
    kind: QuizType
    prompt: str
    difficulty: Difficulty
    options: Tuple[str, ...] = ()
    user_answer: Optional[str] = None
    user_justification: Optional[str] = None
    feedback: Optional[str] = None
    verdict: Optional[Verdict] = None


@dataclass(frozen=True)
class Session:
    subject: str = ""
    material_source: MaterialSource = MaterialSource.none
    material_text: str = ""
    link_url: Optional[str] = None
    quiz_type: Optional[QuizType] = None
    question_index: int = 0
    questions_answered: int = 0
    score: int = 0


@dataclass(frozen=True)
class WizardState:
    step: Step = Step.subject
    session: Session = field(default_factory=Session)
    files: Tuple[UploadedFile, ...] = ()
    question: Optional[Question] = None
    awaiting_justification: bool = False
    pending: Optional[PendingOp] = None
    error: Optional[str] = None
    quiz_started: bool = False

    @property
    def busy(self) -> bool:
        return self.step is Step.generating

    @property
    def can_finish(self) -> bool:
        return (
            self.step is Step.quiz
            and self.question is not None
            and self.question.feedback is not None
            and self.session.questions_answered >= FINISH_THRESHOLD
        )


# ---------- événements ----------

@dataclass(frozen=True)
class SubjectSubmitted:
    subject: str


@dataclass(frozen=True)
class MaterialChosen:
    source: MaterialSource


@dataclass(frozen=True)
class FilesAdded:
    files: Tuple[UploadedFile, ...]


@dataclass(frozen=True)
class FileRemoved:
    index: int


@dataclass(frozen=True)
class UploadFinished:
    pass


@dataclass(frozen=True)
class LinkSubmitted:
    url: str


@dataclass(frozen=True)
class QuizTypeChosen:
    quiz_type: QuizType


@dataclass(frozen=True)
class QuestionReady:
    question: Question


@dataclass(frozen=True)
class AnswerSubmitted:
    answer: str
    justification: Optional[str] = None


@dataclass(frozen=True)
class FeedbackReceived:
    text: str
    verdict: Optional[Verdict] = None


@dataclass(frozen=True)
class GenerationFailed:
    message: str


@dataclass(frozen=True)
class NextQuestionRequested:
    pass


@dataclass(frozen=True)
class RetryRequested:
    pass


@dataclass(frozen=True)
class BackRequested:
    pass


@dataclass(frozen=True)
class FinishRequested:
    pass


@dataclass(frozen=True)
class ResetRequested:
    pass


# ---------- helpers ----------

def material_text_for(files: Sequence[UploadedFile]) -> str:
    """Texte de support dérivé de la liste de fichiers courante, dans l'ordre d'upload."""
    return combine_fragments((f.name, f.extracted_text) for f in files if f.extracted)


def resolve_choice(options: Sequence[str], answer: str) -> Optional[str]:
    """
    Retrouve l'option désignée par `answer` : texte exact de l'option
    ("b) Médiane") ou simple lettre ("b"). None si rien ne correspond.
    """
    for opt in options:
        if opt == answer:
            return opt
    letter = answer.lower().rstrip(")")
    if len(letter) == 1:
        for opt in options:
            if opt.lower().startswith(f"{letter})"):
                return opt
    return None


def _require(state: WizardState, event: object, *steps: Step) -> None:
    if state.step not in steps:
        raise InvalidTransition(
            f"{type(event).__name__} refusé à l'étape '{state.step.value}'."
        )


def _with_files(state: WizardState, files: Tuple[UploadedFile, ...]) -> WizardState:
    session = replace(state.session, material_text=material_text_for(files))
    return replace(state, files=files, session=session)


# ---------- transitions ----------

def _on_subject(state: WizardState, ev: SubjectSubmitted) -> WizardState:
    _require(state, ev, Step.subject)
    subject = (ev.subject or "").strip()
    if not subject:
        raise GuardRejected("Le sujet est vide.")
    return replace(
        state,
        step=Step.material_choice,
        session=replace(state.session, subject=subject),
    )


_MATERIAL_TARGETS = {
    MaterialSource.upload: Step.upload,
    MaterialSource.link: Step.link,
    MaterialSource.knowledge: Step.quiz_type,
}


def _on_material(state: WizardState, ev: MaterialChosen) -> WizardState:
    _require(state, ev, Step.material_choice)
    target = _MATERIAL_TARGETS.get(ev.source)
    if target is None:
        raise GuardRejected(f"Source de support invalide: {ev.source.value}.")
    text = material_text_for(state.files) if ev.source is MaterialSource.upload else ""
    session = replace(state.session, material_source=ev.source, material_text=text)
    return replace(state, step=target, session=session)


def _on_files_added(state: WizardState, ev: FilesAdded) -> WizardState:
    _require(state, ev, Step.upload)
    return _with_files(state, state.files + tuple(ev.files))


def _on_file_removed(state: WizardState, ev: FileRemoved) -> WizardState:
    _require(state, ev, Step.upload)
    if ev.index < 0 or ev.index >= len(state.files):
        raise GuardRejected("Index de fichier invalide.")
    files = state.files[: ev.index] + state.files[ev.index + 1:]
    return _with_files(state, files)


def _on_upload_finished(state: WizardState, ev: UploadFinished) -> WizardState:
    _require(state, ev, Step.upload)
    return replace(state, step=Step.quiz_type)


def _on_link(state: WizardState, ev: LinkSubmitted) -> WizardState:
    _require(state, ev, Step.link)
    url = (ev.url or "").strip()
    if not url:
        raise GuardRejected("L'URL est vide.")
    return replace(
        state,
        step=Step.quiz_type,
        session=replace(state.session, link_url=url),
    )


def _on_quiz_type(state: WizardState, ev: QuizTypeChosen) -> WizardState:
    _require(state, ev, Step.quiz_type)
    return replace(
        state,
        step=Step.generating,
        pending=PendingOp.question,
        session=replace(state.session, quiz_type=ev.quiz_type, question_index=0),
        question=None,
        awaiting_justification=False,
        error=None,
    )


def _on_question_ready(state: WizardState, ev: QuestionReady) -> WizardState:
    _require(state, ev, Step.generating)
    if state.pending is not PendingOp.question:
        raise InvalidTransition("Aucune question en attente.")
    return replace(
        state,
        step=Step.quiz,
        question=ev.question,
        pending=None,
        awaiting_justification=False,
        quiz_started=True,
    )


def _on_answer(state: WizardState, ev: AnswerSubmitted) -> WizardState:
    _require(state, ev, Step.quiz)
    q = state.question
    if q is None or q.feedback is not None:
        raise InvalidTransition("Pas de question ouverte à laquelle répondre.")

    answer = (ev.answer or "").strip()
    if not answer:
        raise GuardRejected("La réponse est vide.")

    if q.kind is QuizType.open:
        return replace(
            state,
            step=Step.generating,
            pending=PendingOp.feedback,
            question=replace(q, user_answer=answer),
        )

    choice = resolve_choice(q.options, answer)
    if choice is None:
        raise GuardRejected("La réponse ne correspond à aucune option.")

    # 1er envoi : on débloque seulement le champ de justification
    if not state.awaiting_justification:
        return replace(
            state,
            awaiting_justification=True,
            question=replace(q, user_answer=choice),
        )

    justification = (ev.justification or "").strip()
    if not justification:
        raise GuardRejected("Explique ton choix avant d'envoyer.")
    return replace(
        state,
        step=Step.generating,
        pending=PendingOp.feedback,
        question=replace(q, user_answer=choice, user_justification=justification),
    )


def _on_feedback(state: WizardState, ev: FeedbackReceived) -> WizardState:
    _require(state, ev, Step.generating)
    if state.pending is not PendingOp.feedback or state.question is None:
        raise InvalidTransition("Aucun feedback en attente.")
    session = state.session
    bonus = 1 if ev.verdict is Verdict.correct else 0
    return replace(
        state,
        step=Step.quiz,
        pending=None,
        awaiting_justification=False,
        question=replace(state.question, feedback=ev.text, verdict=ev.verdict),
        session=replace(
            session,
            questions_answered=session.questions_answered + 1,
            score=session.score + bonus,
        ),
    )


def _on_failed(state: WizardState, ev: GenerationFailed) -> WizardState:
    _require(state, ev, Step.generating)
    # pending est conservé : RetryRequested relance la même opération
    return replace(state, step=Step.error, error=ev.message or "La génération a échoué.")


def _on_next(state: WizardState, ev: NextQuestionRequested) -> WizardState:
    _require(state, ev, Step.quiz)
    q = state.question
    unanswerable = q is not None and q.kind is QuizType.multiple_choice and not q.options
    if q is None or (q.feedback is None and not unanswerable):
        raise InvalidTransition("Réponds d'abord à la question courante.")
    session = state.session
    return replace(
        state,
        step=Step.generating,
        pending=PendingOp.question,
        awaiting_justification=False,
        session=replace(session, question_index=session.question_index + 1),
    )


def _on_retry(state: WizardState, ev: RetryRequested) -> WizardState:
    _require(state, ev, Step.error)
    return replace(state, step=Step.generating, error=None)


def _back_from_error(state: WizardState) -> WizardState:
    if not state.quiz_started:
        return replace(state, step=Step.quiz_type, pending=None, error=None)

    session = state.session
    if state.pending is PendingOp.question:
        # la question suivante n'est jamais arrivée : on rend l'index
        session = replace(session, question_index=max(0, session.question_index - 1))
    q = state.question
    awaiting = (
        state.pending is PendingOp.feedback
        and q is not None
        and q.kind is QuizType.multiple_choice
    )
    return replace(
        state,
        step=Step.quiz,
        pending=None,
        error=None,
        session=session,
        awaiting_justification=awaiting,
    )


def _on_back(state: WizardState, ev: BackRequested) -> WizardState:
    step = state.step
    if step is Step.material_choice:
        return replace(state, step=Step.subject)
    if step in (Step.upload, Step.link):
        return replace(state, step=Step.material_choice)
    if step is Step.quiz_type:
        source = state.session.material_source
        if source is MaterialSource.upload:
            return replace(state, step=Step.upload)
        if source is MaterialSource.link:
            return replace(state, step=Step.link)
        return replace(state, step=Step.material_choice)
    if step is Step.error:
        return _back_from_error(state)
    if step is Step.summary:
        return replace(state, step=Step.quiz)
    raise InvalidTransition(f"Pas de retour possible depuis l'étape '{step.value}'.")


def _on_finish(state: WizardState, ev: FinishRequested) -> WizardState:
    _require(state, ev, Step.quiz)
    if not state.can_finish:
        raise GuardRejected(
            f"La session peut être terminée après {FINISH_THRESHOLD} réponses."
        )
    return replace(state, step=Step.summary)


def _on_reset(state: WizardState, ev: ResetRequested) -> WizardState:
    if state.busy:
        raise InvalidTransition("Génération en cours : annule-la avant de recommencer.")
    return WizardState()


_HANDLERS: Dict[type, Callable[[WizardState, object], WizardState]] = {
    SubjectSubmitted: _on_subject,
    MaterialChosen: _on_material,
    FilesAdded: _on_files_added,
    FileRemoved: _on_file_removed,
    UploadFinished: _on_upload_finished,
    LinkSubmitted: _on_link,
    QuizTypeChosen: _on_quiz_type,
    QuestionReady: _on_question_ready,
    AnswerSubmitted: _on_answer,
    FeedbackReceived: _on_feedback,
    GenerationFailed: _on_failed,
    NextQuestionRequested: _on_next,
    RetryRequested: _on_retry,
    BackRequested: _on_back,
    FinishRequested: _on_finish,
    ResetRequested: _on_reset,
}


def transition(state: WizardState, event: object) -> WizardState:
    handler = _HANDLERS.get(type(event))
    if handler is None:
        raise TypeError(f"Événement inconnu: {event!r}")
    new_state = handler(state, event)
    logger.debug(
        "transition %s --%s--> %s",
        state.step.value, type(event).__name__, new_state.step.value,
    )
    return new_state
