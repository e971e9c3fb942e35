import asyncio
import time
import uuid
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional

from fastapi import HTTPException
from starlette.status import (
    HTTP_400_BAD_REQUEST,
    HTTP_404_NOT_FOUND,
    HTTP_409_CONFLICT,
)

from studybuddy.models.session import (
    FileOut,
    MaterialSource,
    PendingOp,
    QuestionOut,
    QuizType,
    SessionOut,
    Step,
    SummaryOut,
    UploadOut,
)
from studybuddy.services.completion import CompletionError
from studybuddy.services.generator import QuestionGenerator, parse_verdict
from studybuddy.services.intake import IncomingFile, MaterialIntake
from studybuddy.services.wizard import (
    AnswerSubmitted,
    BackRequested,
    FeedbackReceived,
    FileRemoved,
    FilesAdded,
    FinishRequested,
    GenerationFailed,
    GuardRejected,
    InvalidTransition,
    LinkSubmitted,
    MaterialChosen,
    NextQuestionRequested,
    QuestionReady,
    QuizTypeChosen,
    ResetRequested,
    RetryRequested,
    SubjectSubmitted,
    UploadFinished,
    WizardState,
    transition,
)
from studybuddy.utils.abort import AbortSignal, RequestAborted

logger = logging.getLogger(__name__)


@dataclass
class _Runtime:
    id: str
    state: WizardState
    created_at: float
    touched_at: float
    busy: bool = False  # verrou consultatif : une seule opération à la fois
    abort: Optional[AbortSignal] = None


class StudyEngine:
    """
    Sessions d'étude en mémoire (une par onglet).
    Applique les événements à la machine à états et exécute les appels
    externes que l'état réclame (génération de question / feedback).
    """

    def __init__(
        self,
        generator: QuestionGenerator,
        intake: MaterialIntake,
        ttl_seconds: int = 60 * 60,
        max_upload_mb: int = 25,
    ) -> None:
        self._generator = generator
        self._intake = intake
        self._sessions: Dict[str, _Runtime] = {}
        self._ttl_seconds = ttl_seconds
        self.max_upload_bytes = max_upload_mb * 1024 * 1024

    # ---------- public API ----------

    def create(self) -> SessionOut:
        self._purge_expired()
        now = time.time()
        sess_id = f"study_{uuid.uuid4().hex[:12]}"
        rt = _Runtime(id=sess_id, state=WizardState(), created_at=now, touched_at=now)
        self._sessions[sess_id] = rt
        logger.info("session %s created", sess_id)
        return self._to_view(rt)

    def get(self, session_id: str) -> SessionOut:
        return self._to_view(self._get_runtime(session_id))

    def delete(self, session_id: str) -> None:
        rt = self._get_runtime(session_id)
        if rt.abort is not None:
            rt.abort.abort("Session supprimée.")
        del self._sessions[session_id]

    async def submit_subject(self, session_id: str, subject: str) -> SessionOut:
        return await self._dispatch(session_id, SubjectSubmitted(subject))

    async def choose_material(self, session_id: str, source: MaterialSource) -> SessionOut:
        return await self._dispatch(session_id, MaterialChosen(source))

    async def add_files(self, session_id: str, incoming: List[IncomingFile]) -> UploadOut:
        rt = self._get_runtime(session_id)
        self._ensure_idle(rt)
        if rt.state.step is not Step.upload:
            raise HTTPException(
                status_code=HTTP_409_CONFLICT,
                detail=f"Upload impossible à l'étape '{rt.state.step.value}'.",
            )
        for f in incoming:
            if len(f.data) > self.max_upload_bytes:
                raise HTTPException(
                    status_code=413,
                    detail=f"{f.name} : fichier trop volumineux "
                           f"(max {self.max_upload_bytes // (1024 * 1024)} MB)",
                )

        signal = AbortSignal()
        rt.busy = True
        rt.abort = signal
        try:
            result = await self._intake.process(incoming, abort=signal)
        except RequestAborted as e:
            raise HTTPException(status_code=HTTP_409_CONFLICT, detail=str(e))
        finally:
            rt.busy = False
            rt.abort = None

        self._apply(rt, FilesAdded(tuple(result.files)))
        view = self._to_view(rt)
        return UploadOut(**view.model_dump(), rejected=result.rejected, warning=result.warning)

    async def remove_file(self, session_id: str, index: int) -> SessionOut:
        return await self._dispatch(session_id, FileRemoved(index))

    async def finish_upload(self, session_id: str) -> SessionOut:
        return await self._dispatch(session_id, UploadFinished())

    async def submit_link(self, session_id: str, url: str) -> SessionOut:
        return await self._dispatch(session_id, LinkSubmitted(url))

    async def choose_quiz_type(self, session_id: str, quiz_type: QuizType) -> SessionOut:
        return await self._dispatch(session_id, QuizTypeChosen(quiz_type))

    async def submit_answer(
        self, session_id: str, answer: str, justification: Optional[str] = None
    ) -> SessionOut:
        return await self._dispatch(session_id, AnswerSubmitted(answer, justification))

    async def next_question(self, session_id: str) -> SessionOut:
        return await self._dispatch(session_id, NextQuestionRequested())

    async def retry(self, session_id: str) -> SessionOut:
        return await self._dispatch(session_id, RetryRequested())

    def cancel(self, session_id: str) -> SessionOut:
        """
        Annule l'appel externe en cours. Une génération se termine sur
        l'écran d'erreur (retry / retour possibles) ; un upload est
        abandonné sans modifier la liste de fichiers.
        """
        rt = self._get_runtime(session_id)
        if rt.abort is None:
            raise HTTPException(status_code=HTTP_409_CONFLICT, detail="Aucune opération en cours.")
        if rt.state.step is Step.upload:
            rt.abort.abort("Upload annulé.")
        else:
            rt.abort.abort("Génération annulée.")
        return self._to_view(rt)

    async def back(self, session_id: str) -> SessionOut:
        return await self._dispatch(session_id, BackRequested())

    async def finish(self, session_id: str) -> SessionOut:
        return await self._dispatch(session_id, FinishRequested())

    async def reset(self, session_id: str) -> SessionOut:
        return await self._dispatch(session_id, ResetRequested())

    # ---------- internals ----------

    def _get_runtime(self, session_id: str) -> _Runtime:
        rt = self._sessions.get(session_id)
        if not rt:
            raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Session introuvable.")
        # TTL (inactivité) ; jamais pendant un appel en cours
        if not rt.busy and time.time() - rt.touched_at > self._ttl_seconds:
            self._sessions.pop(session_id, None)
            raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Session expirée.")
        rt.touched_at = time.time()
        return rt

    def _purge_expired(self) -> None:
        now = time.time()
        expired = [
            sid for sid, rt in self._sessions.items()
            if not rt.busy and now - rt.touched_at > self._ttl_seconds
        ]
        for sid in expired:
            del self._sessions[sid]

    def _ensure_idle(self, rt: _Runtime) -> None:
        if rt.busy:
            raise HTTPException(
                status_code=HTTP_409_CONFLICT,
                detail="Une opération est déjà en cours pour cette session.",
            )

    def _apply(self, rt: _Runtime, event: object) -> None:
        try:
            rt.state = transition(rt.state, event)
        except GuardRejected as e:
            raise HTTPException(status_code=HTTP_400_BAD_REQUEST, detail=str(e))
        except InvalidTransition as e:
            raise HTTPException(status_code=HTTP_409_CONFLICT, detail=str(e))

    async def _dispatch(self, session_id: str, event: object) -> SessionOut:
        rt = self._get_runtime(session_id)
        self._ensure_idle(rt)
        self._apply(rt, event)
        await self._run_pending(rt)
        return self._to_view(rt)

    async def _run_pending(self, rt: _Runtime) -> None:
        """Exécute l'appel externe réclamé par l'état `generating`, s'il y en a un."""
        state = rt.state
        if state.step is not Step.generating:
            return

        signal = AbortSignal()
        rt.busy = True
        rt.abort = signal
        try:
            if state.pending is PendingOp.question:
                question = await self._generator.generate_question(
                    state.session,
                    question_id=state.session.question_index + 1,
                    abort=signal,
                )
                event = QuestionReady(question)
            else:
                text = await self._generator.generate_feedback(
                    state.session, state.question, abort=signal
                )
                event = FeedbackReceived(text, parse_verdict(text))
        except (CompletionError, RequestAborted) as e:
            logger.warning("generation %s failed for %s: %s", state.pending.value, rt.id, e)
            event = GenerationFailed(str(e) or "La génération a échoué.")
        except asyncio.CancelledError:
            # client parti : on ne laisse pas la session bloquée en 'generating'
            rt.state = transition(rt.state, GenerationFailed("Requête interrompue."))
            raise
        except Exception as e:
            logger.exception("generation %s crashed for %s", state.pending.value, rt.id)
            event = GenerationFailed(f"Erreur inattendue pendant la génération: {e}")
        finally:
            rt.busy = False
            rt.abort = None

        rt.state = transition(rt.state, event)

    def _to_view(self, rt: _Runtime) -> SessionOut:
        state = rt.state
        session = state.session
        q = state.question

        question = None
        if q is not None:
            question = QuestionOut(
                id=q.id,
                kind=q.kind,
                prompt=q.prompt,
                options=list(q.options),
                difficulty=q.difficulty,
                userAnswer=q.user_answer,
                userJustification=q.user_justification,
                feedback=q.feedback,
                verdict=q.verdict,
            )

        summary = None
        if state.step is Step.summary:
            summary = SummaryOut(
                subject=session.subject,
                quizType=session.quiz_type,
                questionsAnswered=session.questions_answered,
                score=session.score,
            )

        return SessionOut(
            sessionId=rt.id,
            step=state.step,
            subject=session.subject,
            materialSource=session.material_source,
            linkUrl=session.link_url,
            materialLength=len(session.material_text),
            quizType=session.quiz_type,
            questionIndex=session.question_index,
            questionsAnswered=session.questions_answered,
            score=session.score,
            files=[
                FileOut(
                    index=i,
                    name=f.name,
                    sizeBytes=f.size_bytes,
                    contentType=f.content_type,
                    extracted=f.extracted,
                )
                for i, f in enumerate(state.files)
            ],
            question=question,
            awaitingJustification=state.awaiting_justification,
            pending=state.pending,
            busy=rt.busy or state.busy,
            canFinish=state.can_finish,
            error=state.error,
            summary=summary,
        )
