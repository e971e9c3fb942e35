from typing import List

from fastapi import APIRouter, Depends, File, UploadFile
from starlette.status import HTTP_201_CREATED

from studybuddy.core.deps import get_engine
from studybuddy.models.session import (
    AnswerIn,
    DeleteOut,
    LinkIn,
    MaterialIn,
    QuizTypeIn,
    SessionOut,
    SubjectIn,
    UploadOut,
)
from studybuddy.services.intake import IncomingFile
from studybuddy.services.study_engine import StudyEngine

router = APIRouter(prefix="/v1/sessions", tags=["sessions"])


@router.post("", response_model=SessionOut, status_code=HTTP_201_CREATED)
async def create_session(engine: StudyEngine = Depends(get_engine)):
    return engine.create()


@router.get("/{session_id}", response_model=SessionOut)
async def get_session(session_id: str, engine: StudyEngine = Depends(get_engine)):
    return engine.get(session_id)


@router.delete("/{session_id}", response_model=DeleteOut)
async def delete_session(session_id: str, engine: StudyEngine = Depends(get_engine)):
    engine.delete(session_id)
    return DeleteOut(ok=True, id=session_id)


# ---------- écrans de préparation ----------

@router.post("/{session_id}/subject", response_model=SessionOut)
async def submit_subject(session_id: str, body: SubjectIn, engine: StudyEngine = Depends(get_engine)):
    return await engine.submit_subject(session_id, body.subject)


@router.post("/{session_id}/material", response_model=SessionOut)
async def choose_material(session_id: str, body: MaterialIn, engine: StudyEngine = Depends(get_engine)):
    return await engine.choose_material(session_id, body.source)


@router.post("/{session_id}/files", response_model=UploadOut)
async def upload_files(
    session_id: str,
    files: List[UploadFile] = File(...),
    engine: StudyEngine = Depends(get_engine),
):
    incoming = []
    for f in files:
        incoming.append(
            IncomingFile(
                name=f.filename or "sans_nom",
                content_type=f.content_type or "",
                data=await f.read(),
            )
        )
    return await engine.add_files(session_id, incoming)


@router.delete("/{session_id}/files/{index}", response_model=SessionOut)
async def remove_file(session_id: str, index: int, engine: StudyEngine = Depends(get_engine)):
    return await engine.remove_file(session_id, index)


@router.post("/{session_id}/upload/continue", response_model=SessionOut)
async def finish_upload(session_id: str, engine: StudyEngine = Depends(get_engine)):
    return await engine.finish_upload(session_id)


@router.post("/{session_id}/link", response_model=SessionOut)
async def submit_link(session_id: str, body: LinkIn, engine: StudyEngine = Depends(get_engine)):
    return await engine.submit_link(session_id, body.url)


# ---------- quiz ----------

@router.post("/{session_id}/quiz-type", response_model=SessionOut)
async def choose_quiz_type(session_id: str, body: QuizTypeIn, engine: StudyEngine = Depends(get_engine)):
    return await engine.choose_quiz_type(session_id, body.quizType)


@router.post("/{session_id}/answer", response_model=SessionOut)
async def submit_answer(session_id: str, body: AnswerIn, engine: StudyEngine = Depends(get_engine)):
    return await engine.submit_answer(session_id, body.answer, body.justification)


@router.post("/{session_id}/next", response_model=SessionOut)
async def next_question(session_id: str, engine: StudyEngine = Depends(get_engine)):
    return await engine.next_question(session_id)


@router.post("/{session_id}/retry", response_model=SessionOut)
async def retry(session_id: str, engine: StudyEngine = Depends(get_engine)):
    return await engine.retry(session_id)


@router.post("/{session_id}/cancel", response_model=SessionOut)
async def cancel(session_id: str, engine: StudyEngine = Depends(get_engine)):
    return engine.cancel(session_id)


# ---------- navigation ----------

@router.post("/{session_id}/back", response_model=SessionOut)
async def back(session_id: str, engine: StudyEngine = Depends(get_engine)):
    return await engine.back(session_id)


@router.post("/{session_id}/finish", response_model=SessionOut)
async def finish(session_id: str, engine: StudyEngine = Depends(get_engine)):
    return await engine.finish(session_id)


@router.post("/{session_id}/reset", response_model=SessionOut)
async def reset(session_id: str, engine: StudyEngine = Depends(get_engine)):
    return await engine.reset(session_id)
