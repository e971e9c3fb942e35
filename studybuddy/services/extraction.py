import asyncio
import logging
from typing import Optional

import httpx

from studybuddy.core.config import Settings
from studybuddy.utils.abort import AbortSignal, race
from studybuddy.utils.pdf_extract import extract_text_from_bytes

logger = logging.getLogger(__name__)


class ExtractionError(Exception):
    """Le texte d'un fichier binaire n'a pas pu être extrait."""


class ExtractionClient:
    """
    Client du endpoint d'extraction :
    POST multipart (champ 'file') -> {"content": str}
    """

    def __init__(
        self,
        url: str,
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._transport = transport

    async def _post(self, name: str, data: bytes, content_type: str) -> str:
        files = {"file": (name, data, content_type or "application/octet-stream")}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self.url, files=files)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            raise ExtractionError(f"Endpoint d'extraction injoignable: {e}") from e

        if not r.is_success:
            raise ExtractionError(f"Extraction refusée (HTTP {r.status_code}).")
        try:
            body = r.json()
        except ValueError as e:
            raise ExtractionError("Réponse d'extraction illisible (JSON invalide).") from e
        content = body.get("content") if isinstance(body, dict) else None
        if not isinstance(content, str):
            raise ExtractionError("Réponse d'extraction sans champ 'content'.")
        return content

    async def extract(
        self,
        name: str,
        data: bytes,
        content_type: str = "",
        abort: Optional[AbortSignal] = None,
    ) -> str:
        return await race(self._post(name, data, content_type), abort)


class LocalPdfExtractor:
    """
    Extraction locale (pypdf) utilisée quand EXTRACTION_URL est vide.
    Seuls les PDF sont pris en charge ; DOCX & co échouent.
    """

    async def extract(
        self,
        name: str,
        data: bytes,
        content_type: str = "",
        abort: Optional[AbortSignal] = None,
    ) -> str:
        is_pdf = name.lower().endswith(".pdf") or "pdf" in (content_type or "")
        if not is_pdf:
            raise ExtractionError(f"Pas d'extracteur local pour {name}.")
        try:
            return await race(asyncio.to_thread(extract_text_from_bytes, data), abort)
        except ValueError as e:
            raise ExtractionError(str(e)) from e


def build_extractor(settings: Settings):
    if settings.EXTRACTION_URL:
        return ExtractionClient(url=settings.EXTRACTION_URL, timeout=settings.REQUEST_TIMEOUT_S)
    logger.info("EXTRACTION_URL vide : extraction PDF locale via pypdf.")
    return LocalPdfExtractor()
