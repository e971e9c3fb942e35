import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from studybuddy.services.wizard import UploadedFile
from studybuddy.utils.abort import AbortSignal, RequestAborted
from studybuddy.utils.text_utils import decode_text

logger = logging.getLogger(__name__)

ACCEPTED_EXTENSIONS = (".pdf", ".docx", ".txt", ".md")
PLAIN_TEXT_EXTENSIONS = (".txt", ".md")

UNSUPPORTED_WARNING = (
    "{count} fichier(s) non pris en charge. Formats acceptés : PDF, DOCX, TXT, MD."
)


@dataclass
class IncomingFile:
    name: str
    content_type: str
    data: bytes


@dataclass
class IntakeResult:
    files: List[UploadedFile] = field(default_factory=list)
    rejected: int = 0

    @property
    def warning(self) -> Optional[str]:
        if not self.rejected:
            return None
        return UNSUPPORTED_WARNING.format(count=self.rejected)


def is_supported(name: str, content_type: str) -> bool:
    lowered = (name or "").lower()
    ctype = content_type or ""
    return lowered.endswith(ACCEPTED_EXTENSIONS) or "text" in ctype or "pdf" in ctype


def is_plain_text(name: str, content_type: str) -> bool:
    return "text" in (content_type or "") or (name or "").lower().endswith(PLAIN_TEXT_EXTENSIONS)


class MaterialIntake:
    """
    Transforme les fichiers reçus en UploadedFile (texte extrait).
    Traitement séquentiel, dans l'ordre d'arrivée.
    """

    def __init__(self, extractor) -> None:
        self._extractor = extractor

    async def process(
        self, incoming: Sequence[IncomingFile], abort: Optional[AbortSignal] = None
    ) -> IntakeResult:
        """
        Un échec d'extraction ne retire que le texte du fichier concerné.
        RequestAborted (annulation) interrompt tout le lot.
        """
        result = IntakeResult()
        for f in incoming:
            if not is_supported(f.name, f.content_type):
                result.rejected += 1
                continue
            result.files.append(await self._read(f, abort))

        if result.rejected:
            logger.info("%d fichier(s) refusé(s) (format non supporté)", result.rejected)
        return result

    async def _read(self, f: IncomingFile, abort: Optional[AbortSignal] = None) -> UploadedFile:
        if is_plain_text(f.name, f.content_type):
            text = decode_text(f.data)
            return UploadedFile(
                name=f.name,
                size_bytes=len(f.data),
                content_type=f.content_type,
                extracted_text=text,
            )

        try:
            text = await self._extractor.extract(f.name, f.data, f.content_type, abort=abort)
        except RequestAborted:
            raise
        except Exception as e:
            logger.warning("extraction failed for %s: %s", f.name, e)
            return UploadedFile(
                name=f.name,
                size_bytes=len(f.data),
                content_type=f.content_type,
                extracted=False,
            )
        return UploadedFile(
            name=f.name,
            size_bytes=len(f.data),
            content_type=f.content_type,
            extracted_text=text,
        )
