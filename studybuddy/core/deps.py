from functools import lru_cache

from studybuddy.core.config import get_settings
from studybuddy.services.completion import build_completion_client
from studybuddy.services.extraction import build_extractor
from studybuddy.services.generator import QuestionGenerator
from studybuddy.services.intake import MaterialIntake
from studybuddy.services.study_engine import StudyEngine


def get_settings_dep():
    return get_settings()


@lru_cache
def get_engine() -> StudyEngine:
    """
    Fournit le moteur de sessions en dépendance (DI).
    Singleton : les sessions vivent en mémoire du process.
    """
    settings = get_settings()
    return StudyEngine(
        generator=QuestionGenerator(build_completion_client(settings)),
        intake=MaterialIntake(build_extractor(settings)),
        ttl_seconds=settings.SESSION_TTL_SECONDS,
        max_upload_mb=settings.MAX_UPLOAD_MB,
    )
