import logging
from typing import Optional

import httpx
from openai import AsyncOpenAI, OpenAIError

from studybuddy.core.config import Settings
from studybuddy.utils.abort import AbortSignal, race

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """Appel de complétion en échec (statut, JSON, réseau, config)."""


class CompletionClient:
    """
    Client du endpoint de complétion :
    POST {"message": str, "aiModel": str} -> {"response": str}
    """

    def __init__(
        self,
        url: str,
        ai_model: str = "smart",
        timeout: float = 60.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.url = url
        self.ai_model = ai_model
        self.timeout = timeout
        self._transport = transport

    async def _post(self, message: str) -> str:
        payload = {"message": message, "aiModel": self.ai_model}
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                r = await client.post(self.url, json=payload)
        except (httpx.HTTPError, httpx.InvalidURL, ValueError) as e:
            # URL mal formée : InvalidURL ou ValueError selon le point de rupture
            raise CompletionError(f"Endpoint de complétion injoignable: {e}") from e

        if not r.is_success:
            raise CompletionError(f"Complétion refusée (HTTP {r.status_code}).")
        try:
            data = r.json()
        except ValueError as e:
            raise CompletionError("Réponse de complétion illisible (JSON invalide).") from e
        text = data.get("response") if isinstance(data, dict) else None
        if not isinstance(text, str):
            raise CompletionError("Réponse de complétion sans champ 'response'.")
        return text

    async def complete(self, message: str, abort: Optional[AbortSignal] = None) -> str:
        return await race(self._post(message), abort)


class OpenAICompletionClient:
    """
    Même contrat (un seul message -> texte brut), servi directement par
    l'API OpenAI quand aucun COMPLETION_URL n'est configuré.
    """

    def __init__(self, api_key: str, model: str = "gpt-4o-mini", timeout: float = 60.0):
        self.model = model
        self._client = AsyncOpenAI(api_key=api_key, timeout=timeout)

    async def _create(self, message: str) -> str:
        try:
            comp = await self._client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": message}],
                temperature=0.4,
            )
        except OpenAIError as e:
            raise CompletionError(f"OpenAI error: {e}") from e
        text = comp.choices[0].message.content if comp.choices else None
        if not text:
            raise CompletionError("Réponse OpenAI vide.")
        return text.strip()

    async def complete(self, message: str, abort: Optional[AbortSignal] = None) -> str:
        return await race(self._create(message), abort)


class UnconfiguredCompletionClient:
    async def complete(self, message: str, abort: Optional[AbortSignal] = None) -> str:
        raise CompletionError(
            "Aucun backend de complétion configuré (COMPLETION_URL ou OPENAI_API_KEY)."
        )


def build_completion_client(settings: Settings):
    if settings.COMPLETION_URL:
        return CompletionClient(
            url=settings.COMPLETION_URL,
            ai_model=settings.AI_MODEL,
            timeout=settings.REQUEST_TIMEOUT_S,
        )
    if settings.OPENAI_API_KEY:
        return OpenAICompletionClient(
            api_key=settings.OPENAI_API_KEY,
            model=settings.OPENAI_MODEL,
            timeout=settings.REQUEST_TIMEOUT_S,
        )
    logger.warning("Ni COMPLETION_URL ni OPENAI_API_KEY : toute génération échouera.")
    return UnconfiguredCompletionClient()
