from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

import ollama
from ollama import ResponseError

from .config import CONNECTION_ERROR_PREFIX, EMPTY_RESPONSE_ERROR, PlannerSettings

logger = logging.getLogger(__name__)

# Status codes worth asking again for.
TRANSIENT_STATUS = {408, 429, 500, 502, 503, 504}


class OllamaAsker:
    """
    Single-shot gateway to the model.

    Never raises for transport problems: every failure comes back as a response
    text starting with "Error", which is what the retry orchestrator classifies.
    """

    def __init__(
        self,
        model: str,
        *,
        system_prompt: Optional[str] = None,
        default_options: Optional[Mapping[str, Any]] = None,
        verbose: bool = False,
    ) -> None:
        self.model = model
        self.system_prompt = system_prompt
        self.default_options = dict(default_options or {})
        self.verbose = verbose

    @classmethod
    def from_settings(cls, settings: PlannerSettings, **kwargs: Any) -> "OllamaAsker":
        options = {"temperature": settings.temperature}
        return cls(settings.model, default_options=options, **kwargs)

    # -------------------------------------------------

    def ask(self, prompt: str) -> str:
        messages = self._build_messages(prompt)
        if self.verbose:
            logger.info("Requesting plan from %s (%s chars)", self.model, len(prompt))

        try:
            response = ollama.chat(model=self.model, messages=messages, options=self.default_options)
        except ResponseError as exc:
            status = getattr(exc, "status_code", None)
            logger.error("Error response from model API: %s - %s", status, exc.error)
            if status in TRANSIENT_STATUS:
                return f"{CONNECTION_ERROR_PREFIX} {status} {exc.error}"
            return f"Error from AI service ({status}): {exc.error}"
        except (ConnectionError, TimeoutError) as exc:
            logger.error("Request to model API failed: %s", exc)
            return f"{CONNECTION_ERROR_PREFIX} {exc}"

        content = self._extract_content(response).strip()
        if not content:
            return EMPTY_RESPONSE_ERROR

        logger.debug("Raw model response: %s", content)
        return content

    __call__ = ask

    # -------------------------------------------------

    def _build_messages(self, prompt: str) -> List[Dict[str, str]]:
        messages = []
        if self.system_prompt:
            messages.append({"role": "system", "content": self.system_prompt})
        messages.append({"role": "user", "content": prompt})
        return messages

    @staticmethod
    def _extract_content(response: Any) -> str:
        # ChatResponse and plain dicts both support item access
        try:
            content = response["message"]["content"]
        except (KeyError, TypeError):
            return ""
        return content or ""


__all__ = ["OllamaAsker", "TRANSIENT_STATUS"]
