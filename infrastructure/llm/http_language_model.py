"""Language model client speaking to Ollama or OpenAI over HTTP."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass

import requests

from domain.interfaces import LanguageModel

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LanguageModelConfig:
    provider: str = "ollama"
    model: str = "llama3.1"
    temperature: float = 0.0
    ollama_url: str = "http://localhost:11434"
    openai_api_key: str | None = None
    openai_url: str = "https://api.openai.com/v1/chat/completions"
    system_prompt: str | None = None
    timeout: float = 60.0


class HttpLanguageModel(LanguageModel):
    """Blocking completion client; callers run it off the event loop."""

    def __init__(self, config: LanguageModelConfig | None = None) -> None:
        self._config = config or LanguageModelConfig()
        if self._config.provider not in {"ollama", "openai"}:
            raise ValueError(f"Unknown LLM provider '{self._config.provider}'")

    @property
    def model_id(self) -> str:
        return f"{self._config.provider}:{self._config.model}"

    def complete(self, prompt: str) -> str:
        logger.debug("Completion request to %s (%d chars)", self.model_id, len(prompt))
        if self._config.provider == "openai":
            return self._call_openai(prompt)
        return self._call_ollama(prompt)

    def _call_ollama(self, prompt: str) -> str:
        payload: dict[str, object] = {
            "model": self._config.model,
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self._config.temperature},
        }
        if self._config.system_prompt:
            payload["system"] = self._config.system_prompt
        response = requests.post(
            f"{self._config.ollama_url}/api/generate",
            json=payload,
            timeout=self._config.timeout,
        )
        response.raise_for_status()
        return response.json().get("response", "")

    def _call_openai(self, prompt: str) -> str:
        api_key = self._config.openai_api_key or os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("Missing OpenAI API key.")
        messages = []
        if self._config.system_prompt:
            messages.append({"role": "system", "content": self._config.system_prompt})
        messages.append({"role": "user", "content": prompt})
        response = requests.post(
            self._config.openai_url,
            headers={"Authorization": f"Bearer {api_key}"},
            json={
                "model": self._config.model,
                "messages": messages,
                "temperature": self._config.temperature,
            },
            timeout=self._config.timeout,
        )
        response.raise_for_status()
        payload = response.json()
        return payload["choices"][0]["message"]["content"] or ""


__all__ = ["HttpLanguageModel", "LanguageModelConfig"]
