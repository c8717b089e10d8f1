"""Generation backends used by the inline assistant."""
from __future__ import annotations

import json
from dataclasses import dataclass
from typing import Generator
from urllib import request
from urllib.error import HTTPError, URLError

from openai import OpenAI, OpenAIError

from marginalia.core.config import ConfigManager
from marginalia.core.errors import GenerationError
from marginalia.core.logging import get_logger


@dataclass
class AIResponse:
    text: str


class DummyBackend:
    """Offline backend that answers every prompt with a short echo."""

    def __init__(self, _config: ConfigManager | None) -> None:
        pass

    def send(self, prompt: str) -> AIResponse:
        last_line = prompt.strip().splitlines()[-1] if prompt.strip() else ""
        return AIResponse(text=f"Echo: {last_line}")


class HTTPBackend:
    def __init__(self, config: ConfigManager | None) -> None:
        self.config = config
        ai_cfg = config.get("ai", {}) if config else {}
        self._providers = ai_cfg.get("providers", {}) or {}
        self.endpoint = ai_cfg.get("endpoint", "http://localhost:11434")
        self.model = ai_cfg.get("model", "")
        self.api_key = ai_cfg.get("api_key")
        self.temperature = ai_cfg.get("temperature", 0.3)
        # None means no timeout; generation can take a while on local models.
        self.timeout = ai_cfg.get("timeout_seconds")

    def _headers(self) -> dict[str, str]:
        headers = {"Content-Type": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    def _post(self, url: str, payload: dict) -> dict:
        data = json.dumps(payload).encode("utf-8")
        req = request.Request(url, data=data, headers=self._headers())
        with request.urlopen(req, timeout=self.timeout) as resp:  # type: ignore[arg-type]
            return json.loads(resp.read().decode("utf-8"))


class OllamaBackend(HTTPBackend):
    def __init__(self, config: ConfigManager | None) -> None:
        super().__init__(config)
        ollama_cfg = self._providers.get("ollama", {}) or {}
        default_host = self.endpoint or "http://localhost:11434"
        self.host = (ollama_cfg.get("host") or default_host).rstrip("/")
        self.endpoint = self.host
        self.model = self.model or ollama_cfg.get("default_model", "")

    def send(self, prompt: str) -> AIResponse:
        body = {
            "model": self.model or "llama3",
            "prompt": prompt,
            "stream": False,
            "options": {"temperature": self.temperature},
        }
        response = self._post(f"{self.host}/api/generate", body)
        return AIResponse(text=response.get("response", ""))


class OpenAICompatibleBackend(HTTPBackend):
    def __init__(self, config: ConfigManager | None) -> None:
        super().__init__(config)
        ai_cfg = config.get("ai", {}) if config else {}
        openai_cfg = self._providers.get("openai", {}) or {}
        self.endpoint = (openai_cfg.get("base_url") or ai_cfg.get("openai_endpoint", "https://api.openai.com")).rstrip("/")
        self.api_key = openai_cfg.get("api_key") or self.api_key
        if openai_cfg.get("enabled_models") and not self.model:
            self.model = openai_cfg["enabled_models"][0]
        base_url = self.endpoint
        if not base_url.endswith("/v1"):
            base_url = f"{base_url}/v1"
        client_config: dict[str, str] = {"base_url": base_url}
        if self.api_key:
            client_config["api_key"] = self.api_key
        self.client = OpenAI(**client_config)

    def send(self, prompt: str) -> AIResponse:
        return AIResponse(text="".join(self.stream(prompt)))

    def stream(self, prompt: str) -> Generator[str, None, None]:
        stream = self.client.responses.create(
            model=self.model or "gpt-4o-mini",
            input=[{"role": "user", "content": [{"type": "input_text", "text": prompt}]}],
            temperature=self.temperature,
            stream=True,
        )
        for event in stream:
            payload = self._extract_text_payload(event)
            if payload:
                yield payload

    @staticmethod
    def _extract_text_payload(event: object) -> str | None:
        """Pull the text delta out of a Responses API streaming event."""

        event_type = getattr(event, "type", None)
        if event_type and not str(event_type).endswith(".delta"):
            return None

        def _extract(obj: object | None) -> str | None:
            if obj is None:
                return None
            if isinstance(obj, str):
                return obj
            if isinstance(obj, dict):
                for key in ("delta", "text"):
                    nested = _extract(obj.get(key))
                    if nested:
                        return nested
                return None
            for key in ("delta", "text"):
                nested = _extract(getattr(obj, key, None))
                if nested:
                    return nested
            return None

        return _extract(event)


class AIClient:
    """Chooses a backend from config and exposes ``generate(prompt) -> str``."""

    def __init__(self, config: ConfigManager | None) -> None:
        self.config = config
        self.logger = get_logger(__name__)
        ai_settings = config.get("ai", {}) if config else {}
        self.backend_type = ai_settings.get("backend", "dummy")
        self.backend = self._create_backend(self.backend_type)

    def _create_backend(self, backend: str):
        if backend == "ollama":
            instance = OllamaBackend(self.config)
        elif backend == "openai":
            instance = OpenAICompatibleBackend(self.config)
        else:
            instance = DummyBackend(self.config)
        setattr(instance, "name", backend)
        return instance

    def _friendly_http_error(self, status: int) -> str:
        endpoint = getattr(self.backend, "endpoint", "the configured AI endpoint")
        if status == 404:
            return f"AI backend at {endpoint} returned 404 (not found). Check the endpoint path and model name."
        if status == 401:
            return f"AI backend at {endpoint} returned 401 (unauthorized). Verify your API key."
        return f"AI backend at {endpoint} returned HTTP {status}."

    def generate(self, prompt: str) -> str:
        """Run one generation; raises :class:`GenerationError` on any backend failure."""

        try:
            text = self.backend.send(prompt).text
        except HTTPError as exc:
            message = self._friendly_http_error(getattr(exc, "code", 0))
            self.logger.warning("HTTP error from AI backend: %s", exc)
            raise GenerationError(message) from exc
        except TimeoutError as exc:
            endpoint = getattr(self.backend, "endpoint", "the configured AI endpoint")
            self.logger.warning("AI backend request to %s timed out", endpoint)
            raise GenerationError(f"AI backend request to {endpoint} timed out.") from exc
        except URLError as exc:
            endpoint = getattr(self.backend, "endpoint", "the configured AI endpoint")
            self.logger.warning("AI backend connection failed: %s", exc)
            raise GenerationError(f"AI backend unreachable at {endpoint}.") from exc
        except OpenAIError as exc:
            self.logger.warning("OpenAI backend failure: %s", exc)
            raise GenerationError(f"OpenAI request failed: {exc}") from exc
        except (ValueError, OSError) as exc:
            # Malformed JSON bodies and dropped connections.
            self.logger.warning("AI backend returned an unusable response: %s", exc)
            raise GenerationError(f"AI backend returned an unusable response: {exc}") from exc
        if not text.strip():
            raise GenerationError("AI backend returned an empty response.")
        return text
