"""Client for the LLM classification service."""

from __future__ import annotations

import json
from typing import Any, Protocol

import openai
import structlog
from openai import AzureOpenAI, OpenAI

from ..config import ClassifierConfig

RawProbabilities = dict[str, Any]
RawBulkProbabilities = dict[str, Any]


class ClassifierClient(Protocol):
    """Opaque request/response classifier.

    Both calls return an empty mapping instead of raising when the service is
    not configured or answers with something that is not a JSON object.
    """

    def classify(self, system_prompt: str, user_prompt: str) -> RawProbabilities:
        ...

    def classify_bulk(self, system_prompt: str, user_prompt: str) -> RawBulkProbabilities:
        ...


class OpenAIClassifier:
    """Chat-completion classifier for OpenAI compatible and Azure OpenAI endpoints."""

    def __init__(
        self,
        config: ClassifierConfig,
        logger: structlog.BoundLogger | None = None,
        client: Any | None = None,
    ) -> None:
        self.config = config
        self.logger = logger or structlog.get_logger("lotscout.classifier")
        self._client = client

    @property
    def configured(self) -> bool:
        return self._client is not None or self.config.configured

    def classify(self, system_prompt: str, user_prompt: str) -> RawProbabilities:
        return self._complete(system_prompt, user_prompt)

    def classify_bulk(self, system_prompt: str, user_prompt: str) -> RawBulkProbabilities:
        payload = self._complete(system_prompt, user_prompt)
        return {str(key): value for key, value in payload.items()}

    # ------------------------------------------------------------------
    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client
        config = self.config
        if config.uses_azure:
            self._client = AzureOpenAI(
                api_key=config.api_key or None,
                azure_endpoint=config.azure_endpoint,
                api_version=config.azure_api_version,
                timeout=config.timeout_seconds,
            )
        else:
            kwargs: dict[str, Any] = {"api_key": config.api_key, "timeout": config.timeout_seconds}
            if config.base_url:
                kwargs["base_url"] = config.base_url
            self._client = OpenAI(**kwargs)
        return self._client

    def _model(self) -> str:
        if self.config.uses_azure:
            return self.config.azure_deployment
        return self.config.model

    def _complete(self, system_prompt: str, user_prompt: str) -> dict[str, Any]:
        if not self.configured:
            self.logger.warning("classifier_not_configured")
            return {}
        try:
            response = self._get_client().chat.completions.create(
                model=self._model(),
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                temperature=self.config.temperature,
                response_format={"type": "json_object"},
            )
        except openai.OpenAIError as exc:
            self.logger.error("classifier_call_failed", error=str(exc))
            return {}

        choices = getattr(response, "choices", None) or []
        content = choices[0].message.content if choices else None
        if not content:
            self.logger.warning("classifier_empty_response")
            return {}
        try:
            payload = json.loads(content)
        except json.JSONDecodeError as exc:
            self.logger.warning("classifier_malformed_response", error=str(exc))
            return {}
        if not isinstance(payload, dict):
            self.logger.warning("classifier_malformed_response", error="not a JSON object")
            return {}
        return payload


__all__ = [
    "ClassifierClient",
    "OpenAIClassifier",
    "RawBulkProbabilities",
    "RawProbabilities",
]
