"""Summarization providers used to enrich record summaries."""

from __future__ import annotations

import json
import logging
import os
from dataclasses import replace
from enum import Enum
from json import JSONDecodeError
from typing import Any, Protocol

import boto3
from botocore.exceptions import BotoCoreError, ClientError
from openai import OpenAI, OpenAIError

from models import Record

# Defaults; build_provider() reads the matching environment variables at call
# time so values loaded from a .env file after import still apply.
OPENAI_MODEL = "gpt-4o-mini"
# Model id is fixed per provider family because each family has its own body schema.
BEDROCK_MODEL_ID = "us.amazon.nova-lite-v1:0"
AWS_REGION = "us-east-1"
MAX_OUTPUT_TOKENS = 150

SUMMARY_PROMPT = (
    "Please analyze and summarize the following research abstract into a three "
    "sentence summary for a research community newsletter. The summary must be "
    "concise, focused on what new things the research tackles, some of the "
    "technical details related to the research, and the key resulting findings "
    "of the research.\nAbstract: "
)

LOGGER = logging.getLogger(__name__)


class EnrichErrorKind(Enum):
    PROVIDER_REJECTED = "provider_rejected"
    MALFORMED_RESPONSE = "malformed_response"
    EMPTY_OUTPUT = "empty_output"
    TASK_FAILURE = "task_failure"


class EnrichError(RuntimeError):
    """A single record could not be enriched."""

    def __init__(self, kind: EnrichErrorKind, record_id: int, message: str) -> None:
        super().__init__(f"{kind.value} for record id={record_id}: {message}")
        self.kind = kind
        self.record_id = record_id


class SummaryProvider(Protocol):
    """Capability that replaces a record's summary with generated text."""

    def enrich(self, record: Record) -> Record:
        """Return a copy of ``record`` with a new summary, or raise EnrichError."""
        ...


class OpenAIChatProvider:
    """Chat-completion provider: system prompt plus the abstract as the user turn."""

    def __init__(
        self,
        client: OpenAI,
        model: str = OPENAI_MODEL,
        prompt: str = SUMMARY_PROMPT,
        max_tokens: int = MAX_OUTPUT_TOKENS,
    ) -> None:
        self._client = client
        self._model = model
        self._prompt = prompt
        self._max_tokens = max_tokens

    def enrich(self, record: Record) -> Record:
        try:
            response = self._client.chat.completions.create(
                model=self._model,
                max_tokens=self._max_tokens,
                messages=[
                    {"role": "system", "content": self._prompt},
                    {"role": "user", "content": record.summary},
                ],
            )
        except OpenAIError as exc:
            raise EnrichError(EnrichErrorKind.PROVIDER_REJECTED, record.id, str(exc)) from exc

        try:
            content = response.choices[0].message.content
        except (AttributeError, IndexError, TypeError) as exc:
            raise EnrichError(
                EnrichErrorKind.MALFORMED_RESPONSE, record.id, "no completion choice returned"
            ) from exc

        return _with_summary(record, content)


class BedrockInvokeProvider:
    """Invoke-model provider using the Nova messages-v1 body schema."""

    def __init__(
        self,
        client: Any,
        model_id: str = BEDROCK_MODEL_ID,
        prompt: str = SUMMARY_PROMPT,
    ) -> None:
        self._client = client
        self._model_id = model_id
        self._prompt = prompt

    def enrich(self, record: Record) -> Record:
        body = build_invoke_body(self._prompt, record.summary)
        try:
            response = self._client.invoke_model(
                modelId=self._model_id,
                contentType="application/json",
                accept="application/json",
                body=json.dumps(body),
            )
        except (BotoCoreError, ClientError) as exc:
            raise EnrichError(EnrichErrorKind.PROVIDER_REJECTED, record.id, str(exc)) from exc

        try:
            raw = response["body"].read()
        except (BotoCoreError, ClientError) as exc:
            raise EnrichError(EnrichErrorKind.PROVIDER_REJECTED, record.id, str(exc)) from exc
        except (KeyError, TypeError, AttributeError) as exc:
            raise EnrichError(
                EnrichErrorKind.MALFORMED_RESPONSE, record.id, f"invoke response has no readable body: {exc!r}"
            ) from exc

        return _with_summary(record, _extract_invoke_text(raw, record.id))


def build_invoke_body(prompt: str, text: str) -> dict[str, Any]:
    """Request body for the invoke endpoint; field names must match the model schema."""
    return {
        "system": [{"text": prompt}],
        "messages": [
            {"role": "user", "content": [{"text": text}]},
        ],
        "inferenceConfig": {
            "max_new_tokens": MAX_OUTPUT_TOKENS,
            "top_p": 0.9,
            "top_k": 20,
            "temperature": 0.5,
        },
    }


def _extract_invoke_text(raw: bytes | str, record_id: int) -> str:
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        payload = json.loads(raw)
        content = payload["output"]["message"]["content"]
    except (JSONDecodeError, KeyError, TypeError) as exc:
        raise EnrichError(
            EnrichErrorKind.MALFORMED_RESPONSE, record_id, f"unexpected invoke response: {exc}"
        ) from exc

    if not isinstance(content, list):
        raise EnrichError(EnrichErrorKind.MALFORMED_RESPONSE, record_id, "content is not a list")
    if not content:
        return ""

    first = content[0]
    if not isinstance(first, dict):
        raise EnrichError(EnrichErrorKind.MALFORMED_RESPONSE, record_id, "content block is not an object")
    text = first.get("text")
    if text is None:
        return ""
    if not isinstance(text, str):
        raise EnrichError(EnrichErrorKind.MALFORMED_RESPONSE, record_id, "content text is not a string")
    return text


def _with_summary(record: Record, text: str | None) -> Record:
    if text is not None and not isinstance(text, str):
        raise EnrichError(EnrichErrorKind.MALFORMED_RESPONSE, record.id, "completion text is not a string")
    if not text or not text.strip():
        raise EnrichError(EnrichErrorKind.EMPTY_OUTPUT, record.id, "provider returned empty text")
    return replace(record, summary=text)


def build_provider(name: str) -> SummaryProvider:
    """Construct a provider by name ("openai" or "bedrock") from the environment."""
    prompt = os.getenv("SUMMARY_PROMPT") or SUMMARY_PROMPT

    if name == "openai":
        api_key = os.getenv("OPENAI_API_KEY")
        if not api_key:
            raise RuntimeError("OPENAI_API_KEY environment variable is required")
        model = os.getenv("OPENAI_MODEL") or OPENAI_MODEL
        LOGGER.info("Using OpenAI chat provider model=%s", model)
        return OpenAIChatProvider(client=OpenAI(api_key=api_key), model=model, prompt=prompt)

    if name == "bedrock":
        model_id = os.getenv("BEDROCK_MODEL_ID") or BEDROCK_MODEL_ID
        region = os.getenv("AWS_REGION") or AWS_REGION
        LOGGER.info("Using Bedrock invoke provider model_id=%s region=%s", model_id, region)
        return BedrockInvokeProvider(
            client=boto3.client("bedrock-runtime", region_name=region),
            model_id=model_id,
            prompt=prompt,
        )

    raise ValueError(f"Unknown provider: {name!r}")
