from __future__ import annotations

import logging
import mimetypes
import time
from pathlib import Path
from typing import Any, Callable, Optional, TypeVar

import httpx
import PIL.Image
from google import genai
from google.genai import types as genai_types

from ..constants import DEFAULT_MODEL, DEFAULT_TRANSCRIPTION_MODEL, DEFAULT_VISION_MODEL
from ..errors import AuthenticationError, RateLimitError, ServiceError
from ..prompts import TRANSCRIPTION_PROMPT

logger = logging.getLogger(__name__)

T = TypeVar("T")

_TIMEOUT_MS = 600_000  # the SDK interprets timeout in milliseconds


def _status_code(exc: BaseException) -> int | None:
    for candidate in (
        getattr(exc, "code", None),
        getattr(exc, "status_code", None),
        getattr(getattr(exc, "response", None), "status_code", None),
    ):
        if isinstance(candidate, int):
            return candidate
    return None


def translate_error(exc: BaseException, operation: str) -> Exception:
    status = _status_code(exc)
    if status in (401, 403):
        return AuthenticationError(f"Gemini rejected the API key during {operation}: {exc}")
    if status == 429:
        return RateLimitError(f"Gemini rate limit exceeded during {operation}: {exc}", status_code=status)
    message = str(exc).lower()
    if "api key not valid" in message or "permission denied" in message:
        return AuthenticationError(f"Gemini rejected the API key during {operation}: {exc}")
    if "resource exhausted" in message or "quota" in message or "rate limit" in message:
        return RateLimitError(f"Gemini rate limit exceeded during {operation}: {exc}", status_code=status)
    return ServiceError(f"Gemini {operation} failed: {exc}", status_code=status)


class GeminiProvider:
    """Text, vision and speech-to-text calls against google-genai.

    Every method performs exactly one attempt; retries and concurrency are the
    caller's concern.
    """

    def __init__(
        self,
        *,
        api_key: str,
        model: str = DEFAULT_MODEL,
        vision_model: str = DEFAULT_VISION_MODEL,
        transcription_model: str = DEFAULT_TRANSCRIPTION_MODEL,
        transcription_prompt: str = TRANSCRIPTION_PROMPT,
        client: Optional[object] = None,
        types_module: Optional[object] = None,
        poll_interval: float = 1.0,
        upload_timeout: float = 600.0,
    ) -> None:
        self._types = types_module or genai_types
        if client is not None:
            self._client = client
        else:
            self._client = genai.Client(
                api_key=api_key,
                http_options=self._types.HttpOptions(timeout=_TIMEOUT_MS),
            )
            api_client = getattr(self._client, "_api_client", None)
            if api_client and hasattr(api_client, "_httpx_client"):
                api_client._httpx_client.timeout = httpx.Timeout(timeout=600.0, connect=30.0)
        self._model = model
        self._vision_model = vision_model
        self._transcription_model = transcription_model
        self._transcription_prompt = transcription_prompt
        self._poll_interval = max(poll_interval, 0.1)
        self._upload_timeout = upload_timeout

    def _call(self, operation: str, func: Callable[[], T]) -> T:
        try:
            return func()
        except (AuthenticationError, ServiceError):
            raise
        except Exception as exc:  # noqa: BLE001
            raise translate_error(exc, operation) from exc

    @staticmethod
    def _text_of(response: Any) -> str:
        return (getattr(response, "text", "") or "").strip()

    def generate_text(self, prompt: str, *, max_tokens: int | None = None, temperature: float | None = None) -> str:
        config_kwargs: dict[str, object] = {}
        if max_tokens is not None:
            config_kwargs["max_output_tokens"] = max_tokens
        if temperature is not None:
            config_kwargs["temperature"] = temperature
        config = self._types.GenerateContentConfig(**config_kwargs)
        resp = self._call(
            "text generation",
            lambda: self._client.models.generate_content(model=self._model, contents=[prompt], config=config),
        )
        return self._text_of(resp)

    def describe_image(self, prompt: str, image_path: Path) -> str:
        def _invoke():
            with PIL.Image.open(image_path) as img:
                img.load()
                return self._client.models.generate_content(
                    model=self._vision_model,
                    contents=[prompt, img],
                    config=self._types.GenerateContentConfig(),
                )

        return self._text_of(self._call("image analysis", _invoke))

    def transcribe(self, audio_path: Path) -> str:
        audio_path = Path(audio_path)
        upload = self._call("audio upload", lambda: self._upload_and_wait(audio_path))
        file_uri = getattr(upload, "uri", None) or getattr(upload, "name", None)
        mime_type = getattr(upload, "mime_type", None) or mimetypes.guess_type(str(audio_path))[0] or "audio/wav"
        content = self._types.Content(
            parts=[
                self._types.Part(file_data=self._types.FileData(file_uri=file_uri, mime_type=mime_type)),
                self._types.Part(text=self._transcription_prompt),
            ]
        )
        resp = self._call(
            "transcription",
            lambda: self._client.models.generate_content(
                model=self._transcription_model,
                contents=content,
                config=self._types.GenerateContentConfig(temperature=0.0),
            ),
        )
        return self._text_of(resp)

    def _upload_and_wait(self, path: Path):
        result = self._client.files.upload(file=str(path))
        name = getattr(result, "name", None)
        deadline = time.monotonic() + self._upload_timeout
        state = self._state_name(result)
        while state == "PROCESSING" and name:
            if time.monotonic() > deadline:
                raise ServiceError(f"Timed out waiting for {name} to become ACTIVE")
            time.sleep(self._poll_interval)
            result = self._client.files.get(name=name)
            state = self._state_name(result)
        if state != "ACTIVE":
            raise ServiceError(f"File upload failed with state {state} for {path.name}")
        logger.debug("Uploaded %s as %s", path.name, name)
        return result

    @staticmethod
    def _state_name(file_obj: Any) -> str:
        state = getattr(file_obj, "state", None)
        if state is None:
            return "ACTIVE"
        return getattr(state, "name", None) or str(state)
