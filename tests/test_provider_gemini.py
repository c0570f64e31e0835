from __future__ import annotations

from pathlib import Path

import PIL.Image
import pytest

from clipdigest.config import AppConfig
from clipdigest.errors import AuthenticationError, ConfigError, RateLimitError, ServiceError
from clipdigest.providers import get_provider
from clipdigest.providers.gemini import GeminiProvider, translate_error


class _FakeTypes:
    class FileData:
        def __init__(self, file_uri: str, mime_type: str | None = None):
            self.file_uri = file_uri
            self.mime_type = mime_type

    class Part:
        def __init__(self, file_data=None, text=None):
            self.file_data = file_data
            self.text = text

    class Content:
        def __init__(self, *, parts):
            self.parts = parts

    class GenerateContentConfig:
        def __init__(self, **kwargs):
            self.kwargs = kwargs


class _State:
    def __init__(self, name: str) -> None:
        self.name = name


class _FakeFiles:
    def __init__(self, states: list[str]) -> None:
        self.states = list(states)
        self.upload_calls: list[str] = []
        self.get_calls: list[str] = []

    def _file(self, name: str):
        return type("Upload", (), {"name": name, "uri": f"files/{Path(name).name}", "mime_type": "audio/wav", "state": _State(self.states.pop(0))})

    def upload(self, *, file: str):
        self.upload_calls.append(file)
        return self._file(file)

    def get(self, *, name: str):
        self.get_calls.append(name)
        return self._file(name)


class _FakeModels:
    def __init__(self, error: Exception | None = None) -> None:
        self.calls: list[dict[str, object]] = []
        self.error = error

    def generate_content(self, *, model: str, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        if self.error is not None:
            raise self.error
        return type("Resp", (), {"text": "  stub response \n"})()


class _FakeClient:
    def __init__(self, states=("ACTIVE",), error: Exception | None = None) -> None:
        self.files = _FakeFiles(list(states))
        self.models = _FakeModels(error)


def _provider(client: _FakeClient) -> GeminiProvider:
    return GeminiProvider(
        api_key="dummy",
        model="text-model",
        vision_model="vision-model",
        transcription_model="audio-model",
        transcription_prompt="Transcribe this.",
        client=client,
        types_module=_FakeTypes(),
        poll_interval=0.1,
    )


def test_generate_text_passes_limits() -> None:
    client = _FakeClient()

    output = _provider(client).generate_text("Summarize", max_tokens=150, temperature=0.7)

    assert output == "stub response"
    call = client.models.calls[0]
    assert call["model"] == "text-model"
    assert call["contents"] == ["Summarize"]
    assert call["config"].kwargs == {"max_output_tokens": 150, "temperature": 0.7}


def test_describe_image_sends_loaded_image(tmp_path) -> None:
    still = tmp_path / "a-frame-001.jpg"
    PIL.Image.new("RGB", (4, 4)).save(still)
    client = _FakeClient()

    assert _provider(client).describe_image("Read it", still) == "stub response"
    call = client.models.calls[0]
    assert call["model"] == "vision-model"
    assert call["contents"][0] == "Read it"
    assert call["contents"][1].size == (4, 4)


def test_transcribe_waits_for_active_upload(tmp_path, monkeypatch) -> None:
    monkeypatch.setattr("clipdigest.providers.gemini.time.sleep", lambda _: None)
    audio = tmp_path / "a.wav"
    audio.write_bytes(b"RIFF")
    client = _FakeClient(states=("PROCESSING", "PROCESSING", "ACTIVE"))

    output = _provider(client).transcribe(audio)

    assert output == "stub response"
    assert client.files.upload_calls == [str(audio)]
    assert len(client.files.get_calls) == 2
    call = client.models.calls[0]
    assert call["model"] == "audio-model"
    parts = call["contents"].parts
    assert parts[0].file_data.file_uri == "files/a.wav"
    assert parts[1].text == "Transcribe this."
    assert call["config"].kwargs == {"temperature": 0.0}


def test_failed_upload_is_service_error(tmp_path) -> None:
    audio = tmp_path / "a.wav"
    audio.write_bytes(b"RIFF")

    with pytest.raises(ServiceError, match="FAILED"):
        _provider(_FakeClient(states=("FAILED",))).transcribe(audio)


class _ApiError(Exception):
    def __init__(self, code: int, message: str) -> None:
        super().__init__(message)
        self.code = code


def test_sdk_errors_are_translated() -> None:
    with pytest.raises(RateLimitError):
        _provider(_FakeClient(error=_ApiError(429, "RESOURCE_EXHAUSTED"))).generate_text("x")
    with pytest.raises(AuthenticationError):
        _provider(_FakeClient(error=_ApiError(403, "PERMISSION_DENIED"))).generate_text("x")


@pytest.mark.parametrize(
    ("exc", "expected"),
    [
        (_ApiError(401, "unauthenticated"), AuthenticationError),
        (RuntimeError("API key not valid. Please pass a valid API key."), AuthenticationError),
        (RuntimeError("Quota exceeded"), RateLimitError),
        (_ApiError(500, "internal"), ServiceError),
    ],
)
def test_translate_error(exc, expected) -> None:
    translated = translate_error(exc, "text generation")
    assert type(translated) is expected


def test_get_provider_requires_api_key() -> None:
    with pytest.raises(AuthenticationError):
        get_provider(AppConfig(api_key=None))


def test_get_provider_rejects_unknown_provider() -> None:
    with pytest.raises(ConfigError):
        get_provider(AppConfig(provider="openai", api_key="x"))
