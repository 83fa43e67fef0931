"""Tests for the AI backends (HTTP mocked with httpx.MockTransport)."""

import json

import httpx
import pytest

from ai_translate.ai import providers, service
from ai_translate.ai.exceptions import (
    BackendAuthError,
    BackendError,
    BackendRequestError,
    BackendTimeoutError,
    OutputMalformedError,
    PreconditionError,
)
from ai_translate.ai.service import (
    OpenAIBackend,
    ReplicateBackend,
    categorize_error,
    create_backend,
)
from ai_translate.translation.segments import Segment

BATCH = [Segment("0", ["title"], "Hello"), Segment("1", ["body"], "World")]


def chat_response(content):
    return httpx.Response(200, json={
        "choices": [{"message": {"content": content}}],
        "usage": {"prompt_tokens": 10, "completion_tokens": 5},
    })


def segments_json(pairs):
    return json.dumps({"segments": [{"id": i, "text": t} for i, t in pairs]})


@pytest.fixture
def requests_log():
    return []


@pytest.fixture
def mock_http(monkeypatch, requests_log):
    """Install a request handler for every backend HTTP call."""

    def install(handler):
        def recording_handler(request):
            requests_log.append(request)
            return handler(request)

        transport = httpx.MockTransport(recording_handler)
        monkeypatch.setattr(providers, "build_client", lambda timeout_config: httpx.Client(transport=transport))

    return install


@pytest.fixture(autouse=True)
def no_sleep(monkeypatch):
    monkeypatch.setattr(service.time, "sleep", lambda seconds: None)


class TestOpenAIBackend:
    def test_translate_batch(self, mock_http, requests_log):
        mock_http(lambda request: chat_response(segments_json([("0", "Hallo"), ("1", "Welt")])))
        backend = OpenAIBackend(api_key="sk-test")

        assert backend.translate_batch(BATCH, "de") == {"0": "Hallo", "1": "Welt"}

        request = requests_log[0]
        body = json.loads(request.content)
        assert str(request.url) == "https://api.openai.com/v1/chat/completions"
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert body["model"] == "gpt-4o-mini"
        assert body["response_format"] == {"type": "json_object"}
        assert body["temperature"] == 0.2
        assert "Target language (locale): de" in body["messages"][0]["content"]
        assert json.loads(body["messages"][1]["content"].split("\n", 1)[1]) == {
            "segments": [{"id": "0", "text": "Hello"}, {"id": "1", "text": "World"}],
        }

    def test_custom_prompt_is_included(self, mock_http, requests_log):
        mock_http(lambda request: chat_response(segments_json([("0", "Hallo")])))

        OpenAIBackend(api_key="sk-test").translate_batch(BATCH[:1], "de", "  Use the informal 'du'.  ")

        user_message = json.loads(requests_log[0].content)["messages"][1]["content"]
        assert user_message.startswith("Additional instructions:\nUse the informal 'du'.")

    @pytest.mark.parametrize("api_url,expected", [
        ("https://proxy.example.com/v1/", "https://proxy.example.com/v1/chat/completions"),
        ("https://proxy.example.com/v1/chat/completions", "https://proxy.example.com/v1/chat/completions"),
    ])
    def test_custom_endpoint(self, mock_http, requests_log, api_url, expected):
        mock_http(lambda request: chat_response(segments_json([("0", "Hallo")])))
        backend = OpenAIBackend(api_key="sk-test", api_url=api_url)

        backend.translate_batch(BATCH[:1], "de")

        assert str(requests_log[0].url) == expected
        assert backend.endpoint == api_url

    def test_fenced_output_is_accepted(self, mock_http):
        mock_http(lambda request: chat_response("```json\n" + segments_json([("0", "Hallo")]) + "\n```"))

        assert OpenAIBackend(api_key="sk-test").translate_batch(BATCH[:1], "de") == {"0": "Hallo"}

    def test_unsupported_response_format_falls_back(self, mock_http, requests_log):
        def handler(request):
            if "response_format" in json.loads(request.content):
                return httpx.Response(400, json={"error": {"message": "response_format json_object is not supported"}})
            return chat_response(segments_json([("0", "Hallo")]))

        mock_http(handler)

        assert OpenAIBackend(api_key="sk-test").translate_batch(BATCH[:1], "de") == {"0": "Hallo"}
        assert len(requests_log) == 2
        assert "response_format" not in json.loads(requests_log[1].content)

    def test_auth_error_is_not_retried(self, mock_http, requests_log):
        mock_http(lambda request: httpx.Response(401, json={"error": {"message": "Incorrect API key"}}))

        with pytest.raises(BackendAuthError) as exc_info:
            OpenAIBackend(api_key="sk-wrong").translate_batch(BATCH, "de")

        assert exc_info.value.code == "backend_auth"
        assert len(requests_log) == 1

    def test_not_found_endpoint(self, mock_http, requests_log):
        mock_http(lambda request: httpx.Response(404, text="Not Found"))

        with pytest.raises(BackendError) as exc_info:
            OpenAIBackend(api_key="sk-test").translate_batch(BATCH, "de")

        assert exc_info.value.code == "backend_endpoint_not_found"
        assert len(requests_log) == 1

    def test_server_error_is_retried(self, mock_http, requests_log):
        responses = iter([
            httpx.Response(503, text="overloaded"),
            chat_response(segments_json([("0", "Hallo")])),
        ])
        mock_http(lambda request: next(responses))

        assert OpenAIBackend(api_key="sk-test").translate_batch(BATCH[:1], "de") == {"0": "Hallo"}
        assert len(requests_log) == 2

    def test_rate_limit_exhausts_retries(self, mock_http, requests_log):
        mock_http(lambda request: httpx.Response(429, json={"error": {"message": "slow down"}}))

        with pytest.raises(BackendRequestError) as exc_info:
            OpenAIBackend(api_key="sk-test", max_retries=3).translate_batch(BATCH, "de")

        assert exc_info.value.status == 429
        assert exc_info.value.retryable is True
        assert len(requests_log) == 3

    def test_timeout(self, mock_http, requests_log):
        def handler(request):
            raise httpx.ReadTimeout("timed out", request=request)

        mock_http(handler)

        with pytest.raises(BackendTimeoutError):
            OpenAIBackend(api_key="sk-test", max_retries=2).translate_batch(BATCH, "de")
        assert len(requests_log) == 2

    def test_malformed_output_is_retried_once(self, mock_http, requests_log):
        mock_http(lambda request: chat_response("I cannot help with that."))

        with pytest.raises(OutputMalformedError):
            OpenAIBackend(api_key="sk-test", max_retries=3).translate_batch(BATCH, "de")
        assert len(requests_log) == 2

    def test_empty_batch_makes_no_request(self, mock_http, requests_log):
        mock_http(lambda request: chat_response("{}"))

        assert OpenAIBackend(api_key="sk-test").translate_batch([], "de") == {}
        assert requests_log == []


class TestReplicateBackend:
    def test_prediction_with_polling(self, mock_http, requests_log, monkeypatch):
        monkeypatch.setattr(providers.time, "sleep", lambda seconds: None)
        poll_url = "https://api.replicate.com/v1/predictions/p1"
        output = segments_json([("0", "Hallo"), ("1", "Welt")])

        def handler(request):
            if request.method == "POST":
                return httpx.Response(201, json={"id": "p1", "status": "processing", "urls": {"get": poll_url}})
            return httpx.Response(200, json={"id": "p1", "status": "succeeded", "output": [output[:10], output[10:]]})

        mock_http(handler)
        backend = ReplicateBackend(api_token="r8-test", model="meta/llama-3-70b-instruct")

        assert backend.translate_batch(BATCH, "de") == {"0": "Hallo", "1": "Welt"}

        create, poll = requests_log
        assert str(create.url) == "https://api.replicate.com/v1/models/meta/llama-3-70b-instruct/predictions"
        assert create.headers["Prefer"] == "wait"
        assert create.headers["Authorization"] == "Bearer r8-test"
        assert "Target language (locale): de" in json.loads(create.content)["input"]["system_prompt"]
        assert str(poll.url) == poll_url

    def test_pinned_version_uses_predictions_endpoint(self, mock_http, requests_log):
        mock_http(lambda request: httpx.Response(201, json={
            "id": "p2",
            "status": "succeeded",
            "output": segments_json([("0", "Hallo")]),
        }))

        ReplicateBackend(api_token="r8-test", model="owner/model:abc123").translate_batch(BATCH[:1], "de")

        request = requests_log[0]
        assert str(request.url) == "https://api.replicate.com/v1/predictions"
        assert json.loads(request.content)["version"] == "abc123"

    def test_failed_prediction(self, mock_http, requests_log):
        mock_http(lambda request: httpx.Response(201, json={"id": "p3", "status": "failed", "error": "CUDA OOM"}))

        with pytest.raises(BackendRequestError):
            ReplicateBackend(api_token="r8-test", model="owner/model", max_retries=1).translate_batch(BATCH, "de")
        assert len(requests_log) == 1

    def test_endpoint_is_empty(self):
        assert ReplicateBackend(api_token="r8-test", model="owner/model").endpoint == ""


class TestCreateBackend:
    def test_openai_backend_from_settings(self):
        backend = create_backend({
            "provider": "openai",
            "api_key": "sk-test",
            "model": "gpt-4o",
            "api_url": "https://proxy.example.com/v1",
            "translation": {"timeout": 30, "max_retries": 2},
        })

        assert isinstance(backend, OpenAIBackend)
        assert (backend.name, backend.model, backend.endpoint) == ("openai", "gpt-4o", "https://proxy.example.com/v1")
        assert (backend.timeout, backend.max_retries) == (30, 2)

    def test_replicate_backend_from_settings(self):
        backend = create_backend({
            "provider": "replicate",
            "replicate_api_token": "r8-test",
            "replicate_model": "owner/model",
        })

        assert isinstance(backend, ReplicateBackend)
        assert backend.model == "owner/model"

    @pytest.mark.parametrize("settings,missing", [
        ({"provider": "openai"}, "api_key"),
        ({"provider": "replicate", "replicate_model": "owner/model"}, "replicate_api_token"),
        ({"provider": "replicate", "replicate_api_token": "r8-test"}, "replicate_model"),
    ])
    def test_missing_configuration(self, settings, missing):
        with pytest.raises(PreconditionError) as exc_info:
            create_backend(settings)

        assert exc_info.value.code == "ai_config_missing"
        assert exc_info.value.details["missing_field"] == missing

    def test_unknown_provider(self):
        with pytest.raises(PreconditionError):
            create_backend({"provider": "deepl", "api_key": "x"})


class TestCategorizeError:
    def test_rate_limit_backs_off_longer(self):
        assert categorize_error(BackendRequestError("429", status=429), 0) == (True, 5)
        assert categorize_error(BackendRequestError("429", status=429), 5) == (True, 60)

    def test_server_errors_and_timeouts_are_retried(self):
        assert categorize_error(BackendRequestError("503", status=503), 1) == (True, 2)
        assert categorize_error(BackendTimeoutError("slow"), 0) == (True, 1)

    def test_non_retryable_errors(self):
        assert categorize_error(BackendAuthError("nope"), 0) == (False, 0)
        assert categorize_error(PreconditionError("bad"), 0) == (False, 0)
        assert categorize_error(OutputMalformedError("junk"), 1)[0] is False
