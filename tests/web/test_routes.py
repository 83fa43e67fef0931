"""Tests for the HTTP API (Flask test client, backend HTTP mocked)."""

import json
import time

import httpx
import pytest
from conftest import localized

from ai_translate.ai import providers, service
from ai_translate.web import create_app

API = "/api/ai-translate"
UID = "api::article.article"

ARTICLE_SCHEMA = localized({
    "attributes": {
        "title": localized({"type": "string"}),
        "body": localized({"type": "text"}),
        "cover": {"type": "media"},
        "seo": localized({"type": "component", "component": "shared.seo"}),
    }
})

SEO_COMPONENT = {"attributes": {"metaTitle": {"type": "string"}, "metaDescription": {"type": "text"}}}

SOURCE_DOCUMENT = {
    "title": "Hello",
    "body": "World",
    "cover": {"id": 7},
    "seo": {"id": 12, "metaTitle": "Meta", "metaDescription": "Description"},
}


def translate_handler(request):
    """Answer chat completion requests by upper-casing every segment."""
    body = json.loads(request.content)
    user_message = body["messages"][1]["content"]
    payload = json.loads(user_message.split("Content to translate:\n", 1)[1])
    content = json.dumps({"segments": [{"id": s["id"], "text": s["text"].upper()} for s in payload["segments"]]})
    return httpx.Response(200, json={"choices": [{"message": {"content": content}}]})


@pytest.fixture
def backend_requests():
    return []


@pytest.fixture
def use_backend(monkeypatch, backend_requests):
    def install(handler):
        def recording_handler(request):
            backend_requests.append(request)
            return handler(request)

        transport = httpx.MockTransport(recording_handler)
        monkeypatch.setattr(providers, "build_client", lambda timeout_config: httpx.Client(transport=transport))

    install(translate_handler)
    return install


@pytest.fixture
def client(tmp_db, monkeypatch):
    monkeypatch.setattr(service.time, "sleep", lambda seconds: None)
    app = create_app()
    app.config["TESTING"] = True
    return app.test_client()


@pytest.fixture
def seeded(client):
    client.put(f"/api/content/content-types/{UID}", json=ARTICLE_SCHEMA)
    client.put("/api/content/components/shared.seo", json=SEO_COMPONENT)
    client.put(f"/api/content/documents/{UID}/doc-1/en", json=SOURCE_DOCUMENT)
    return client


@pytest.fixture
def api_key(monkeypatch):
    monkeypatch.setenv("AI_TRANSLATE_API_KEY", "sk-test")


def translate_body(**overrides):
    body = {"uid": UID, "document_id": "doc-1", "source_locale": "en", "target_locale": "de"}
    body.update(overrides)
    return body


class TestHealth:
    @pytest.mark.parametrize("path", ["/health", f"{API}/health"])
    def test_health(self, client, path):
        response = client.get(path)

        assert response.status_code == 200
        assert response.get_json() == {"status": "ok"}

    def test_unknown_route_is_json(self, client):
        response = client.get("/api/does-not-exist")

        assert response.status_code == 404
        assert "error" in response.get_json()


class TestContentRoutes:
    def test_store_and_fetch_document(self, seeded):
        response = seeded.get(f"/api/content/documents/{UID}/doc-1/en")

        assert response.status_code == 200
        assert response.get_json()["document"] == SOURCE_DOCUMENT

    def test_missing_document(self, seeded):
        assert seeded.get(f"/api/content/documents/{UID}/doc-1/fr").status_code == 404

    def test_list_locales(self, seeded):
        seeded.put(f"/api/content/documents/{UID}/doc-1/de", json={"title": "Hallo"})

        response = seeded.get(f"/api/content/documents/{UID}/doc-1")

        assert response.get_json()["locales"] == ["de", "en"]

    def test_invalid_schema(self, client):
        response = client.put(f"/api/content/content-types/{UID}", json={"kind": "collectionType"})

        assert response.status_code == 400
        assert response.get_json()["code"] == "invalid_schema"

    def test_get_content_type(self, seeded):
        assert seeded.get(f"/api/content/content-types/{UID}").get_json()["schema"] == ARTICLE_SCHEMA
        assert seeded.get("/api/content/content-types/api::missing.missing").status_code == 404


class TestTranslateDocument:
    def test_translate_document(self, seeded, api_key, use_backend, backend_requests):
        response = seeded.post(f"{API}/translate-document", json=translate_body())

        assert response.status_code == 200
        assert response.get_json() == {
            "title": "HELLO",
            "body": "WORLD",
            "seo": {"metaTitle": "META", "metaDescription": "DESCRIPTION"},
            "cover": {"id": 7},
        }
        assert len(backend_requests) == 1

    def test_second_run_is_served_from_cache(self, seeded, api_key, use_backend, backend_requests):
        seeded.post(f"{API}/translate-document", json=translate_body())

        response = seeded.post(f"{API}/translate-document/progress", json=translate_body())

        body = response.get_json()
        assert body["done"] is True
        assert body["cache"] == {"hits": 4, "writes": 0}
        assert len(backend_requests) == 1

    def test_progress_with_chunk_budget(self, seeded, api_key, use_backend):
        seeded.put(f"{API}/settings", json={"translation": {"max_segments_per_chunk": 1}})

        first = seeded.post(f"{API}/translate-document/progress", json=translate_body(max_chunks=1)).get_json()
        second = seeded.post(f"{API}/translate-document/progress", json=translate_body(max_chunks=3)).get_json()

        assert first["done"] is False
        assert first["progress"] == {"total": 4, "translated": 1, "remaining": 3, "remaining_chunks": 3}
        # The test client serializes request bodies with sorted keys, so body is stored first
        assert list(seeded.get(f"/api/content/content-types/{UID}").get_json()["schema"]["attributes"])[0] == "body"
        assert first["document"]["body"] == "WORLD"
        assert first["document"]["title"] == "Hello"
        assert second["done"] is True
        assert second["progress"]["remaining_chunks"] == 0

    def test_admin_panel_progress_endpoint(self, seeded, api_key, use_backend):
        seeded.put(f"{API}/settings", json={"translation": {"max_segments_per_chunk": 1}})
        body = {
            "uid": UID,
            "documentId": "doc-1",
            "sourceLocale": "en",
            "targetLocale": "de",
            "includeJson": False,
            "maxChunks": 1,
        }

        response = seeded.post(f"{API}/translate-document-progress", json=body)

        payload = response.get_json()
        assert response.status_code == 200
        assert payload["data"]["body"] == "WORLD"
        assert payload["meta"] == {
            "done": False,
            "progress": {"totalSegments": 4, "translatedSegments": 1, "remainingSegments": 3, "remainingChunks": 3},
            "cache": {"hits": 0, "writes": 1},
        }

    def test_camel_case_keys_on_translate_document(self, seeded, api_key, use_backend):
        response = seeded.post(f"{API}/translate-document", json={
            "uid": UID, "documentId": "doc-1", "sourceLocale": "en", "targetLocale": "de",
        })

        assert response.status_code == 200
        assert response.get_json()["title"] == "HELLO"

    def test_invalid_max_chunks(self, seeded, api_key):
        response = seeded.post(f"{API}/translate-document/progress", json=translate_body(max_chunks="many"))

        assert response.status_code == 400

    def test_missing_api_key(self, seeded, use_backend):
        response = seeded.post(f"{API}/translate-document", json=translate_body())

        assert response.status_code == 400
        assert response.get_json()["code"] == "ai_config_missing"

    def test_equal_locales(self, seeded, api_key):
        response = seeded.post(f"{API}/translate-document", json=translate_body(target_locale="en"))

        assert response.status_code == 400
        assert response.get_json()["code"] == "precondition_failed"

    def test_missing_document(self, seeded, api_key):
        response = seeded.post(f"{API}/translate-document", json=translate_body(document_id="doc-404"))

        assert response.status_code == 404
        assert response.get_json()["code"] == "not_found"

    def test_backend_auth_failure(self, seeded, api_key, use_backend):
        use_backend(lambda request: httpx.Response(401, json={"error": {"message": "bad key"}}))

        response = seeded.post(f"{API}/translate-document", json=translate_body())

        assert response.status_code == 502
        assert response.get_json()["code"] == "backend_auth"

    def test_backend_server_error_is_retryable(self, seeded, api_key, use_backend, backend_requests):
        use_backend(lambda request: httpx.Response(500, text="upstream exploded"))

        response = seeded.post(f"{API}/translate-document", json=translate_body())

        body = response.get_json()
        assert response.status_code == 502
        assert body["retryable"] is True
        assert len(backend_requests) == 3

    def test_backend_timeout(self, seeded, api_key, use_backend):
        def handler(request):
            raise httpx.ConnectTimeout("no answer", request=request)

        use_backend(handler)

        response = seeded.post(f"{API}/translate-document", json=translate_body())

        assert response.status_code == 504
        assert response.get_json()["code"] == "backend_timeout"

    def test_malformed_output(self, seeded, api_key, use_backend):
        use_backend(lambda request: httpx.Response(200, json={"choices": [{"message": {"content": "nope"}}]}))

        response = seeded.post(f"{API}/translate-document", json=translate_body())

        assert response.status_code == 502
        assert response.get_json()["code"] == "output_malformed"


class TestSettingsRoutes:
    def test_get_settings_defaults(self, client):
        body = client.get(f"{API}/settings").get_json()

        assert body["effective"]["provider"] == "openai"
        assert body["effective"]["openai"]["model"] == "gpt-4o-mini"
        assert body["effective"]["openai"]["api_key_set"] is False

    def test_update_settings_masks_secrets(self, client):
        response = client.put(f"{API}/settings", json={"api_key": "sk-very-secret", "model": "gpt-4o"})

        assert response.status_code == 200
        assert "sk-very-secret" not in response.get_data(as_text=True)
        body = client.get(f"{API}/settings").get_json()
        assert body["stored"]["openai"]["api_key_set"] is True
        assert body["stored"]["openai"]["api_key_length"] == len("sk-very-secret")
        assert body["effective"]["openai"]["model"] == "gpt-4o"

    def test_absent_fields_are_kept_and_empty_clears(self, client):
        client.put(f"{API}/settings", json={"api_key": "sk-one", "model": "gpt-4o"})

        client.put(f"{API}/settings", json={"model": ""})

        stored = client.get(f"{API}/settings").get_json()["stored"]["openai"]
        assert stored["api_key_set"] is True
        assert stored["model"] == ""

    def test_env_wins_over_stored(self, client, monkeypatch):
        client.put(f"{API}/settings", json={"model": "gpt-4o"})
        monkeypatch.setenv("AI_TRANSLATE_MODEL", "gpt-4.1")

        effective = client.get(f"{API}/settings").get_json()["effective"]["openai"]

        assert effective["model"] == "gpt-4.1"
        assert effective["model_source"] == "env"

    @pytest.mark.parametrize("payload", [
        {"provider": "deepl"},
        {"log_mode": "verbose"},
        {"api_key": 123},
        {"translation": {"max_segments_per_chunk": 0}},
        {"translation": {"timeout": "slow"}},
        ["not", "an", "object"],
    ])
    def test_invalid_settings(self, client, payload):
        response = client.put(f"{API}/settings", json=payload)

        assert response.status_code == 400


class TestCacheRoutes:
    def test_clear_cache(self, seeded, api_key, use_backend, backend_requests):
        seeded.post(f"{API}/translate-document", json=translate_body())

        response = seeded.post(f"{API}/cache/clear", json={})
        body = response.get_json()

        assert response.status_code == 200
        assert body["cleared_buckets"] >= 1
        assert body["cleared_versions"] == 2

        seeded.post(f"{API}/translate-document", json=translate_body())
        assert len(backend_requests) == 2

    def test_clear_current_version_only(self, client):
        body = client.post(f"{API}/cache/clear", json={"include_previous_versions": False}).get_json()

        assert body == {"cleared_buckets": 0, "cleared_versions": 1}


class TestJobRoutes:
    def test_job_runs_to_completion(self, seeded, api_key, use_backend):
        response = seeded.post(f"{API}/jobs", json=translate_body())
        assert response.status_code == 202
        job_id = response.get_json()["job_id"]

        deadline = time.monotonic() + 10
        while True:
            job = seeded.get(f"{API}/jobs/{job_id}").get_json()
            if job["state"] not in ("pending", "running") or time.monotonic() > deadline:
                break
            time.sleep(0.05)

        assert job["state"] == "completed"
        assert job["done"] is True
        assert job["result"]["document"]["title"] == "HELLO"

    def test_missing_parameters(self, seeded, api_key):
        response = seeded.post(f"{API}/jobs", json={"uid": UID})

        assert response.status_code == 400
        assert response.get_json()["details"]["missing"] == ["document_id", "source_locale", "target_locale"]

    def test_job_requires_backend_configuration(self, seeded):
        response = seeded.post(f"{API}/jobs", json=translate_body())

        assert response.status_code == 400
        assert response.get_json()["code"] == "ai_config_missing"

    def test_unknown_job(self, client):
        assert client.get(f"{API}/jobs/unknown").status_code == 404
        assert client.post(f"{API}/jobs/unknown/cancel").status_code == 404
