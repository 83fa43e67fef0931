"""
AI Provider API Implementations

This module contains the HTTP calls for each supported backend:
- OpenAI-compatible chat completions (OpenAI, proxies, self-hosted gateways)
- Replicate predictions (generic model invocation)

Each function takes the resolved provider settings and the two prompts and
returns the raw text produced by the model. HTTP failures are translated into
the exception taxonomy in ai/exceptions.py.
"""

import time
from typing import Any, Dict, Optional

import httpx

from ai_translate.config import DEFAULT_OPENAI_API_URL, DEFAULT_REPLICATE_API_URL
from ai_translate.logger import get_logger
from ai_translate.ai.exceptions import (
    BackendAuthError,
    BackendError,
    BackendRequestError,
    BackendTimeoutError,
    BackendUnsupportedFeatureError,
    OutputMalformedError,
)

logger = get_logger(__name__)

REPLICATE_POLL_INTERVAL = 1.0
REPLICATE_TERMINAL_STATES = ("succeeded", "failed", "canceled")


def get_httpx_timeout(timeout_config: Any) -> httpx.Timeout:
    """
    Convert timeout configuration to httpx.Timeout object.

    Args:
        timeout_config: Either a number (read timeout) or a dict with
            connect, write, read, pool keys

    Returns:
        httpx.Timeout object
    """
    if isinstance(timeout_config, dict):
        return httpx.Timeout(
            connect=timeout_config.get('connect', 10.0),
            write=timeout_config.get('write', 60.0),
            read=timeout_config.get('read', 120.0),
            pool=timeout_config.get('pool', 10.0),
        )
    else:
        timeout_value = float(timeout_config) if timeout_config else 120.0
        return httpx.Timeout(
            connect=10.0,
            write=60.0,
            read=timeout_value,
            pool=10.0,
        )


def build_client(timeout_config: Any) -> httpx.Client:
    """Create the HTTP client used for one backend call."""
    return httpx.Client(timeout=get_httpx_timeout(timeout_config))


def get_error_text(response: httpx.Response) -> str:
    """Best-effort error message from an API error response."""
    try:
        error_json = response.json()
    except ValueError:
        return response.text[:500] if response.text else "No details"

    if isinstance(error_json, dict):
        error_detail = error_json.get("error", error_json.get("detail"))
        if isinstance(error_detail, dict):
            return str(error_detail.get("message", error_detail))
        if error_detail:
            return str(error_detail)
    return str(error_json)[:500]


def is_unsupported_response_format_error(status_code: int, message: str) -> bool:
    """A 400 complaining about the JSON response format option."""
    if status_code != 400:
        return False
    message = message.lower()
    return "response_format" in message or "json_object" in message or "json" in message


def handle_http_error(response: httpx.Response, provider: str, response_format_requested: bool = False):
    """Raise the matching backend exception for an unsuccessful response."""
    status_code = response.status_code
    error_text = get_error_text(response)
    details = {"provider": provider, "status": status_code}

    if status_code in (401, 403):
        raise BackendAuthError(
            f"{provider} authentication failed ({status_code}). Check the API key, "
            f"and whether an environment variable overrides it.",
            details=details,
            status=status_code,
        )
    if response_format_requested and is_unsupported_response_format_error(status_code, error_text):
        raise BackendUnsupportedFeatureError(
            f"{provider} does not support the JSON response format: {error_text}",
            details=details,
            status=status_code,
        )
    if status_code == 404:
        raise BackendError(
            f"{provider} API returned 404 (Not Found). The configured endpoint probably "
            f"does not implement this API: {error_text}",
            code="backend_endpoint_not_found",
            details=details,
            status=status_code,
        )
    if status_code == 429 or status_code >= 500:
        raise BackendRequestError(
            f"{provider} API error ({status_code}): {error_text}",
            details=details,
            status=status_code,
        )
    raise BackendError(
        f"{provider} API error ({status_code}): {error_text}",
        code="backend_bad_request",
        details=details,
        status=status_code,
    )


def resolve_chat_completions_url(api_url: Optional[str]) -> str:
    """Accept either a base URL (…/v1) or the full chat completions URL."""
    base = (api_url or DEFAULT_OPENAI_API_URL).strip().rstrip("/")
    if base.endswith("/chat/completions"):
        return base
    return f"{base}/chat/completions"


def call_openai_chat_completion(
    config: Dict[str, Any],
    system_prompt: str,
    user_prompt: str,
    use_response_format: bool = True,
) -> str:
    """
    Call an OpenAI-compatible chat completions API and return the message text.

    Args:
        config: api_key, api_url, model, timeout
        system_prompt: System message
        user_prompt: User message
        use_response_format: Ask for response_format={"type": "json_object"}
    """
    api_key = config.get('api_key')
    model = config.get('model')
    url = resolve_chat_completions_url(config.get('api_url'))

    if not api_key:
        raise BackendAuthError("OpenAI API key not configured", code="ai_config_missing")

    headers = {
        "Authorization": f"Bearer {api_key}",
        "Content-Type": "application/json"
    }

    body = {
        "model": model,
        "messages": [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ],
        "temperature": 0.2,
    }
    if use_response_format:
        body["response_format"] = {"type": "json_object"}

    logger.debug(f"  Calling OpenAI API (model: {model}, url: {url}, json mode: {use_response_format})...")

    try:
        with build_client(config.get('timeout')) as client:
            response = client.post(url, headers=headers, json=body)
    except httpx.TimeoutException as e:
        raise BackendTimeoutError(f"OpenAI API request timeout: {e}") from e
    except httpx.HTTPError as e:
        raise BackendRequestError(f"OpenAI API call failed: {e}") from e

    if response.is_error:
        handle_http_error(response, "OpenAI", response_format_requested=use_response_format)

    try:
        result = response.json()
    except ValueError as e:
        raise OutputMalformedError("OpenAI API returned a non-JSON body") from e

    choices = result.get('choices') if isinstance(result, dict) else None
    if not choices:
        raise OutputMalformedError("No choices in OpenAI response")

    message = choices[0].get('message') or {}
    content = message.get('content') or ''
    usage = result.get('usage') or {}
    logger.debug(
        f"  Received {len(content)} chars from OpenAI "
        f"(prompt tokens: {usage.get('prompt_tokens', 0)}, completion tokens: {usage.get('completion_tokens', 0)})"
    )
    return content.strip()


def resolve_replicate_request(api_url: Optional[str], model: str) -> tuple:
    """
    URL and body stub for a replicate model.

    "owner/name" runs the model's latest version through the models endpoint,
    "owner/name:version" pins a version through the predictions endpoint.
    """
    base = (api_url or DEFAULT_REPLICATE_API_URL).strip().rstrip("/")
    if ":" in model:
        _, version = model.split(":", 1)
        return f"{base}/predictions", {"version": version}
    return f"{base}/models/{model}/predictions", {}


def _replicate_output_text(output: Any) -> str:
    if isinstance(output, list):
        return "".join(str(part) for part in output if part is not None)
    if isinstance(output, str):
        return output
    raise OutputMalformedError("Replicate prediction returned no text output")


def call_replicate_prediction(config: Dict[str, Any], system_prompt: str, user_prompt: str) -> str:
    """
    Run a replicate prediction and return its concatenated text output.

    Uses synchronous mode (Prefer: wait) and polls the prediction until it
    reaches a terminal state or the configured timeout elapses.

    Args:
        config: api_token, model, api_url, timeout
    """
    api_token = config.get('api_token')
    model = (config.get('model') or '').strip()
    timeout = float(config.get('timeout') or 120)

    if not api_token:
        raise BackendAuthError("Replicate API token not configured", code="ai_config_missing")
    if not model:
        raise BackendError("Replicate model not configured", code="ai_config_missing")

    url, body = resolve_replicate_request(config.get('api_url'), model)
    body["input"] = {
        "prompt": user_prompt,
        "system_prompt": system_prompt,
    }
    headers = {
        "Authorization": f"Bearer {api_token}",
        "Content-Type": "application/json",
        "Prefer": "wait",
    }

    logger.debug(f"  Calling Replicate (model: {model}, url: {url})...")
    deadline = time.monotonic() + timeout

    try:
        with build_client(timeout) as client:
            response = client.post(url, headers=headers, json=body)
            if response.is_error:
                handle_http_error(response, "Replicate")
            prediction = response.json()

            while prediction.get('status') not in REPLICATE_TERMINAL_STATES:
                poll_url = (prediction.get('urls') or {}).get('get')
                if not poll_url:
                    raise OutputMalformedError("Replicate prediction has no status URL")
                if time.monotonic() >= deadline:
                    raise BackendTimeoutError(f"Replicate prediction did not finish within {timeout:.0f}s")
                time.sleep(REPLICATE_POLL_INTERVAL)
                response = client.get(poll_url, headers={"Authorization": f"Bearer {api_token}"})
                if response.is_error:
                    handle_http_error(response, "Replicate")
                prediction = response.json()
    except httpx.TimeoutException as e:
        raise BackendTimeoutError(f"Replicate API request timeout: {e}") from e
    except httpx.HTTPError as e:
        raise BackendRequestError(f"Replicate API call failed: {e}") from e
    except ValueError as e:
        raise OutputMalformedError("Replicate API returned a non-JSON body") from e

    status = prediction.get('status')
    if status != 'succeeded':
        raise BackendRequestError(
            f"Replicate prediction {status}: {prediction.get('error') or 'no details'}",
            details={"provider": "Replicate", "prediction_id": prediction.get('id')},
        )

    content = _replicate_output_text(prediction.get('output'))
    logger.debug(f"  Received {len(content)} chars from Replicate")
    return content.strip()
