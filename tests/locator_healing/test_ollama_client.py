"""Tests for the Ollama API client."""

import socket

import pytest
import requests
from unittest.mock import Mock, patch

from locator_healing.clients.ollama_client import OllamaClient
from locator_healing.core.errors import AIGenerationError


def refused_connection_error():
    """Wrap a refused socket the way requests and urllib3 do."""
    try:
        try:
            raise ConnectionRefusedError(111, "Connection refused")
        except ConnectionRefusedError as e:
            raise OSError("Failed to establish a new connection") from e
    except OSError as wrapped:
        return requests.exceptions.ConnectionError(wrapped)


def make_response(status_code=200, payload=None, reason="OK"):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    response.json.return_value = payload if payload is not None else {"response": "//button"}
    return response


@pytest.fixture
def client():
    return OllamaClient(
        base_url="http://ollama.test:11434/",
        model="test-model",
        timeout=10,
        max_retries=2,
        retry_delay_ms=0
    )


class TestGenerate:
    """Test text generation and retry policy."""

    @pytest.mark.asyncio
    async def test_generate_posts_payload(self, client):
        with patch("requests.post", return_value=make_response()) as mock_post:
            text = await client.generate("find the button", {"temperature": 0.3, "max_tokens": 100})

        assert text == "//button"
        url = mock_post.call_args.args[0]
        payload = mock_post.call_args.kwargs["json"]
        assert url == "http://ollama.test:11434/api/generate"
        assert payload["model"] == "test-model"
        assert payload["stream"] is False
        assert payload["options"]["temperature"] == 0.3
        assert payload["options"]["num_predict"] == 100
        assert payload["options"]["top_p"] == 0.9
        assert mock_post.call_args.kwargs["timeout"] == 10

    @pytest.mark.asyncio
    async def test_retries_server_errors(self, client):
        responses = [make_response(503, reason="Service Unavailable"), make_response(payload={"response": "ok"})]
        with patch("requests.post", side_effect=responses) as mock_post:
            text = await client.generate("prompt")

        assert text == "ok"
        assert mock_post.call_count == 2

    @pytest.mark.asyncio
    async def test_client_errors_fail_immediately(self, client):
        with patch("requests.post", return_value=make_response(400, reason="Bad Request")) as mock_post:
            with pytest.raises(AIGenerationError) as exc_info:
                await client.generate("prompt")

        assert exc_info.value.status_code == 400
        assert exc_info.value.retryable is False
        assert mock_post.call_count == 1

    @pytest.mark.asyncio
    async def test_connection_errors_exhaust_retries(self, client):
        with patch("requests.post", side_effect=refused_connection_error()) as mock_post:
            with pytest.raises(AIGenerationError, match="ollama serve"):
                await client.generate("prompt")

        assert mock_post.call_count == 3

    @pytest.mark.parametrize("error", [
        requests.exceptions.ConnectionError(socket.gaierror(-2, "Name or service not known")),
        requests.exceptions.SSLError("certificate verify failed"),
    ])
    @pytest.mark.asyncio
    async def test_dns_and_ssl_failures_are_not_retried(self, client, error):
        with patch("requests.post", side_effect=error) as mock_post:
            with pytest.raises(AIGenerationError) as exc_info:
                await client.generate("prompt")

        assert exc_info.value.retryable is False
        assert mock_post.call_count == 1

    @pytest.mark.asyncio
    async def test_missing_response_field(self, client):
        with patch("requests.post", return_value=make_response(payload={"done": True})):
            with pytest.raises(AIGenerationError):
                await client.generate("prompt")

    @pytest.mark.asyncio
    async def test_prompt_uses_healing_defaults(self, client):
        with patch("requests.post", return_value=make_response()) as mock_post:
            await client.prompt("what now?", system_prompt="You are an expert.")

        payload = mock_post.call_args.kwargs["json"]
        assert payload["prompt"] == "You are an expert.\nwhat now?"
        assert payload["options"]["temperature"] == 0.4
        assert payload["options"]["num_predict"] == 800


class TestHealth:
    """Test the health probe."""

    @pytest.mark.asyncio
    async def test_healthy(self, client):
        with patch("requests.get", return_value=make_response()) as mock_get:
            assert await client.health() is True

        assert mock_get.call_args.args[0] == "http://ollama.test:11434/api/tags"

    @pytest.mark.asyncio
    async def test_unreachable_never_raises(self, client):
        with patch("requests.get", side_effect=requests.exceptions.ConnectionError("refused")):
            assert await client.health() is False
