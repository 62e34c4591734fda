"""
Tests for the model client, its retry policy and JSON extraction.
"""
from types import SimpleNamespace

import pytest

from gemini_client import (AIResponseError, AIServiceError, GeminiClient, RetryPolicy,
                           extract_json, is_overloaded, linear_backoff, mime_type_for)


class OverloadedError(Exception):
    code = 503


class BadRequestError(Exception):
    code = 400


class FakeModels:
    """Mimics google.genai Client.models: replays scripted results."""

    def __init__(self, results):
        self.results = list(results)
        self.calls = []

    def generate_content(self, model, contents):
        self.calls.append((model, contents))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return SimpleNamespace(text=result)


def fake_genai(*results):
    return SimpleNamespace(models=FakeModels(results))


class TestExtractJson:

    def test_plain_object(self):
        assert extract_json('{"isValid": true}') == {"isValid": True}

    def test_markdown_fenced_object(self):
        assert extract_json('```json\n{"totalPanels": 12}\n```') == {"totalPanels": 12}

    def test_object_surrounded_by_prose(self):
        text = 'Here is the analysis:\n{"a": {"b": 1}}\nLet me know if you need more.'
        assert extract_json(text) == {"a": {"b": 1}}

    def test_malformed_json(self):
        with pytest.raises(AIResponseError):
            extract_json('{"totalPanels": 12,')

    def test_non_object_json(self):
        with pytest.raises(AIResponseError):
            extract_json("[1, 2, 3]")

    def test_empty_text(self):
        with pytest.raises(AIResponseError):
            extract_json("")


class TestRetryPolicy:

    def test_overloaded_error_detection(self):
        assert is_overloaded(OverloadedError())
        assert not is_overloaded(BadRequestError())
        assert not is_overloaded(ValueError("boom"))

    def test_linear_backoff(self):
        assert [linear_backoff(a) for a in (1, 2, 3)] == [2.0, 4.0, 6.0]

    def test_retries_overloaded_then_succeeds(self):
        sleeps = []
        attempts = iter([OverloadedError(), "ok"])

        def operation():
            result = next(attempts)
            if isinstance(result, Exception):
                raise result
            return result

        assert RetryPolicy().execute(operation, sleep=sleeps.append) == "ok"
        assert sleeps == [2.0]

    def test_gives_up_after_max_attempts(self):
        sleeps = []
        calls = []

        def operation():
            calls.append(1)
            raise OverloadedError()

        with pytest.raises(OverloadedError):
            RetryPolicy(max_attempts=3).execute(operation, sleep=sleeps.append)
        assert len(calls) == 3
        assert sleeps == [2.0, 4.0]

    def test_other_errors_are_not_retried(self):
        sleeps = []
        calls = []

        def operation():
            calls.append(1)
            raise BadRequestError()

        with pytest.raises(BadRequestError):
            RetryPolicy().execute(operation, sleep=sleeps.append)
        assert len(calls) == 1
        assert sleeps == []


class TestGeminiClient:

    def test_requires_api_key_without_injected_client(self):
        with pytest.raises(ValueError):
            GeminiClient(api_key="")

    def test_generate_text(self):
        genai_client = fake_genai("Solar advice")
        client = GeminiClient(model="gemini-test", genai_client=genai_client)
        assert client.generate_text("hello") == "Solar advice"
        assert genai_client.models.calls == [("gemini-test", ["hello"])]

    def test_overloaded_call_is_retried(self):
        sleeps = []
        genai_client = fake_genai(OverloadedError(), "second time lucky")
        client = GeminiClient(genai_client=genai_client, sleep=sleeps.append)
        assert client.generate_text("hello") == "second time lucky"
        assert sleeps == [2.0]

    def test_empty_response_raises(self):
        client = GeminiClient(genai_client=fake_genai(""), sleep=lambda s: None)
        with pytest.raises(AIServiceError):
            client.generate_text("hello")

    def test_describe_image_sends_image_part_and_prompt(self):
        genai_client = fake_genai('{"isValid": true}')
        client = GeminiClient(genai_client=genai_client)
        assert client.describe_image(b"\x89PNG fake", "image/png", "Is this a roof?") == '{"isValid": true}'

        _, contents = genai_client.models.calls[0]
        assert len(contents) == 2
        assert contents[1] == "Is this a roof?"
        assert contents[0].inline_data.mime_type == "image/png"


@pytest.mark.parametrize("path,expected", [
    ("roof.JPG", "image/jpeg"),
    ("roof.jpeg", "image/jpeg"),
    ("roof.png", "image/png"),
    ("roof.webp", "image/webp"),
    ("roof", "image/jpeg"),
])
def test_mime_type_for(path, expected):
    assert mime_type_for(path) == expected
