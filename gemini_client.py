"""
Client for the external multimodal model (Google Gemini).

Single entry point for every model call: image description, image
classification and text chat. Calls run under an explicit retry policy that
only retries when the service reports it is overloaded.
"""
import json
import logging
import re
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

logger = logging.getLogger(__name__)

OVERLOADED_STATUS = 503


class AIServiceError(Exception):
    """The model could not be reached or returned nothing usable."""


class AIResponseError(AIServiceError):
    """The model answered, but the answer could not be parsed."""


def is_overloaded(error: Exception) -> bool:
    """True when the service signalled it is temporarily overloaded (HTTP 503)."""
    for attr in ("code", "status_code", "status"):
        if getattr(error, attr, None) == OVERLOADED_STATUS:
            return True
    return False


def linear_backoff(attempt: int) -> float:
    """2s, 4s, 6s..."""
    return attempt * 2.0


@dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 3
    backoff: Callable[[int], float] = field(default=linear_backoff)
    retryable: Callable[[Exception], bool] = field(default=is_overloaded)

    def execute(self, operation: Callable[[], str], sleep: Callable[[float], None] = time.sleep) -> str:
        """Run operation, retrying retryable errors with backoff. Re-raises the last error."""
        attempt = 1
        while True:
            try:
                return operation()
            except Exception as e:
                if attempt >= self.max_attempts or not self.retryable(e):
                    raise
                wait = self.backoff(attempt)
                logger.warning("Model overloaded on attempt %d/%d, retrying in %.1fs",
                               attempt, self.max_attempts, wait)
                sleep(wait)
                attempt += 1


def mime_type_for(path: str) -> str:
    extension = path.lower().rsplit(".", 1)[-1] if "." in path else ""
    if extension in ("jpg", "jpeg"):
        return "image/jpeg"
    if extension == "png":
        return "image/png"
    if extension == "webp":
        return "image/webp"
    return "image/jpeg"


def extract_json(text: str) -> dict:
    """Extract the JSON object from a model response, tolerating markdown fences."""
    if not text:
        raise AIResponseError("Empty response from model")

    match = re.search(r"\{.*\}", text, re.DOTALL)
    if match:
        cleaned = match.group(0)
    else:
        cleaned = re.sub(r"```json\s*", "", text)
        cleaned = re.sub(r"```\s*$", "", cleaned)
        cleaned = cleaned.strip("` \n\t")

    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as e:
        raise AIResponseError(f"Model returned malformed JSON: {e}") from e
    if not isinstance(data, dict):
        raise AIResponseError(f"Expected a JSON object, got {type(data).__name__}")
    return data


class GeminiClient:
    """Thin wrapper around google.genai with retry and timeout handling"""

    def __init__(self,
                 api_key: Optional[str] = None,
                 model: str = "gemini-2.0-flash",
                 timeout_seconds: float = 60.0,
                 retry_policy: Optional[RetryPolicy] = None,
                 sleep: Callable[[float], None] = time.sleep,
                 genai_client=None):
        """
        Args:
            api_key: Google API key (ignored when genai_client is given)
            model: Gemini model name
            timeout_seconds: Per-call HTTP timeout
            retry_policy: Retry policy for overloaded responses
            sleep: Sleep function used between retries
            genai_client: Pre-built google.genai.Client (or compatible object)
        """
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.retry_policy = retry_policy or RetryPolicy()
        self._sleep = sleep

        if genai_client is not None:
            self._client = genai_client
        else:
            if not api_key:
                raise ValueError("No GOOGLE_API_KEY configured for the Gemini client")
            from google import genai
            from google.genai import types

            self._client = genai.Client(
                api_key=api_key,
                http_options=types.HttpOptions(timeout=int(timeout_seconds * 1000)),
            )
        logger.info("Gemini client initialized with model %s", self.model)

    def _generate(self, contents) -> str:
        def call():
            response = self._client.models.generate_content(model=self.model, contents=contents)
            text = getattr(response, "text", None)
            if not text:
                raise AIServiceError("No response received from model")
            return text

        return self.retry_policy.execute(call, sleep=self._sleep)

    def describe_image(self, image_bytes: bytes, mime_type: str, prompt: str) -> str:
        """Send an image and a prompt, return the model's text answer."""
        from google.genai import types

        contents = [types.Part.from_bytes(data=image_bytes, mime_type=mime_type), prompt]
        started = time.monotonic()
        text = self._generate(contents)
        logger.info("Model image analysis completed in %.0f ms (%d chars)",
                    (time.monotonic() - started) * 1000, len(text))
        return text

    def generate_text(self, prompt: str) -> str:
        return self._generate([prompt])
