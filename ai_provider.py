"""
AI Provider — completion client used by the task pipeline.
Sends the task description to an OpenAI-compatible chat endpoint
(DeepSeek by default) and returns the generated text.

Failure policy is strict: any non-2xx response, transport error or
unusable body raises AIProcessingError. No placeholder text is ever
returned, so nothing synthetic reaches fulfillTask on chain.

Env vars (see service_config):
  AI_API_URL     - Full chat completions endpoint
  AI_API_KEY     - Key; falls back to DEEPSEEK_API_KEY, then OPENAI_API_KEY
  AI_MODEL_NAME  - Model identifier
"""

import logging
import requests

from service_errors import AIProcessingError

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """You are a helpful AI assistant that processes tasks for the N4Y LOGOS platform.
You need to analyze the task and provide a detailed solution or completion.

Guidelines:
- Provide actionable, specific results
- Include any relevant code, explanations, or data
- Format your response clearly with sections if needed
- Be comprehensive but concise"""


def build_user_prompt(description):
    return f"Please process this task: {description}\n\nProvide a complete solution or result."


def _parse_response(resp_json):
    """Extract text from AI response based on format."""
    # Style A: {"content": [{"text": "..."}]}
    if isinstance(resp_json.get("content"), list) and resp_json["content"]:
        return resp_json["content"][0].get("text")

    # Style B: {"choices": [{"message": {"content": "..."}}]}
    choices = resp_json.get("choices")
    if choices:
        return (choices[0].get("message") or {}).get("content")

    return None


class CompletionProvider:
    """Single-attempt chat completion client."""

    def __init__(self, settings, session=None):
        self.api_url = settings.ai_api_url
        self.api_key = settings.ai_api_key
        self.model = settings.ai_model
        self.max_tokens = settings.ai_max_tokens
        self.temperature = settings.ai_temperature
        self.auth_style = settings.ai_auth_style
        self.extra_headers = dict(settings.ai_extra_headers or {})
        self.timeout = settings.ai_timeout_seconds
        self.session = session or requests.Session()

    @property
    def configured(self):
        return bool(self.api_key and self.api_url)

    def _build_headers(self):
        """Build auth headers based on configured auth style."""
        headers = {"Content-Type": "application/json"}

        if self.auth_style == "header":
            headers["x-api-key"] = self.api_key
        else:
            headers["Authorization"] = f"Bearer {self.api_key}"

        headers.update(self.extra_headers)
        return headers

    def build_payload(self, description):
        return {
            "model": self.model,
            "messages": [
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": build_user_prompt(description)},
            ],
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
        }

    def generate(self, description):
        """
        Generate a result for a task description.
        Returns the first message content, unmodified.
        Raises AIProcessingError on any failure.
        """
        if not description or not description.strip():
            raise ValueError("description must be a non-empty string")

        if not self.configured:
            raise AIProcessingError(
                "AI API not configured: set AI_API_KEY, DEEPSEEK_API_KEY or OPENAI_API_KEY"
            )

        logger.info("completion request | url=%s model=%s", self.api_url, self.model)

        try:
            resp = self.session.post(
                self.api_url,
                headers=self._build_headers(),
                json=self.build_payload(description),
                timeout=self.timeout,
            )
        except requests.Timeout:
            logger.warning("completion request timed out | url=%s", self.api_url)
            raise AIProcessingError("AI API timeout")
        except requests.RequestException as e:
            logger.warning("completion request failed (transient) | error=%s", e)
            raise AIProcessingError(f"AI API request failed: {e}")

        if not 200 <= resp.status_code < 300:
            body = resp.text
            if 400 <= resp.status_code < 500:
                logger.error(
                    "completion rejected | status=%d body=%.200s | "
                    "check the API key, its scopes and AI_MODEL_NAME",
                    resp.status_code, body,
                )
            else:
                logger.warning("completion provider error (transient) | status=%d body=%.200s",
                               resp.status_code, body)
            raise AIProcessingError(
                f"AI API error: {resp.status_code} - {body[:500]}",
                status_code=resp.status_code,
                body=body,
            )

        try:
            text = _parse_response(resp.json())
        except (ValueError, AttributeError, IndexError, TypeError) as e:
            raise AIProcessingError(f"AI API returned malformed JSON: {e}",
                                    status_code=resp.status_code, body=resp.text)

        if not text:
            raise AIProcessingError("AI returned empty response",
                                    status_code=resp.status_code, body=resp.text)

        logger.info("completion received | chars=%d", len(text))
        return text
