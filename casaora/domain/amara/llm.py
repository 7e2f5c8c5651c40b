"""Structured output on top of the Anthropic Messages API"""

import json
import logging
from typing import Optional, TypeVar

from pydantic import BaseModel, ValidationError

from ...config import AMARA_MODEL, ANTHROPIC_API_KEY

logger = logging.getLogger(__name__)

T = TypeVar("T", bound=BaseModel)


class AmaraUnavailableError(Exception):
    """No Anthropic API key configured, or the API could not be reached"""


class StructuredLLM:
    """Ask Claude for JSON and validate it against a Pydantic model."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None, client=None):
        self.api_key = api_key or ANTHROPIC_API_KEY
        self.model = model or AMARA_MODEL
        self._client = client

    def is_available(self) -> bool:
        return bool(self._client or self.api_key)

    @property
    def client(self):
        if self._client is None:
            if not self.api_key:
                raise AmaraUnavailableError("ANTHROPIC_API_KEY not configured")
            from anthropic import Anthropic

            self._client = Anthropic(api_key=self.api_key)
        return self._client

    @staticmethod
    def _extract_json(text: str) -> dict:
        text = text.strip()
        if "```json" in text:
            start = text.find("```json") + 7
            text = text[start : text.find("```", start)].strip()
        elif "```" in text:
            start = text.find("```") + 3
            text = text[start : text.find("```", start)].strip()
        return json.loads(text)

    def generate(
        self,
        schema: type[T],
        system: str,
        user_message: str,
        max_tokens: int = 1024,
        temperature: float = 0.3,
    ) -> T:
        """
        Return `schema` filled in by the model.

        One retry is made with the validation error appended; a second failure
        propagates the ValidationError / JSONDecodeError.
        """
        from anthropic import APIError

        full_system = (
            f"{system}\n\n# OUTPUT FORMAT\n"
            "Respond only with valid JSON matching this schema:\n\n"
            f"```json\n{json.dumps(schema.model_json_schema(), indent=2)}\n```"
        )
        message = user_message
        last_error = None

        for attempt in range(2):
            if attempt and last_error:
                message = (
                    f"{user_message}\n\n# PREVIOUS ERROR\n\n"
                    f"Your previous response did not match the required schema. Error: {last_error}\n\n"
                    "Please fix the issues and provide a valid JSON response."
                )
            try:
                response = self.client.messages.create(
                    model=self.model,
                    max_tokens=max_tokens,
                    temperature=temperature,
                    system=full_system,
                    messages=[{"role": "user", "content": message}],
                )
            except APIError as e:
                logger.error(f"❌ Anthropic request failed: {e}")
                raise AmaraUnavailableError(str(e)) from e

            text = "".join(block.text for block in response.content if block.type == "text")
            try:
                return schema.model_validate(self._extract_json(text))
            except (json.JSONDecodeError, ValidationError) as e:
                last_error = str(e)
                logger.warning(f"⚠️ Structured output for {schema.__name__} invalid (attempt {attempt + 1})")
                if attempt == 1:
                    raise

        raise RuntimeError("Unexpected error in structured output loop")
