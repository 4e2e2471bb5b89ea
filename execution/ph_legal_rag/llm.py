"""
Text-generation adapter over an OpenAI-compatible chat completions endpoint.

Used by the optional title classifier, the LLM snippet path and the match
interpretation step. Every caller owns a deterministic fallback, so errors
are logged here and re-raised rather than hidden.
"""

import logging
from typing import Optional

from .config import SearchConfig

logger = logging.getLogger(__name__)


class LLMClient:
    """Lazily-created OpenAI SDK client pointed at ``config.llm_base_url``."""

    def __init__(
        self,
        config: Optional[SearchConfig] = None,
        default_model: Optional[str] = None,
        timeout: float = 30.0,
    ):
        self.config = config or SearchConfig()
        self.default_model = default_model or self.config.interpretation_model
        self.timeout = timeout
        self._client = None

    def _get_client(self):
        """Get or create the cached OpenAI client."""
        if self._client is None:
            from openai import OpenAI
            self._client = OpenAI(
                base_url=self.config.llm_base_url,
                api_key=self.config.llm_api_key,
                timeout=self.timeout,
            )
        return self._client

    def complete(
        self,
        system_prompt: str,
        user_prompt: str,
        model: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: int = 200,
    ) -> str:
        """
        Run one chat completion and return the stripped reply text.

        Args:
            system_prompt: Instructions for the model
            user_prompt: The request content
            model: Model name; defaults to the client's default model
            temperature: Sampling temperature
            max_tokens: Reply length cap

        Returns:
            Reply text ("" when the model sent no content)
        """
        client = self._get_client()
        model_name = model or self.default_model
        try:
            response = client.chat.completions.create(
                model=model_name,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except Exception as e:
            logger.warning(f"Completion with {model_name} failed: {e}")
            raise

        raw = response.choices[0].message.content if response.choices else None
        return raw.strip() if raw else ""
