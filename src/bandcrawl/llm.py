"""LLM client for structured product extraction."""

from typing import Optional
import os
import time
import logging

logger = logging.getLogger(__name__)

NON_RETRYABLE_ERRORS = (
    'invalid api key',
    'authentication',
    'unauthorized',
    'invalid_api_key',
    'model not found',
    'invalid model',
)


def _is_permanent(error: Exception) -> bool:
    message = str(error).lower()
    return any(marker in message for marker in NON_RETRYABLE_ERRORS)


class LLMClient:
    """Client that asks an LLM for a single JSON object.

    Requests run at a low temperature so that repeated extraction of the
    same post gives the same answer.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        model: str = "gpt-4o-mini",
        provider: str = "openai",
        max_tokens: int = 4096,
        temperature: float = 0.3,
        max_retries: int = 3,
        retry_delay: float = 2.0,
    ):
        """Initialize the LLM client.

        Args:
            api_key: API key for the LLM provider
            model: Model name to use
            provider: LLM provider (openai or anthropic)
            max_tokens: Maximum tokens for LLM response (default: 4096)
            temperature: Sampling temperature (default: 0.3)
            max_retries: Retries after the first failed request (default: 3)
            retry_delay: Seconds before the first retry (default: 2.0)
        """
        self.api_key = api_key or os.getenv("LLM_API_KEY")
        self.model = model
        self.provider = provider
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        if not self.api_key:
            raise ValueError(
                "API key must be provided or set in LLM_API_KEY environment variable"
            )

    def complete_json(self, system_prompt: str, user_prompt: str) -> str:
        """Send a prompt pair and return the raw JSON text of the answer.

        Transient failures are retried up to ``max_retries`` times, doubling
        the wait each time. Auth and model errors are raised at once.
        """
        send = self._sender()
        delay = self.retry_delay
        for attempt in range(1, self.max_retries + 2):
            try:
                return send(system_prompt, user_prompt)
            except ImportError:
                raise
            except Exception as e:
                if _is_permanent(e) or attempt > self.max_retries:
                    logger.error(f"{self.provider} request failed on attempt {attempt}: {e}")
                    raise
                logger.warning(f"{self.provider} request failed ({e}), retry {attempt} in {delay:.0f}s")
                time.sleep(delay)
                delay *= 2

    def _sender(self):
        senders = {"openai": self._call_openai, "anthropic": self._call_anthropic}
        if self.provider not in senders:
            raise ValueError(f"Unsupported provider: {self.provider}")
        return senders[self.provider]

    def _call_openai(self, system_prompt: str, user_prompt: str) -> str:
        """Call OpenAI API in JSON mode.

        Returns:
            Response text
        """
        try:
            import openai
        except ImportError:
            raise ImportError(
                "openai package not installed. Install with: pip install openai"
            )

        client = openai.OpenAI(api_key=self.api_key)
        response = client.chat.completions.create(
            model=self.model,
            messages=[
                {"role": "system", "content": system_prompt},
                {"role": "user", "content": user_prompt},
            ],
            temperature=self.temperature,
            max_tokens=self.max_tokens,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""

    def _call_anthropic(self, system_prompt: str, user_prompt: str) -> str:
        """Call Anthropic API.

        Returns:
            Response text
        """
        try:
            import anthropic
        except ImportError:
            raise ImportError(
                "anthropic package not installed. Install with: pip install anthropic"
            )

        client = anthropic.Anthropic(api_key=self.api_key)
        response = client.messages.create(
            model=self.model,
            max_tokens=self.max_tokens,
            temperature=self.temperature,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
        )
        # Text blocks only; the prompt asks for a bare JSON object
        return "".join(getattr(block, "text", "") for block in response.content)


def create_llm_client(settings_obj=None) -> LLMClient:
    """Build an LLMClient from Settings (LLM_API_KEY / LLM_MODEL / LLM_PROVIDER)."""
    if settings_obj is None:
        from bandcrawl.config import settings as settings_obj
    return LLMClient(
        api_key=settings_obj.LLM_API_KEY,
        model=settings_obj.LLM_MODEL,
        provider=settings_obj.LLM_PROVIDER,
    )
