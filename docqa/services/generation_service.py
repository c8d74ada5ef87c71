"""
Generation Service
Produces answer text from a grounded prompt using OpenAI chat completions.
"""
import structlog
from openai import AsyncOpenAI, OpenAIError

from docqa.errors import GenerationError

logger = structlog.get_logger()


class GenerationService:
    """Thin wrapper over the chat completions endpoint."""

    def __init__(
        self,
        client: AsyncOpenAI,
        model: str,
        temperature: float = 0.7,
        top_p: float = 0.95,
        max_tokens: int = 1024,
        timeout: float = 60.0,
    ):
        self.client = client
        self.model = model
        self.temperature = temperature
        self.top_p = top_p
        self.max_tokens = max_tokens
        self.timeout = timeout

    async def generate(self, prompt: str) -> str:
        """
        Generate text for a prompt.

        Returns:
            The generated text, possibly empty

        Raises:
            GenerationError: upstream failure or timeout
        """
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=self.temperature,
                top_p=self.top_p,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except OpenAIError as e:
            raise GenerationError(f"Generation request failed: {e}") from e

        if not response.choices:
            return ""

        content = response.choices[0].message.content or ""
        logger.info("Answer generated", model=self.model, length=len(content))
        return content.strip()
