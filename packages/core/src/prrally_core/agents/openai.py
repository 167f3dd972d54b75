from __future__ import annotations

try:
    from openai import AsyncOpenAI as _AsyncOpenAI
except ImportError:
    _AsyncOpenAI = None  # type: ignore[assignment,misc]

from prrally_core.agents.base import ChatAgent


class OpenAIAgent(ChatAgent):
    MODEL = "gpt-4o"
    TEMPERATURE = 0.2

    def __init__(self, api_key: str, model: str | None = None):
        if _AsyncOpenAI is None:
            raise ImportError("The 'openai' package is required for this agent. Install it with: pip install openai")
        super().__init__(model=model)
        self.client = _AsyncOpenAI(api_key=api_key)

    async def _call_api(self, system_prompt: str, messages: list[dict]) -> str:
        response = await self.client.chat.completions.create(
            model=self.model,
            messages=[{"role": "system", "content": system_prompt}, *messages],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
            response_format={"type": "json_object"},
        )
        return response.choices[0].message.content or ""
