"""DeepSeek provider: OpenAI-compatible chat completions only."""

from __future__ import annotations

from cinegen.schemas.generation import TextOptions
from cinegen.schemas.provider_config import Capability
from cinegen.services.providers.base import ProviderAdapter
from cinegen.services.resolver import ProviderRuntime


class DeepSeekAdapter(ProviderAdapter):
    name = "deepseek"
    capabilities = frozenset({Capability.LLM})
    default_models = {Capability.LLM: "deepseek-chat"}
    default_urls = {Capability.LLM: "https://api.deepseek.com/v1"}

    async def generate_text(self, runtime: ProviderRuntime, prompt: str, options: TextOptions) -> str:
        self._require(Capability.LLM)
        return await self._chat_completion(runtime, prompt, options)
