"""
LLM provider for answer generation and token counting.
"""

import logging
from abc import ABC, abstractmethod
from typing import Optional

import tiktoken
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_openai import ChatOpenAI

from ..config.query import LLMConfig
from ..models.schemas import GenerationOptions, LLMResponse, LLMUsage
from ..utils.rate_limiter import RetryPolicy

logger = logging.getLogger(__name__)


class LLMProvider(ABC):
    """Text generation plus the tokenizer used for context budgeting."""

    @abstractmethod
    async def generate(
        self,
        prompt: str,
        options: GenerationOptions,
        system_message: Optional[str] = None
    ) -> LLMResponse:
        ...

    @abstractmethod
    async def count_tokens(self, text: str) -> int:
        ...


def get_encoding(model_name: str):
    try:
        return tiktoken.encoding_for_model(model_name)
    except KeyError:
        return tiktoken.get_encoding("cl100k_base")


class OpenAIChatProvider(LLMProvider):
    """OpenAI chat models through langchain, tokens counted with tiktoken."""

    def __init__(self, config: Optional[LLMConfig] = None, retry_policy: Optional[RetryPolicy] = None):
        self.config = config or LLMConfig()
        self.retry_policy = retry_policy or RetryPolicy(self.config.rate_limit_config)
        self.llm = ChatOpenAI(
            model_name=self.config.model_name,
            openai_api_key=self.config.openai_api_key,
            temperature=self.config.temperature,
            max_retries=0
        )
        self.encoding = get_encoding(self.config.model_name)

    async def count_tokens(self, text: str) -> int:
        return len(self.encoding.encode(text or ""))

    async def _invoke(self, messages, options: GenerationOptions):
        llm = self.llm.bind(temperature=options.temperature, max_tokens=options.max_tokens)
        return await llm.ainvoke(messages)

    async def generate(
        self,
        prompt: str,
        options: GenerationOptions,
        system_message: Optional[str] = None
    ) -> LLMResponse:
        messages = []
        if system_message:
            messages.append(SystemMessage(content=system_message))
        messages.append(HumanMessage(content=prompt))

        response = await self.retry_policy.run(self._invoke, messages, options)
        content = response.content if isinstance(response.content, str) else str(response.content)

        usage_metadata = getattr(response, "usage_metadata", None)
        if usage_metadata:
            usage = LLMUsage(
                prompt_tokens=usage_metadata.get("input_tokens", 0),
                completion_tokens=usage_metadata.get("output_tokens", 0),
                total_tokens=usage_metadata.get("total_tokens", 0),
            )
        else:
            prompt_tokens = await self.count_tokens((system_message or "") + prompt)
            completion_tokens = await self.count_tokens(content)
            usage = LLMUsage(
                prompt_tokens=prompt_tokens,
                completion_tokens=completion_tokens,
                total_tokens=prompt_tokens + completion_tokens,
            )

        logger.info(f"Generated {usage.completion_tokens} tokens with {self.config.model_name}")
        return LLMResponse(text=content, usage=usage, model=self.config.model_name)
