from __future__ import annotations

from typing import Any, List, Optional

from pydantic_ai import Agent
from pydantic_ai.messages import (
    ModelRequest,
    ModelResponse,
    SystemPromptPart,
    TextPart,
    UserPromptPart,
)
from pydantic_ai.models.openai import OpenAIChatModel
from pydantic_ai.providers.litellm import LiteLLMProvider
from pydantic_ai.settings import ModelSettings

from convoflow.adapters.base import LanguageModelClient, Turn
from convoflow.config import get_settings
from convoflow.constants.default_system_prompt import DefaultSystemPrompt
from convoflow.infra.logging_config import get_logger

logger = get_logger("llm")


def _history_to_message_list(history: List[Turn]) -> List[Any]:
    """Convert list of {role, content} to pydantic_ai ModelMessage list for message_history."""
    out: List[Any] = []
    for item in history:
        role = item.get("role", "user")
        content = (item.get("content") or "").strip()
        if not content:
            continue
        if role == "user":
            out.append(ModelRequest(parts=[UserPromptPart(content=content)]))
        elif role == "assistant":
            out.append(ModelResponse(parts=[TextPart(content=content)]))
        elif role == "system":
            out.append(ModelRequest(parts=[SystemPromptPart(content=content)]))
    return out


def _split_prompt(turns: List[Turn]) -> tuple[str, List[Turn]]:
    """The last user turn is the prompt; everything before it is history."""
    if turns and turns[-1].get("role") == "user":
        return (turns[-1].get("content") or "", list(turns[:-1]))
    return ("", list(turns))


def _message_list_with_system_prompt(
    system_prompt: str,
    history: List[Turn],
) -> List[Any]:
    """Build message_history with system prompt always first, then conversation history."""

    # https://github.com/pydantic/pydantic-ai/issues/4039
    # https://ai.pydantic.dev/agent/#system-prompts
    system_message = ModelRequest(parts=[SystemPromptPart(content=system_prompt)])
    return [system_message] + _history_to_message_list(history)


class LLMRunner(LanguageModelClient):
    def __init__(
        self,
        model_name: str,
        api_key: Optional[str] = None,
        api_base: Optional[str] = None,
        system_prompt: Optional[str] = None,
    ) -> None:
        provider = LiteLLMProvider(api_key=api_key, api_base=api_base)
        model = OpenAIChatModel(model_name, provider=provider)
        logger.info(f"Initializing LLM runner with model {model_name}")
        self._system_prompt = system_prompt or ""
        self._agent = Agent(model)

    async def infer(
        self, turns: List[Turn], max_tokens: int, temperature: float
    ) -> str:
        prompt, history = _split_prompt(turns)
        message_history = _message_list_with_system_prompt(
            self._system_prompt,
            history,
        )
        result = await self._agent.run(
            prompt,
            message_history=message_history,
            model_settings=ModelSettings(
                max_tokens=max_tokens,
                temperature=temperature,
            ),
        )
        return str(result.output)


def build_llm_runner_from_env() -> LLMRunner:
    settings = get_settings()
    logger.info(
        "LLM runner config: model=%s, api_key=%s, api_base=%s",
        settings.llm_model,
        "set" if settings.litellm_api_key else "not set",
        settings.litellm_api_base or "(default)",
    )
    if not settings.litellm_api_key:
        logger.warning(
            "LITELLM_API_KEY is not set; set it to a valid OpenAI or LiteLLM API key to avoid 401 errors."
        )

    return LLMRunner(
        model_name=settings.llm_model,
        api_key=settings.litellm_api_key,
        api_base=settings.litellm_api_base,
        system_prompt=settings.llm_system_prompt or DefaultSystemPrompt.CONTENT,
    )
