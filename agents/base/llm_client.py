# =============================================================================
# TICKET AGENT SYSTEM - LLM CLIENT
# =============================================================================
"""
LLM Client Module

This module provides a unified interface for the language-model backends
(OpenAI, Anthropic, Ollama). It handles:
1. Provider selection based on configuration
2. API key management
3. Request/response formatting
4. Explicit, versioned model context
5. Token and latency tracking

The model context is an explicit object rather than hidden session state:
every call states which context it runs under, so the exact system-level
guidance behind a decision can be inspected afterwards.

Usage:
    client = LLMClient(provider="openai")
    context = ModelContext()
    context.update(ModelContext.ROLE, "You are an engineering manager.")
    answer = client.chat("Decompose this ticket...", context=context)
"""

import os
import logging
import threading
import time
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from orchestrator.errors import ExternalCallFailure


logger = logging.getLogger(__name__)


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class LLMResponse:
    """
    Standardized response from a provider.

    Attributes:
        content: Generated text content
        model: Model used for generation
        tokens_input: Input tokens used
        tokens_output: Output tokens generated
        finish_reason: Why generation stopped (stop, length, etc.)
    """
    content: str
    model: str
    tokens_input: int = 0
    tokens_output: int = 0
    finish_reason: str = "stop"

    @property
    def total_tokens(self) -> int:
        return self.tokens_input + self.tokens_output


@dataclass
class LLMMessage:
    """A message in a conversation (role is system, user or assistant)."""
    role: str
    content: str

    def to_dict(self) -> Dict[str, str]:
        return {"role": self.role, "content": self.content}


class ModelContext:
    """
    Versioned system-level context sent with every model call.

    The context is made of named slots, rendered in a fixed order as
    system messages. Replacing a slot bumps the version; a slot is
    replaced wholesale, never appended to.

    Slots:
        ROLE: Persona role instruction
        GUIDANCE: Project guidance digest
        REPOSITORY: Repository snapshot
    """

    ROLE = "role"
    GUIDANCE = "guidance"
    REPOSITORY = "repository"

    SLOT_ORDER = (ROLE, GUIDANCE, REPOSITORY)

    def __init__(self):
        self._slots: Dict[str, str] = {}
        self._version = 0
        self._lock = threading.Lock()

    @property
    def version(self) -> int:
        return self._version

    def update(self, slot: str, text: str) -> int:
        """
        Replace a slot's content.

        Returns:
            The new context version
        """
        if slot not in self.SLOT_ORDER:
            raise ValueError(f"Unknown context slot: {slot}")
        with self._lock:
            self._slots[slot] = text
            self._version += 1
            return self._version

    def get(self, slot: str) -> str:
        return self._slots.get(slot, "")

    def messages(self) -> List[LLMMessage]:
        """Render non-empty slots as system messages, in slot order."""
        with self._lock:
            return [
                LLMMessage("system", self._slots[slot])
                for slot in self.SLOT_ORDER
                if self._slots.get(slot)
            ]

    def snapshot(self) -> Dict[str, Any]:
        """Return a copy of the context, for audit and tests."""
        with self._lock:
            return {"version": self._version, "slots": dict(self._slots)}


# =============================================================================
# BASE LLM PROVIDER
# =============================================================================

class BaseLLMProvider(ABC):
    """
    Abstract base class for LLM providers.

    Each provider (Anthropic, OpenAI, Ollama) implements this interface.
    """

    @abstractmethod
    def complete(
        self,
        messages: List[LLMMessage],
        max_tokens: int = 4096,
        temperature: float = 0.7,
        **kwargs
    ) -> LLMResponse:
        """Generate a completion for the given conversation."""
        pass

    @abstractmethod
    def get_model_name(self) -> str:
        pass


# =============================================================================
# OPENAI PROVIDER
# =============================================================================

class OpenAIProvider(BaseLLMProvider):
    """OpenAI chat completions provider."""

    DEFAULT_MODEL = "gpt-4o"

    def __init__(self, api_key: str = None, model: str = None, base_url: str = None):
        self.api_key = api_key or os.environ.get("OPENAI_API_KEY")
        self.model = model or os.environ.get("LLM_MODEL", self.DEFAULT_MODEL)
        self.base_url = base_url

        if not self.api_key:
            raise ValueError("OpenAI API key not provided")

        import openai
        self.client = openai.OpenAI(api_key=self.api_key, base_url=self.base_url)

    def complete(
        self,
        messages: List[LLMMessage],
        max_tokens: int = 4096,
        temperature: float = 0.7,
        **kwargs
    ) -> LLMResponse:
        response = self.client.chat.completions.create(
            model=self.model,
            messages=[msg.to_dict() for msg in messages],
            max_tokens=max_tokens,
            temperature=temperature,
            **kwargs
        )

        choice = response.choices[0]
        return LLMResponse(
            content=choice.message.content or "",
            model=response.model,
            tokens_input=response.usage.prompt_tokens if response.usage else 0,
            tokens_output=response.usage.completion_tokens if response.usage else 0,
            finish_reason=choice.finish_reason or "stop",
        )

    def get_model_name(self) -> str:
        return self.model


# =============================================================================
# ANTHROPIC PROVIDER
# =============================================================================

class AnthropicProvider(BaseLLMProvider):
    """Anthropic messages API provider."""

    DEFAULT_MODEL = "claude-sonnet-4-20250514"

    # The messages API rejects a request with no user turn
    CONTEXT_ONLY_PROMPT = "Acknowledge the instructions above."

    def __init__(self, api_key: str = None, model: str = None, base_url: str = None):
        self.api_key = api_key or os.environ.get("ANTHROPIC_API_KEY")
        self.model = model or os.environ.get("LLM_MODEL", self.DEFAULT_MODEL)
        self.base_url = base_url

        if not self.api_key:
            raise ValueError("Anthropic API key not provided")

        import anthropic
        self.client = anthropic.Anthropic(api_key=self.api_key, base_url=self.base_url)

    def complete(
        self,
        messages: List[LLMMessage],
        max_tokens: int = 4096,
        temperature: float = 0.7,
        **kwargs
    ) -> LLMResponse:
        system_parts = [msg.content for msg in messages if msg.role == "system"]
        conversation = [msg.to_dict() for msg in messages if msg.role != "system"]
        if not conversation:
            conversation = [{"role": "user", "content": self.CONTEXT_ONLY_PROMPT}]

        create_kwargs = {
            "model": self.model,
            "max_tokens": max_tokens,
            "temperature": temperature,
            "messages": conversation,
        }
        if system_parts:
            create_kwargs["system"] = "\n\n".join(system_parts)

        response = self.client.messages.create(**create_kwargs)

        content = ""
        if response.content:
            content = response.content[0].text

        return LLMResponse(
            content=content,
            model=response.model,
            tokens_input=response.usage.input_tokens,
            tokens_output=response.usage.output_tokens,
            finish_reason=response.stop_reason or "stop",
        )

    def get_model_name(self) -> str:
        return self.model


# =============================================================================
# OLLAMA PROVIDER
# =============================================================================

class OllamaProvider(BaseLLMProvider):
    """
    Ollama local LLM provider. No API key required.
    """

    DEFAULT_MODEL = "llama3.2"
    DEFAULT_BASE_URL = "http://localhost:11434"

    def __init__(self, model: str = None, base_url: str = None, api_key: str = None):
        self.model = (
            model
            or os.environ.get("OLLAMA_MODEL")
            or os.environ.get("LLM_MODEL", self.DEFAULT_MODEL)
        )
        self.base_url = (
            base_url or os.environ.get("OLLAMA_BASE_URL", self.DEFAULT_BASE_URL)
        ).rstrip("/")

    def complete(
        self,
        messages: List[LLMMessage],
        max_tokens: int = 4096,
        temperature: float = 0.7,
        **kwargs
    ) -> LLMResponse:
        import requests

        payload = {
            "model": self.model,
            "messages": [msg.to_dict() for msg in messages],
            "stream": False,
            "options": {"temperature": temperature, "num_predict": max_tokens},
        }

        try:
            response = requests.post(
                f"{self.base_url}/api/chat",
                json=payload,
                timeout=kwargs.get("timeout", 300),
            )
            if response.status_code == 404:
                raise RuntimeError(f"Model '{self.model}' not found. Run: ollama pull {self.model}")
            response.raise_for_status()
        except requests.exceptions.ConnectionError:
            raise ConnectionError(
                f"Cannot connect to Ollama at {self.base_url}. "
                "Ensure Ollama is running: 'ollama serve'"
            )
        except requests.exceptions.RequestException as e:
            raise RuntimeError(f"Ollama request failed: {e}")

        result = response.json()
        content = result.get("message", {}).get("content", "")
        return LLMResponse(
            content=content,
            model=result.get("model", self.model),
            tokens_input=result.get("prompt_eval_count", 0),
            tokens_output=result.get("eval_count", len(content) // 4),
            finish_reason=result.get("done_reason") or "stop",
        )

    def get_model_name(self) -> str:
        return self.model


# =============================================================================
# LLM CLIENT (MAIN INTERFACE)
# =============================================================================

class LLMClient:
    """
    Unified language-model client.

    Two call shapes:
        chat(prompt): a single user turn
        chat_with_messages(messages): an ordered multi-role turn, used
            for system-level context injection

    Both prepend the system messages of the given ModelContext. Any
    provider failure is raised as ExternalCallFailure.
    """

    PROVIDERS = {
        "openai": OpenAIProvider,
        "anthropic": AnthropicProvider,
        "ollama": OllamaProvider,
    }

    def __init__(
        self,
        provider: str = None,
        model: str = None,
        api_key: str = None,
        max_tokens: int = 4096,
        temperature: float = 0.7,
        metrics=None,
        provider_instance: Optional[BaseLLMProvider] = None,
        **kwargs
    ):
        """
        Initialize LLM client.

        Args:
            provider: Provider name (openai, anthropic, ollama)
            model: Model to use (provider-specific)
            api_key: API key for provider
            max_tokens: Maximum tokens per completion
            temperature: Sampling temperature
            metrics: Optional MetricsCollector
            provider_instance: Pre-built provider (skips provider lookup)
            **kwargs: Additional provider-specific options
        """
        self.provider_name = provider or os.environ.get("LLM_PROVIDER", "openai")
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.metrics = metrics

        if provider_instance is not None:
            self._provider = provider_instance
        else:
            provider_class = self.PROVIDERS.get(self.provider_name.lower())
            if not provider_class:
                raise ValueError(f"Unknown LLM provider: {self.provider_name}")

            init_kwargs = {**kwargs}
            if model:
                init_kwargs["model"] = model
            if api_key:
                init_kwargs["api_key"] = api_key
            self._provider = provider_class(**init_kwargs)

    def chat(self, prompt: str, context: Optional[ModelContext] = None) -> str:
        """
        Send a single user prompt.

        Args:
            prompt: User prompt
            context: Context whose system messages precede the prompt

        Returns:
            Generated text
        """
        return self.chat_with_messages([LLMMessage("user", prompt)], context=context)

    def chat_with_messages(
        self,
        messages: List[LLMMessage],
        context: Optional[ModelContext] = None,
    ) -> str:
        """
        Send an ordered list of messages.

        Args:
            messages: Conversation messages
            context: Context whose system messages precede the messages

        Returns:
            Generated text
        """
        full_messages = (context.messages() if context is not None else []) + list(messages)
        start_time = time.time()

        try:
            response = self._provider.complete(
                messages=full_messages,
                max_tokens=self.max_tokens,
                temperature=self.temperature,
            )
        except Exception as e:
            logger.error(f"LLM call failed: {e}")
            raise ExternalCallFailure("llm.chat", e) from e

        duration = time.time() - start_time
        if self.metrics is not None:
            self.metrics.record_llm_call(
                response.model, response.tokens_input, response.tokens_output, duration
            )

        logger.debug(
            f"LLM call completed: {response.tokens_input}+{response.tokens_output} "
            f"tokens in {duration:.2f}s (context v{context.version if context else 0})"
        )
        return response.content

    def get_model(self) -> str:
        return self._provider.get_model_name()


def create_llm_client(config: Dict[str, Any], metrics=None) -> LLMClient:
    """
    Build an LLMClient from the `llm` configuration section.

    Args:
        config: llm section (provider, model, api_key, max_tokens, temperature)
        metrics: Optional MetricsCollector
    """
    kwargs = {}
    if config.get("base_url"):
        kwargs["base_url"] = config["base_url"]
    return LLMClient(
        provider=config.get("provider"),
        model=config.get("model"),
        api_key=config.get("api_key") or None,
        max_tokens=config.get("max_tokens", 4096),
        temperature=config.get("temperature", 0.7),
        metrics=metrics,
        **kwargs
    )
