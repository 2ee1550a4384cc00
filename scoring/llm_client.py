"""
Chat completion client used for review scoring.

The provider is picked from the model name:
- gpt-*, o1-*, o3-*   OpenAI
- claude-*            Anthropic
- deepseek-*          DeepSeek (OpenAI-compatible endpoint)

Keys come from OPENAI_API_KEY, ANTHROPIC_API_KEY and DEEPSEEK_API_KEY;
DEEPSEEK_BASE_URL overrides the DeepSeek endpoint.

When the provider for the requested model fails, the call moves on to the
providers in fallback_order (each with its default model), skipping any
without a key. Per-provider success and failure counts feed a health score.

    client = ChatClient(default_model='gpt-4o-mini', fallback_order=[LLMProvider.DEEPSEEK])
    text = client.complete(system_prompt, user_prompt, max_tokens=2500)
"""

import os
import logging
import threading
import time
from datetime import datetime
from typing import Any, Dict, List, Optional
from enum import Enum

from anthropic import Anthropic
from openai import OpenAI

from scoring.errors import AllProvidersFailedError

logger = logging.getLogger(__name__)

DEEPSEEK_DEFAULT_BASE_URL = "https://api.deepseek.com"


class LLMProvider(Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    DEEPSEEK = "deepseek"


# Environment variable holding each provider's key
API_KEY_ENV = {
    LLMProvider.OPENAI: 'OPENAI_API_KEY',
    LLMProvider.ANTHROPIC: 'ANTHROPIC_API_KEY',
    LLMProvider.DEEPSEEK: 'DEEPSEEK_API_KEY',
}

# Model used when a provider is reached through fallback
DEFAULT_MODELS = {
    LLMProvider.OPENAI: 'gpt-4o-mini',
    LLMProvider.ANTHROPIC: 'claude-3-5-haiku-20241022',
    LLMProvider.DEEPSEEK: 'deepseek-chat',
}

MODEL_PREFIXES = [
    ('claude-', LLMProvider.ANTHROPIC),
    ('deepseek-', LLMProvider.DEEPSEEK),
    ('gpt-', LLMProvider.OPENAI),
    ('o1-', LLMProvider.OPENAI),
    ('o3-', LLMProvider.OPENAI),
]

SLOW_RESPONSE_SECONDS = 30
VERY_SLOW_RESPONSE_SECONDS = 60


def parse_provider_list(raw: str) -> List[LLMProvider]:
    """'deepseek, openai' -> [DEEPSEEK, OPENAI]; unknown names are logged and dropped"""
    providers = []
    for name in (raw or '').split(','):
        name = name.strip().lower()
        if not name:
            continue
        try:
            provider = LLMProvider(name)
        except ValueError:
            logger.warning(f"Ignoring unknown LLM provider in fallback order: {name}")
            continue
        if provider not in providers:
            providers.append(provider)
    return providers


class ChatClient:
    """
    Sends one system + user prompt pair and returns the response text.

    SDK clients are built on first use, so a missing key only breaks the
    provider that needs it. ValueError is raised only when no provider in
    the chain has a key.
    """

    def __init__(self, default_model: str = 'gpt-4o-mini', temperature: float = 0.0,
                 timeout: float = 120.0, api_keys: Optional[Dict[LLMProvider, str]] = None,
                 fallback_order: Optional[List[LLMProvider]] = None):
        self.default_model = default_model
        self.temperature = temperature
        self.timeout = timeout
        self.fallback_order = list(fallback_order or [])
        self.deepseek_base_url = os.environ.get('DEEPSEEK_BASE_URL', DEEPSEEK_DEFAULT_BASE_URL)

        api_keys = api_keys or {}
        self._api_keys = {
            provider: api_keys.get(provider) or os.environ.get(env_var, '')
            for provider, env_var in API_KEY_ENV.items()
        }
        self._clients: Dict[LLMProvider, Any] = {}
        self._metrics: Dict[LLMProvider, Dict[str, Any]] = {p: _empty_metrics() for p in LLMProvider}
        self._lock = threading.Lock()

        configured = ", ".join(p.value for p, key in self._api_keys.items() if key) or "none"
        fallback = ", ".join(p.value for p in self.fallback_order) or "none"
        logger.info(f"ChatClient ready (default model {default_model}; keys configured: {configured}; "
                    f"fallback: {fallback})")

    def detect_provider(self, model: Optional[str] = None) -> LLMProvider:
        model = model or self.default_model
        for prefix, provider in MODEL_PREFIXES:
            if model.startswith(prefix):
                return provider
        return LLMProvider.OPENAI

    def is_available(self, provider: LLMProvider) -> bool:
        return bool(self._api_keys[provider])

    def _client_for(self, provider: LLMProvider) -> Any:
        with self._lock:
            if provider in self._clients:
                return self._clients[provider]

            key = self._api_keys[provider]
            if not key:
                raise ValueError(f"No API key for {provider.value}. Set {API_KEY_ENV[provider]}")

            if provider is LLMProvider.ANTHROPIC:
                client = Anthropic(api_key=key, timeout=self.timeout)
            elif provider is LLMProvider.DEEPSEEK:
                client = OpenAI(api_key=key, base_url=self.deepseek_base_url, timeout=self.timeout)
            else:
                client = OpenAI(api_key=key, timeout=self.timeout)
            self._clients[provider] = client
            return client

    def provider_chain(self, model: Optional[str] = None) -> List[tuple]:
        """(provider, model) pairs to try, requested model first"""
        model = model or self.default_model
        primary = self.detect_provider(model)
        chain = [(primary, model)]
        for provider in self.fallback_order:
            if provider is not primary and self.is_available(provider):
                chain.append((provider, DEFAULT_MODELS[provider]))
        return chain

    def chat(self, messages: List[Dict[str, str]], max_tokens: int = 4000,
             model: Optional[str] = None) -> Dict[str, Any]:
        """
        Chat completion over role/content messages.

        Returns {'content', 'provider', 'model', 'usage'}. Raises ValueError
        when no provider in the chain is configured and AllProvidersFailedError
        when every configured provider raised.
        """
        system_prompt = "\n\n".join(m['content'] for m in messages if m.get('role') == 'system')
        user_prompt = "\n\n".join(m['content'] for m in messages if m.get('role') != 'system')

        chain = [(p, m) for p, m in self.provider_chain(model) if self.is_available(p)]
        if not chain:
            primary = self.detect_provider(model)
            raise ValueError(f"No API key for {primary.value}. Set {API_KEY_ENV[primary]}")

        errors = []
        for provider, provider_model in chain:
            client = self._client_for(provider)
            started = time.monotonic()
            try:
                if provider is LLMProvider.ANTHROPIC:
                    text, usage = self._complete_anthropic(client, system_prompt, user_prompt,
                                                           provider_model, max_tokens)
                else:
                    text, usage = self._complete_openai(client, system_prompt, user_prompt,
                                                        provider_model, max_tokens)
            except Exception as e:
                logger.warning(f"Completion failed with {provider.value}/{provider_model}: {e}")
                self._track_failure(provider, str(e))
                errors.append(f"{provider.value}: {e}")
                continue

            self._track_success(provider, time.monotonic() - started)
            if provider is not chain[0][0]:
                logger.info(f"Completion served by fallback provider {provider.value}/{provider_model}")
            logger.debug(f"{provider.value}/{provider_model} usage: {usage}")
            return {'content': text or '', 'provider': provider.value, 'model': provider_model, 'usage': usage}

        logger.error(f"All LLM providers failed: {'; '.join(errors)}")
        raise AllProvidersFailedError(errors)

    def complete(self, system_prompt: str, user_prompt: str, max_tokens: int,
                 model: Optional[str] = None) -> str:
        """Raw completion text for one prompt pair; empty string if the model returned nothing"""
        messages = [{'role': 'user', 'content': user_prompt}]
        if system_prompt:
            messages.insert(0, {'role': 'system', 'content': system_prompt})
        return self.chat(messages, max_tokens=max_tokens, model=model)['content']

    def _complete_openai(self, client, system_prompt, user_prompt, model, max_tokens):
        messages = [{'role': 'user', 'content': user_prompt}]
        if system_prompt:
            messages.insert(0, {'role': 'system', 'content': system_prompt})
        response = client.chat.completions.create(
            model=model,
            messages=messages,
            max_tokens=max_tokens,
            temperature=self.temperature,
        )
        usage = getattr(response, 'usage', None)
        tokens = {'input': usage.prompt_tokens, 'output': usage.completion_tokens} if usage else {}
        return response.choices[0].message.content, tokens

    def _complete_anthropic(self, client, system_prompt, user_prompt, model, max_tokens):
        """Anthropic takes the system prompt as its own parameter"""
        params = dict(
            model=model,
            max_tokens=max_tokens,
            temperature=self.temperature,
            messages=[{'role': 'user', 'content': user_prompt or system_prompt}],
        )
        if system_prompt and user_prompt:
            params['system'] = system_prompt
        response = client.messages.create(**params)

        text = "".join(block.text for block in response.content if getattr(block, 'type', 'text') == 'text')
        usage = getattr(response, 'usage', None)
        tokens = {'input': usage.input_tokens, 'output': usage.output_tokens} if usage else {}
        return text, tokens

    def _track_success(self, provider: LLMProvider, duration: float) -> None:
        with self._lock:
            metrics = self._metrics[provider]
            metrics['success_count'] += 1
            metrics['total_duration'] += duration
            metrics['last_success'] = datetime.now().isoformat()

    def _track_failure(self, provider: LLMProvider, error: str) -> None:
        with self._lock:
            metrics = self._metrics[provider]
            metrics['failure_count'] += 1
            metrics['last_failure'] = datetime.now().isoformat()
            metrics['last_error'] = error

    def health_score(self, provider: LLMProvider) -> float:
        """Success rate (0-100), discounted for slow responses; 0 without a key"""
        if not self.is_available(provider):
            return 0.0
        with self._lock:
            metrics = dict(self._metrics[provider])
        total = metrics['success_count'] + metrics['failure_count']
        score = metrics['success_count'] / total * 100 if total else 100.0
        avg = metrics['total_duration'] / metrics['success_count'] if metrics['success_count'] else 0.0
        if avg > VERY_SLOW_RESPONSE_SECONDS:
            score *= 0.6
        elif avg > SLOW_RESPONSE_SECONDS:
            score *= 0.8
        return round(score, 2)

    def provider_metrics(self) -> Dict[str, Dict[str, Any]]:
        report = {}
        for provider in LLMProvider:
            with self._lock:
                metrics = dict(self._metrics[provider])
            total = metrics['success_count'] + metrics['failure_count']
            report[provider.value] = {
                'available': self.is_available(provider),
                'total_requests': total,
                'success_count': metrics['success_count'],
                'failure_count': metrics['failure_count'],
                'avg_response_time': (round(metrics['total_duration'] / metrics['success_count'], 2)
                                      if metrics['success_count'] else 0.0),
                'last_success': metrics['last_success'],
                'last_error': metrics['last_error'],
                'health_score': self.health_score(provider),
            }
        return report


def _empty_metrics() -> Dict[str, Any]:
    return {
        'success_count': 0,
        'failure_count': 0,
        'total_duration': 0.0,
        'last_success': None,
        'last_failure': None,
        'last_error': None,
    }
