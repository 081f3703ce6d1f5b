import logging
import time
from collections.abc import AsyncIterator
from functools import lru_cache

from openai import AsyncOpenAI, AsyncStream
from openai.types.chat import ChatCompletionChunk

from repocraft import config, prompts

logger = logging.getLogger(__name__)


class LLMError(Exception):
    pass


class LLMConfigError(LLMError):
    pass


@lru_cache
def _get_client(api_key: str, base_url: str) -> AsyncOpenAI:
    return AsyncOpenAI(api_key=api_key, base_url=base_url)


def _client_and_config() -> tuple[AsyncOpenAI, config.LLMConfig]:
    cfg = config.get_config().llm
    if not cfg.groq_api_key:
        raise LLMConfigError("GROQ_API_KEY is not set")
    return _get_client(cfg.groq_api_key, cfg.groq_base_url), cfg


def ensure_configured() -> None:
    """Raise LLMConfigError when no backend credential is set."""
    _client_and_config()


def _messages(prompt: str) -> list[dict[str, str]]:
    return [
        {"role": "system", "content": prompts.SYSTEM_PROMPT},
        {"role": "user", "content": prompt},
    ]


async def complete(prompt: str) -> str:
    client, cfg = _client_and_config()

    t0 = time.monotonic()
    try:
        response = await client.chat.completions.create(
            model=cfg.model_name,
            messages=_messages(prompt),
            timeout=cfg.request_timeout,
        )
    except Exception as exc:
        raise LLMError(f"LLM completion request failed: {exc}") from exc
    logger.info(f"Completion generated in {time.monotonic() - t0:.1f}s")

    if not response.choices:
        return ""
    return response.choices[0].message.content or ""


async def _relay(stream: AsyncStream[ChatCompletionChunk]) -> AsyncIterator[str]:
    t0 = time.monotonic()
    chunks = 0
    try:
        async for chunk in stream:
            delta = chunk.choices[0].delta.content if chunk.choices else None
            if not delta:
                continue
            chunks += 1
            yield delta
    except Exception:
        # Whatever already arrived has been delivered; end the stream here.
        logger.exception(f"LLM stream failed after {chunks} chunks")
    finally:
        await stream.close()
        logger.info(f"Stream finished: {chunks} chunks in {time.monotonic() - t0:.1f}s")


async def open_stream(prompt: str) -> AsyncIterator[str]:
    """Start a streaming completion and return an iterator over text deltas.

    Configuration and connection errors raise here, before any text is
    produced. Errors after that end the iterator instead of propagating.
    """
    client, cfg = _client_and_config()
    try:
        stream = await client.chat.completions.create(
            model=cfg.model_name,
            messages=_messages(prompt),
            stream=True,
            timeout=cfg.request_timeout,
        )
    except Exception as exc:
        raise LLMError(f"LLM stream request failed: {exc}") from exc
    return _relay(stream)
