import logging
from typing import Optional

import tiktoken
from openai import AsyncOpenAI
from openai.types.chat import (
    ChatCompletionSystemMessageParam,
    ChatCompletionUserMessageParam
)

from src.batch_translator import DEFAULT_SEPARATOR, EmptyResponseError
from src.logging_config import LOGGER_NAME

logger = logging.getLogger(LOGGER_NAME)


def count_tokens(text: str, model_name: str = 'gpt-3.5-turbo') -> int:
    """Count the number of tokens in ``text`` for ``model_name``.

    ``tiktoken.encoding_for_model`` may need to download model data, and it
    fails for model names it does not know (e.g. models behind a compatible
    endpoint). In that case the ``gpt2`` encoding that ships with ``tiktoken``
    is used, and as a last resort a whitespace split.
    """
    try:
        encoding = tiktoken.encoding_for_model(model_name)
    except Exception:
        try:
            encoding = tiktoken.get_encoding("gpt2")
        except Exception:
            return len(text.split())

    try:
        return len(encoding.encode(text))
    except Exception:
        return len(text.split())


def build_system_prompt(
        source_language: str,
        target_language: str,
        separator: str = DEFAULT_SEPARATOR,
        app_context: str = ""
) -> str:
    """Build the system instruction for a batch translation request."""
    prompt = (
        f"You have been assigned the task of translating strings for an app. "
        f"Translate the following texts from {source_language} to {target_language}, "
        f"while preserving any HTML code and the placeholders `{separator}`. "
        f"Do not translate URLs or other placeholders like `${{}}`. "
        f"Ensure that the translations sound natural and contextually appropriate for the app."
    )
    if app_context.strip():
        prompt += f"\n{app_context.strip()}"
    return prompt


class OpenAITranslator:
    """
    Translates combined payloads with the chat completions API.

    Instances are awaitable translate functions:
    ``await translator(text, source_language, target_language)``.
    API errors are logged and re-raised so the caller's retry policy applies.
    """

    def __init__(
            self,
            client: AsyncOpenAI,
            model_name: str,
            temperature: float = 0.8,
            max_tokens: int = 8000,
            separator: str = DEFAULT_SEPARATOR,
            app_context: str = "",
            timeout: float = 60.0
    ):
        self.client = client
        self.model_name = model_name
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.separator = separator
        self.app_context = app_context
        self.timeout = timeout

    async def __call__(self, text: str, source_language: str, target_language: str) -> str:
        payload_tokens = count_tokens(text, self.model_name)
        logger.debug(f"Sending {payload_tokens} tokens to '{self.model_name}'.")
        if payload_tokens > self.max_tokens:
            logger.warning(
                f"Payload of {payload_tokens} tokens exceeds max_tokens ({self.max_tokens}); "
                f"the response may be truncated. Consider lowering units_per_batch."
            )

        system_prompt = build_system_prompt(source_language, target_language, self.separator, self.app_context)
        try:
            response = await self.client.chat.completions.create(
                model=self.model_name,
                messages=[
                    ChatCompletionSystemMessageParam(role="system", content=system_prompt),
                    ChatCompletionUserMessageParam(role="user", content=text)
                ],
                temperature=self.temperature,
                max_tokens=self.max_tokens,
                timeout=self.timeout,
            )
        except Exception as api_exc:
            logger.error(f"Error translating \"{text}\": {api_exc.__class__.__name__} - {api_exc}")
            raise

        translated_text: Optional[str] = response.choices[0].message.content if response.choices else None
        if translated_text is None:
            raise EmptyResponseError(f"The model '{self.model_name}' returned no content.")

        logger.debug(f"\"{text}\" => \"{translated_text}\"")
        return translated_text
