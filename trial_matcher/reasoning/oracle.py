"""Semantic oracle interface and the Claude-backed implementation.

The semantic match client only needs one capability: send a prompt, get text
back. Oracles signal failure with OracleTransportError (could not reach the
service), OracleAPIError (non-success status) or OracleResponseError
(unexpected payload).
"""
from typing import Optional, Protocol

import anthropic
import httpx

from trial_matcher.config.logging_config import get_logger
from trial_matcher.exceptions import (
    OracleAPIError,
    OracleResponseError,
    OracleTransportError,
)

logger = get_logger(__name__)

ANTHROPIC_API_VERSION = "2023-06-01"


class SemanticOracle(Protocol):
    """Anything that can answer a semantic matching prompt."""

    async def complete(
        self,
        prompt: str,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        ...


def _error_detail(exc: anthropic.APIStatusError) -> str:
    """Pull ``error.message`` out of a non-success response body."""
    body = exc.body
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
    return f"API request failed with status {exc.status_code}"


class AnthropicOracle:
    """
    Claude Messages API oracle.

    Posts the prompt as a single user message; the credential travels in the
    ``x-api-key`` header. SDK retries are disabled, callers decide whether to
    re-invoke.
    """

    def __init__(
        self,
        api_key: str,
        timeout: float = 60.0,
        http_client: Optional[httpx.AsyncClient] = None,
        base_url: Optional[str] = None,
        api_version: str = ANTHROPIC_API_VERSION,
    ):
        self._client = anthropic.AsyncAnthropic(
            api_key=api_key,
            base_url=base_url,
            timeout=timeout,
            max_retries=0,
            http_client=http_client,
            default_headers={"anthropic-version": api_version},
        )

    async def complete(
        self,
        prompt: str,
        model: str,
        max_tokens: int = 500,
        temperature: float = 0.3,
    ) -> str:
        try:
            message = await self._client.messages.create(
                model=model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[{"role": "user", "content": prompt}],
            )
        except anthropic.APIStatusError as e:
            detail = _error_detail(e)
            logger.warning("Oracle returned error status", status_code=e.status_code, error=detail)
            raise OracleAPIError(detail, status_code=e.status_code) from e
        except anthropic.APIConnectionError as e:
            logger.warning("Oracle unreachable", error=str(e))
            raise OracleTransportError(str(e)) from e
        except anthropic.APIError as e:
            logger.warning("Oracle request failed", error=str(e))
            raise OracleTransportError(str(e)) from e

        if not message.content:
            raise OracleResponseError("Empty content in oracle response")

        text = getattr(message.content[0], "text", None)
        if not isinstance(text, str):
            raise OracleResponseError("First content block has no text")
        return text

    async def close(self) -> None:
        await self._client.close()
