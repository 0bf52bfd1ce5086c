from typing import Any, Dict, List, Optional

from compliance_jobs.core.exceptions import APIClientError
from compliance_jobs.core.http_client import BaseAPIClient
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)


class OpenRouterClient:
    """Chat-completion client for OpenRouter built on ``BaseAPIClient``."""

    def __init__(
        self,
        api_key: str,
        model: str,
        base_url: str,
        timeout: int = 30,
        max_retries: int = 2,
    ):
        self.model = model
        self.client = BaseAPIClient(
            base_url=base_url,
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
        )

    async def generate_content(
        self,
        contents: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.0,
        max_tokens: Optional[int] = None,
    ) -> str:
        """Generate a completion for a single user message.

        Raises:
            APIClientError: If the call fails or the response has no choices
        """
        messages: List[Dict[str, str]] = []
        if system_instruction:
            messages.append({"role": "system", "content": system_instruction})
        messages.append({"role": "user", "content": contents})

        payload: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": temperature,
        }
        if max_tokens is not None:
            payload["max_tokens"] = max_tokens

        response = await self.client.call_api(method="POST", payload=payload)

        choices = response.get("choices") or []
        if not choices:
            LOGGER.error("Unexpected OpenRouter response format", extra={"keys": list(response)})
            raise APIClientError("Invalid response format from OpenRouter")

        content = (choices[0].get("message") or {}).get("content") or ""
        if not content:
            LOGGER.warning("Empty response from OpenRouter")
        return content
