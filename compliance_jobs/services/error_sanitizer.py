"""Redaction of secrets from error messages before they are stored or shown.

The regex pass always runs. When enabled, an LLM pass rewrites the already
redacted text into a short user-facing message; its output is redacted
again, and any LLM failure falls back to the regex result.
"""

import re
from typing import List, Optional, Pattern, Tuple

from compliance_jobs.core.config import SanitizerSettings, settings
from compliance_jobs.core.exceptions import AppError
from compliance_jobs.core.llm_client import OpenRouterClient
from compliance_jobs.utils.logging import get_logger

LOGGER = get_logger(__name__)

REDACTED = "[REDACTED]"
MAX_ERROR_LENGTH = 1000

_SECRET_KEYS = (
    r"api[_-]?key|access[_-]?token|refresh[_-]?token|id[_-]?token|auth[_-]?token"
    r"|secret[_-]?access[_-]?key|client[_-]?secret|private[_-]?key|password|passwd|pwd|secret|token"
)

# Order matters: structured patterns first, generic long tokens last.
_PATTERNS: List[Tuple[Pattern[str], str]] = [
    (
        re.compile(r"-----BEGIN [A-Z ]*PRIVATE KEY-----.*?-----END [A-Z ]*PRIVATE KEY-----", re.DOTALL),
        "[REDACTED PRIVATE KEY]",
    ),
    (re.compile(r"(?i)\b([a-z][a-z0-9+.\-]*://)[^/\s:@]+:[^/\s@]+@"), r"\1" + REDACTED + "@"),
    (
        re.compile(r"(?i)\b(" + _SECRET_KEYS + r")(\"?\s*[:=]\s*)([\"']?)[^\s\"',;&}]+\3"),
        r"\1\2\3" + REDACTED + r"\3",
    ),
    (re.compile(r"(?i)\bbearer\s+[A-Za-z0-9\-._~+/]+=*"), "Bearer " + REDACTED),
    (re.compile(r"\b(?:AKIA|ASIA)[0-9A-Z]{16}\b"), REDACTED),
    (re.compile(r"\b[A-Fa-f0-9]{32,}\b"), REDACTED),
    (re.compile(r"\b(?=[A-Za-z0-9_\-]*\d)[A-Za-z0-9+_\-]{40,}={0,2}"), REDACTED),
]

SANITIZER_INSTRUCTION = (
    "You rewrite error messages from automated compliance checks for end users. "
    "Keep the meaning and any resource names, remove credentials, tokens, keys, "
    "internal hostnames and stack traces. Reply with the rewritten message only."
)


def redact_secrets(text: Optional[str]) -> str:
    if not text:
        return ""
    for pattern, replacement in _PATTERNS:
        text = pattern.sub(replacement, text)
    return text


def _message_of(error: BaseException) -> str:
    if isinstance(error, AppError):
        return error.message
    return str(error) or error.__class__.__name__


def sanitize_error(error: BaseException, max_length: int = MAX_ERROR_LENGTH) -> str:
    """Regex-only sanitized message for an exception caught at a task boundary."""
    return redact_secrets(_message_of(error))[:max_length]


class ErrorSanitizer:
    """Regex redaction with an optional LLM rewrite pass."""

    def __init__(
        self,
        config: Optional[SanitizerSettings] = None,
        llm_client: Optional[OpenRouterClient] = None,
    ):
        self.config = config or settings.sanitizer
        self.llm_client = llm_client
        if self.llm_client is None and self.config.enabled and self.config.openrouter_api_key:
            self.llm_client = OpenRouterClient(
                api_key=self.config.openrouter_api_key,
                model=self.config.openrouter_model,
                base_url=self.config.openrouter_api_url,
                timeout=self.config.timeout,
            )

    @property
    def llm_enabled(self) -> bool:
        return self.config.enabled and self.llm_client is not None

    async def sanitize(self, text: Optional[str], max_length: int = MAX_ERROR_LENGTH) -> str:
        redacted = redact_secrets(text)[:max_length]
        if not redacted or not self.llm_enabled:
            return redacted

        try:
            rewritten = await self.llm_client.generate_content(
                redacted,
                system_instruction=SANITIZER_INSTRUCTION,
                max_tokens=300,
            )
        except AppError as e:
            LOGGER.warning(f"LLM error sanitization failed, using regex result: {e.message}")
            return redacted

        rewritten = redact_secrets(rewritten.strip())[:max_length]
        return rewritten or redacted
