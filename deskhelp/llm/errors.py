from __future__ import annotations

import asyncio

import openai


class LLMError(Exception):
    """Base error for LLM-related failures."""


class LLMRateLimitError(LLMError):
    pass


class LLMAuthError(LLMError):
    pass


class LLMNotFoundError(LLMError):
    pass


class LLMForbiddenError(LLMError):
    pass


class LLMConnectionError(LLMError):
    pass


class LLMEmptyResponseError(LLMError):
    """The endpoint answered, but without any usable text."""


def translate_openai_error(error: Exception) -> LLMError:
    """
    Map an exception raised by the openai SDK onto the LLMError hierarchy.
    Callers should raise the result `from` the original.
    """
    if isinstance(error, LLMError):
        return error
    s = str(error).split("\n")[0][:200]
    if isinstance(error, openai.RateLimitError):
        return LLMRateLimitError(s)
    if isinstance(error, openai.AuthenticationError):
        return LLMAuthError(s)
    if isinstance(error, openai.NotFoundError):
        return LLMNotFoundError(s)
    if isinstance(error, openai.PermissionDeniedError):
        return LLMForbiddenError(s)
    # APITimeoutError is a subclass of APIConnectionError.
    if isinstance(error, openai.APIConnectionError):
        return LLMConnectionError(s)
    return LLMError(f"{type(error).__name__}: {s}")


def parse_error_message(error: Exception) -> str:
    """
    Map raw exceptions into short, human-readable messages.
    Used for admin notifications and logs.
    """
    s, t = str(error), type(error).__name__
    if isinstance(error, LLMRateLimitError) or "429" in s or t == "RateLimitError":
        return "⚠️ Rate Limited: API provider is temporarily rate-limited. Please retry shortly."
    if isinstance(error, LLMAuthError) or "401" in s or "Unauthorized" in s:
        return "❌ Authentication Error: Invalid API key or credentials."
    if isinstance(error, LLMNotFoundError) or "404" in s or t == "NotFound":
        return "❌ Not Found: The requested model or resource was not found."
    if isinstance(error, LLMForbiddenError) or "403" in s or t == "Forbidden":
        return "❌ Forbidden: You don't have permission to access this resource."
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, LLMConnectionError)) or "Connection" in t or "ECONNREFUSED" in s or "ETIMEDOUT" in s:
        return "❌ Connection Error: Unable to reach the API provider in time."
    if isinstance(error, LLMEmptyResponseError):
        return "❌ Empty Response: The API provider returned no text."
    return f"❌ {t}: {s.split(chr(10))[0][:100]}"


def format_user_friendly_error(error: Exception) -> str:
    """
    Short, safe error message suitable for end users.
    """
    if isinstance(error, LLMRateLimitError):
        return "I'm getting a lot of questions right now, please try again in a moment."
    if isinstance(error, (TimeoutError, asyncio.TimeoutError, LLMConnectionError)):
        return "I couldn't reach the AI service in time, please try again later."
    if isinstance(error, (LLMAuthError, LLMForbiddenError, LLMNotFoundError)):
        return "The AI service is unavailable right now. Please let a server admin know."
    return "Sorry, something went wrong while generating a response. Please try again later."
