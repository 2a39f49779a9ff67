"""Decorators for standardizing tool error handling."""

import functools
import logging
from collections.abc import Callable
from typing import Any, TypeVar

import httpx

from .errors import MailError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Any])


def describe_http_error(error: httpx.HTTPStatusError) -> str:
    """Pull the API's own error message out of an HTTP error response, if any."""
    try:
        payload = error.response.json()
    except ValueError:
        return str(error)

    detail = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(detail, dict) and detail.get("message"):
        return str(detail["message"])
    if isinstance(detail, str):
        description = payload.get("error_description")
        return f"{detail}: {description}" if description else detail
    return str(error)


def handle_tool_errors(func: F) -> F:
    """Standardize error handling for async tool functions.

    Catches common exceptions and returns consistent error format:
    {"status": "error", "message": "...", "error_type": "..."}

    On success, adds "status": "success" to the result if not already present.

    Example:
        @handle_tool_errors
        async def my_tool(facade, account: str | None = None) -> dict[str, Any]:
            # If this raises, caller gets {"status": "error", "message": "...", ...}
            return await facade.list_folders(account)
    """

    @functools.wraps(func)
    async def wrapper(*args: Any, **kwargs: Any) -> dict[str, Any]:
        tool_name = func.__name__
        try:
            result = await func(*args, **kwargs)
            if isinstance(result, dict) and "status" not in result:
                result["status"] = "success"
            return result
        except httpx.HTTPStatusError as e:
            status = e.response.status_code
            logger.error(f"Tool {tool_name} HTTP {status}: {e}")
            if status == 401:
                return {
                    "status": "error",
                    "message": "Authentication required. Re-run 'mail-mcp auth gmail'.",
                    "error_type": "AuthenticationError",
                }
            if status == 403:
                return {
                    "status": "error",
                    "message": f"Access forbidden: {describe_http_error(e)}",
                    "error_type": "ForbiddenError",
                }
            if status == 404:
                return {
                    "status": "error",
                    "message": f"Resource not found: {describe_http_error(e)}",
                    "error_type": "NotFoundError",
                }
            return {
                "status": "error",
                "message": f"HTTP {status}: {describe_http_error(e)}",
                "error_type": "HTTPError",
            }
        except httpx.RequestError as e:
            logger.error(f"Tool {tool_name} request failed: {e}")
            return {
                "status": "error",
                "message": f"Request failed: {e}",
                "error_type": "RequestError",
            }
        except MailError as e:
            logger.error(f"Tool {tool_name} failed: {e}")
            return {
                "status": "error",
                "message": str(e),
                "error_type": type(e).__name__,
            }
        except ValueError as e:
            logger.error(f"Tool {tool_name} validation error: {e}")
            return {
                "status": "error",
                "message": str(e),
                "error_type": "ValidationError",
            }
        except Exception as e:
            logger.exception(f"Tool {tool_name} unexpected error: {e}")
            return {
                "status": "error",
                "message": f"Unexpected error: {e}",
                "error_type": type(e).__name__,
            }

    return wrapper  # type: ignore[return-value]
