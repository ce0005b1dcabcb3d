from __future__ import annotations
from typing import Dict, List, Optional


class RewriterError(Exception):
    """Base class for errors raised by the rewrite pipeline."""


class FetchError(RewriterError):
    """Catalog read failed or Shopify returned an unexpected shape."""


class ParseError(RewriterError):
    """LLM output could not be sliced or parsed into generated content."""


class TransportError(RewriterError):
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MutationError(RewriterError):
    """Shopify accepted the request but reported userErrors."""

    def __init__(self, operation: str, user_errors: List[Dict]):
        messages = "; ".join(str(e.get("message") or e) for e in user_errors)
        super().__init__(f"{operation}: {messages}")
        self.operation = operation
        self.user_errors = user_errors
