"""
app/schemas/response.py

Purpose: Shared response envelopes
"""

from pydantic import BaseModel, Field
from typing import Optional, Any

class ErrorResponse(BaseModel):
    """
    Body returned for every handled error.

    `error` is safe to show to users; internals are only logged.
    """
    error: str = Field(..., description="Human readable, generic message")
    code: str = Field(..., description="Machine readable error code")
    details: Optional[Any] = None
