"""
Input Validation and Sanitization
==================================

Pydantic request model and sanitization functions that guard guest
messages against prompt injection and malformed identifiers.
"""

import re
from typing import Literal, Optional

from pydantic import BaseModel, Field, field_validator

from logger_config import get_logger

logger = get_logger(__name__)

# ======================================================
# PYDANTIC MODELS
# ======================================================


class ChatRequest(BaseModel):
    """Validated inbound guest message."""

    message: str = Field(
        ...,
        min_length=1,
        max_length=2000,
        description="Guest message content"
    )
    hotel_id: str = Field(
        ...,
        min_length=1,
        max_length=50,
        description="Hotel identifier"
    )
    conversation_id: str = Field(
        ...,
        min_length=1,
        max_length=200,
        description="Conversation identifier (alphanumeric, underscore, hyphen, colon)"
    )
    channel: Literal["web", "whatsapp", "email"] = Field("web", description="Channel the message arrived on")
    language: Optional[str] = Field(
        None,
        min_length=2,
        max_length=10,
        description="Guest language hint (ISO-639-1); detected when absent"
    )

    @field_validator("message")
    @classmethod
    def sanitize_message(cls, v: str) -> str:
        """Sanitize guest message to prevent prompt injection."""
        sanitized = sanitize_user_input(v)
        if not sanitized:
            raise ValueError("message must not be blank")
        return sanitized

    @field_validator("hotel_id")
    @classmethod
    def validate_hotel_id(cls, v: str) -> str:
        return validate_identifier(v, "hotel_id", 50)

    @field_validator("conversation_id")
    @classmethod
    def validate_conversation_id(cls, v: str) -> str:
        return validate_identifier(v, "conversation_id", 200)


class ResetStateRequest(BaseModel):
    hotel_id: str = Field(..., min_length=1, max_length=50)
    conversation_id: str = Field(..., min_length=1, max_length=200)

    @field_validator("hotel_id")
    @classmethod
    def validate_hotel_id(cls, v: str) -> str:
        return validate_identifier(v, "hotel_id", 50)

    @field_validator("conversation_id")
    @classmethod
    def validate_conversation_id(cls, v: str) -> str:
        return validate_identifier(v, "conversation_id", 200)


# ======================================================
# SANITIZATION FUNCTIONS
# ======================================================

INJECTION_PATTERNS = [
    r'ignore\s+(previous|all)\s+instructions?',
    r'system\s*:',
    r'<\s*system\s*>',
    r'you\s+are\s+now',
    r'forget\s+(everything|all)',
    r'disregard\s+(previous|all)',
    r'olvid[aáe]\s+(todo|las instrucciones)',
    r'ignor[aáe]\s+(las|todas las)\s+instrucciones',
]


def sanitize_user_input(text: str, max_length: int = 2000) -> str:
    """
    Sanitize user input to prevent prompt injection and malformed data.

    Args:
        text: User input text
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    if not text:
        return text

    # Remove control characters (except newlines and tabs)
    text = re.sub(r'[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]', '', text)

    # Truncate and strip excessive whitespace
    text = ' '.join(text[:max_length].split())

    # Injection attempts are logged and passed through; routing never executes them
    text_lower = text.lower()
    for pattern in INJECTION_PATTERNS:
        if re.search(pattern, text_lower):
            logger.warning("Potential prompt injection detected", pattern=pattern)

    return text


def validate_identifier(value: str, name: str, max_length: int) -> str:
    """
    Validate and sanitize an identifier such as hotel_id or conversation_id.

    Raises:
        ValueError: If nothing usable remains after sanitization
    """
    if not value:
        raise ValueError(f"{name} is required")

    sanitized = re.sub(r'[^\w:-]', '', value)[:max_length]

    if not sanitized:
        raise ValueError(f"{name} must contain at least one alphanumeric character")

    return sanitized
