"""Shared schema base classes and field normalizers."""

from __future__ import annotations

import re

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

_EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON while keeping snake_case attributes."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class MessageResponse(CamelModel):
    message: str


def normalize_email(value: str) -> str:
    """Trim and lowercase an email address and check its basic shape."""
    normalized = value.strip().lower()
    if not _EMAIL_PATTERN.match(normalized):
        raise ValueError("Please provide a valid email address")
    return normalized
