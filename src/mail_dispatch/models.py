# Copyright 2025 Softwell S.r.l. - SPDX-License-Identifier: Apache-2.0
"""Pydantic models shared by providers, templates and the HTTP API.

Models:
    - EmailTag: Name/value tag forwarded to the provider for analytics
    - EmailPayload: Provider-neutral description of one outgoing email
"""

from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


def _split_addresses(value: str | list[str] | None) -> list[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return [str(item).strip() for item in value if item and str(item).strip()]


class EmailTag(BaseModel):
    """Provider tag attached to an email.

    Attributes:
        name: Tag name (ASCII letters, numbers, underscores or dashes).
        value: Tag value with the same character set.
    """

    model_config = ConfigDict(extra="forbid")

    name: Annotated[str, Field(min_length=1, max_length=256, pattern=r"^[A-Za-z0-9_-]+$")]
    value: Annotated[str, Field(min_length=1, max_length=256, pattern=r"^[A-Za-z0-9_-]+$")]


class EmailPayload(BaseModel):
    """One outgoing email.

    Address fields accept either a list or a comma-separated string and are
    normalised to lists.

    Attributes:
        from_addr: Sender, serialized as ``from``.
        to: Primary recipients (at least one).
        subject: Subject line.
        html: HTML body.
        text: Plain-text body.
        cc: Carbon-copy recipients.
        bcc: Blind carbon-copy recipients.
        reply_to: Reply-To address.
        tags: Provider tags.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    from_addr: Annotated[str, Field(alias="from", min_length=3)]
    to: list[str]
    subject: Annotated[str, Field(min_length=1, max_length=998)]
    html: str | None = None
    text: str | None = None
    cc: list[str] = Field(default_factory=list)
    bcc: list[str] = Field(default_factory=list)
    reply_to: str | None = None
    tags: list[EmailTag] = Field(default_factory=list)

    @field_validator("to", "cc", "bcc", mode="before")
    @classmethod
    def normalise_addresses(cls, v):
        """Accept comma-separated strings as well as lists."""
        return _split_addresses(v)

    @field_validator("to")
    @classmethod
    def to_not_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("at least one recipient is required")
        return v

    @model_validator(mode="after")
    def body_required(self) -> EmailPayload:
        """Require at least one of the html or text bodies."""
        if not self.html and not self.text:
            raise ValueError("either html or text body is required")
        return self

    @property
    def recipient_label(self) -> str:
        """Compact recipient summary used in log lines."""
        label = ", ".join(self.to)
        return label if len(label) <= 200 else f"{label[:197]}..."
