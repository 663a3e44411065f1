"""Authenticated tenant context for request processing."""

from __future__ import annotations

import uuid
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class TenantContext:
    """Authenticated tenant context, injected into every protected request.

    Built from the verified token claims (or the tenant header fallback).
    """

    tenant_id: uuid.UUID
    subject: str | None = None
    claims: Mapping[str, Any] = field(default_factory=dict)
