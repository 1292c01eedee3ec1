"""Audit logging service for compliance tracking."""

from __future__ import annotations

import logging
from typing import Any

from sqlalchemy.orm import Session

from carecrypt.models.records import SystemLog

logger = logging.getLogger(__name__)


def log_action(
    db: Session,
    *,
    user_id: str,
    action: str,
    metadata: dict[str, Any] | None = None,
) -> SystemLog:
    """
    Write a system log entry. Metadata must only carry identifiers,
    never the plaintext of encrypted fields.
    """
    entry = SystemLog(user_id=user_id, action=action, details=metadata or {})
    db.add(entry)
    db.flush()
    logger.info("AUDIT: %s %s %s", user_id, action, metadata or {})
    return entry
