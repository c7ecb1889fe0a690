"""Structured logging helper for billing endpoints."""
from __future__ import annotations

import logging
from typing import Any, Dict, Optional

logger = logging.getLogger("billing")


def log_billing_event(*, message: str, request_id: Optional[str] = None, user_id: Optional[str] = None,
                      order_id: Optional[str] = None, level: int = logging.INFO,
                      extra: Optional[Dict[str, Any]] = None) -> None:
    payload: Dict[str, Any] = {"message": message}
    if request_id:
        payload["request_id"] = request_id
    if user_id:
        payload["user_id"] = str(user_id)
    if order_id:
        payload["order_id"] = order_id
    if extra:
        payload.update(extra)
    logger.log(level, payload)
