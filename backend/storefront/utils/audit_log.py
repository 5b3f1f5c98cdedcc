from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Literal, Optional

from .request_id import get_request_id

AuditAction = Literal[
    "order.created",
    "order.payment_confirmed",
    "order.payment_failed",
    "order.status_changed",
    "available_date.created",
    "available_date.upserted",
    "available_date.updated",
    "available_date.deleted",
    "available_date.cleanup",
]
AuditInitiator = Literal["user", "system", "admin"]

_audit_logger = logging.getLogger("audit")
_audit_logger.setLevel(logging.INFO)
if not _audit_logger.handlers:
    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter("%(message)s"))
    _audit_logger.addHandler(handler)
_audit_logger.propagate = False


def _enum_to_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    if hasattr(value, "value"):
        return str(value.value)
    return str(value)


def emit_audit_log(
    *,
    action: AuditAction,
    initiator: AuditInitiator,
    user_uid: Optional[str],
    order_id: Optional[int] = None,
    date_id: Optional[int] = None,
    status_from: Any = None,
    status_to: Any = None,
    payment_status: Any = None,
    message: Optional[str] = None,
    extra: Optional[dict[str, Any]] = None,
) -> None:
    """Emit structured JSON audit log. Raises RuntimeError if logging fails."""
    payload: dict[str, Any] = {
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "level": "info",
        "action": action,
        "initiator": initiator,
        "request_id": get_request_id(),
        "user_uid": user_uid,
        "order_id": order_id,
        "date_id": date_id,
        "status_from": _enum_to_str(status_from),
        "status_to": _enum_to_str(status_to),
        "payment_status": _enum_to_str(payment_status),
    }
    if message is not None:
        payload["message"] = message
    if extra:
        payload.update(extra)

    compact_payload = {k: v for k, v in payload.items() if v is not None}
    try:
        _audit_logger.info(json.dumps(compact_payload, ensure_ascii=True, default=str))
    except Exception as exc:  # pragma: no cover
        raise RuntimeError("failed to emit audit log") from exc
