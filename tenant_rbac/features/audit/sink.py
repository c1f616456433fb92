"""
Audit sink interface and helpers.

Mutating services call ``notify_change`` after their write has been
committed. A failing sink is logged and never undoes the mutation.
"""
from typing import Any, Dict, Optional, Protocol

from tenant_rbac.utils import get_logger


log = get_logger(__name__)


class AuditSink(Protocol):
    """Receives change notifications from the role and catalogue services."""

    async def record_change(
        self,
        actor_id: Optional[str],
        action: str,
        target_type: str,
        target_id: Optional[str],
        metadata: Dict[str, Any],
    ) -> None:
        ...


class LoggingAuditSink:
    """Default sink: writes one log line per change."""

    async def record_change(
        self,
        actor_id: Optional[str],
        action: str,
        target_type: str,
        target_id: Optional[str],
        metadata: Dict[str, Any],
    ) -> None:
        log.info(
            f"Audit: actor={actor_id} action={action} target={target_type}:{target_id} metadata={metadata}"
        )


async def notify_change(
    sink: Optional[AuditSink],
    actor_id: Optional[str],
    action: str,
    target_type: str,
    target_id: Optional[str],
    metadata: Optional[Dict[str, Any]] = None,
) -> None:
    """Forward a change to the sink; sink failures are logged and dropped."""
    if sink is None:
        return
    try:
        await sink.record_change(actor_id, action, target_type, target_id, metadata or {})
    except Exception:
        log.exception(f"Audit sink failed to record {action} on {target_type}:{target_id}")
