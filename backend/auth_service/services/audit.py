"""Security audit trail: one audit_log row plus a Prometheus counter per auth event."""

import logging

from prometheus_client import Counter
from sqlalchemy.ext.asyncio import AsyncSession

from auth_service.models.audit_log import AuditLog

logger = logging.getLogger(__name__)

AUTH_EVENTS = Counter(
    "auth_events_total",
    "Authentication events by action and outcome",
    ["action", "outcome"],
)


async def log_event(
    session: AsyncSession,
    user_id: int | None,
    action: str,
    outcome: str = "success",
    resource: str = "user",
    resource_id: str | int | None = None,
    details: dict | None = None,
    ip_address: str | None = None,
) -> None:
    AUTH_EVENTS.labels(action=action, outcome=outcome).inc()
    logger.info("auth event %s (%s) user_id=%s", action, outcome, user_id)
    session.add(
        AuditLog(
            user_id=user_id,
            action=action,
            resource=resource,
            resource_id=str(resource_id) if resource_id is not None else None,
            details={"outcome": outcome, **(details or {})},
            ip_address=ip_address,
        )
    )
    await session.flush()
