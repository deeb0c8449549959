"""
Audit trail for admin and auth actions
"""

import logging
from typing import Optional, Dict, Any, List

from sqlalchemy import select
from sqlalchemy.orm import Session

from quizhub.models import ActivityLog

logger = logging.getLogger(__name__)


def log_activity(
    db: Session,
    user_id: Optional[int],
    action_type: str,
    entity_type: Optional[str] = None,
    entity_id: Optional[int] = None,
    details: Optional[Dict[str, Any]] = None,
    ip_address: Optional[str] = None,
    user_agent: Optional[str] = None,
) -> ActivityLog:
    entry = ActivityLog(
        user_id=user_id,
        action_type=action_type,
        entity_type=entity_type,
        entity_id=entity_id,
        details=details or {},
        ip_address=ip_address,
        user_agent=user_agent,
    )
    db.add(entry)
    db.flush()
    logger.info(f"[Activity] {action_type} by {user_id} on {entity_type}:{entity_id}")
    return entry


def list_activity(
    db: Session,
    action_type: Optional[str] = None,
    entity_type: Optional[str] = None,
    user_id: Optional[int] = None,
    limit: int = 50,
) -> List[ActivityLog]:
    stmt = select(ActivityLog)
    if action_type:
        stmt = stmt.where(ActivityLog.action_type == action_type)
    if entity_type:
        stmt = stmt.where(ActivityLog.entity_type == entity_type)
    if user_id is not None:
        stmt = stmt.where(ActivityLog.user_id == user_id)
    stmt = stmt.order_by(ActivityLog.created_at.desc(), ActivityLog.id.desc()).limit(limit)
    return db.execute(stmt).scalars().all()
