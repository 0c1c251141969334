"""
活动日志服务
记录认证事件（登录/登出）；写入失败向上抛出，由调用方返回 500
"""
import logging
from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from backoffice.models.entities import ActivityLog

logger = logging.getLogger(__name__)

LOGIN = "login"
LOGOUT = "logout"

# 会话事件 -> 动作
SESSION_EVENT_ACTIONS = {
    "session.created": LOGIN,
    "session.ended": LOGOUT,
    "session.removed": LOGOUT,
}


def resolve_ip_address(data: Dict[str, Any]) -> str:
    """按 client_ip -> ip_address -> latest_activity.ip_address 顺序取值"""
    latest_activity = data.get("latest_activity") or {}
    return (
        data.get("client_ip")
        or data.get("ip_address")
        or (latest_activity.get("ip_address") if isinstance(latest_activity, dict) else None)
        or "unknown"
    )


def record_auth_event(db: Session, action: str, data: Dict[str, Any]) -> ActivityLog:
    """写入一条认证活动日志"""
    user_id = data.get("user_id") or "unknown"
    entry = ActivityLog(
        user_id=user_id,
        action_type=action,
        resource_type="user",
        resource_id=user_id,
        ip_address=resolve_ip_address(data),
        extra={
            "session_id": data.get("id"),
            "user_agent": data.get("user_agent"),
            "device_details": data.get("device"),
            "location": data.get("location"),
        },
    )
    try:
        db.add(entry)
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception(f"Failed to log {action} event for user {user_id}")
        raise
    db.refresh(entry)
    logger.info(f"Recorded {action} event for user {user_id}")
    return entry


def handle_session_event(db: Session, event_type: Optional[str],
                         data: Dict[str, Any]) -> Optional[ActivityLog]:
    """只处理会话事件，其余事件忽略"""
    action = SESSION_EVENT_ACTIONS.get(event_type or "")
    if action is None:
        logger.debug(f"Ignoring webhook event {event_type}")
        return None
    return record_auth_event(db, action, data)
