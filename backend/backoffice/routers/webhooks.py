"""
认证 Webhook 路由
校验 svix 签名后记录会话事件；响应为纯文本
"""
import logging
from fastapi import APIRouter, Depends, Request
from fastapi.responses import PlainTextResponse
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from svix.webhooks import Webhook, WebhookVerificationError

from backoffice.config import settings
from backoffice.database import get_db
from backoffice.services.activity_log import handle_session_event

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/webhooks", tags=["Webhook"])

SVIX_HEADERS = ("svix-id", "svix-timestamp", "svix-signature")


@router.post("/clerk", response_class=PlainTextResponse)
async def clerk_webhook(request: Request, db: Session = Depends(get_db)):
    """身份提供方会话事件"""
    headers = {name: request.headers.get(name) for name in SVIX_HEADERS}
    if not all(headers.values()):
        return PlainTextResponse("Error: Missing svix headers", status_code=400)

    if not settings.WEBHOOK_SECRET:
        logger.error("WEBHOOK_SECRET is not configured")
        return PlainTextResponse("Error: webhook secret not configured", status_code=500)

    body = await request.body()
    try:
        event = Webhook(settings.WEBHOOK_SECRET).verify(body, headers)
    except WebhookVerificationError as e:
        logger.warning(f"Error verifying webhook {headers['svix-id']}: {e}")
        return PlainTextResponse("Error verifying webhook", status_code=400)

    try:
        handle_session_event(db, event.get("type"), event.get("data") or {})
    except SQLAlchemyError:
        return PlainTextResponse("Error processing webhook", status_code=500)

    return PlainTextResponse("Webhook processed successfully", status_code=200)
