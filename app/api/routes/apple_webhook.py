"""
Apple webhook API endpoints.
"""
import logging
from fastapi import APIRouter, Depends, Request, Response, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.db.session import get_db
from app.schemas.transaction import AppleNotificationPayload
from app.services.notification_processor import NotificationProcessor

router = APIRouter()
logger = logging.getLogger(__name__)


@router.post(
    "/appStoreServerNotifications",
    status_code=status.HTTP_200_OK,
    summary="Apple App Store Server Notification webhook endpoint"
)
async def app_store_server_notifications(
    request: Request,
    db: Session = Depends(get_db)
):
    """
    Receive and process Apple App Store Server Notifications.

    This endpoint receives notifications from Apple's App Store Server about
    subscription events (purchase, renewal, refund, expiration, etc.).

    Args:
        request: The request object, its JSON body holding the signedPayload
        db: Database session

    Returns:
        Response: An empty 200 response, whatever happened to the notification
    """
    logger.info("Received Apple App Store Server Notification")

    try:
        # Parsed by hand so that malformed bodies are acknowledged too
        payload = AppleNotificationPayload.model_validate(await request.json())

        notification_processor = NotificationProcessor(db)
        await run_in_threadpool(notification_processor.process_signed_payload, payload.signedPayload)
    except Exception as e:
        logger.error(f"Error processing Apple notification: {str(e)}")

    # Always return 200 OK to Apple, even on error
    return Response(status_code=status.HTTP_200_OK)
