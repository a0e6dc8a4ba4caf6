"""Notification utilities for aborted sync runs."""

import logging
import os
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class NotificationService:
    """Handles sending notifications for critical errors."""

    def __init__(
        self,
        enabled: Optional[bool] = None,
        webhook_url: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize notification service.

        Args:
            enabled: Override for the ENABLE_NOTIFICATIONS environment variable
            webhook_url: Override for the NOTIFICATION_WEBHOOK_URL environment variable
            client: Optional HTTP client used to post to the webhook
        """
        if enabled is None:
            enabled = os.getenv("ENABLE_NOTIFICATIONS", "false").lower() == "true"
        self.notification_enabled = enabled
        self.notification_webhook = webhook_url or os.getenv("NOTIFICATION_WEBHOOK_URL")
        self.client = client

    async def send_critical_error_notification(
        self,
        job_id: str,
        graph: str,
        error_message: str,
        context: Optional[dict] = None
    ) -> bool:
        """
        Send notification for an aborted run.

        Args:
            job_id: The sync job ID
            graph: The Roam graph being synced
            error_message: The error message
            context: Optional additional context

        Returns:
            True if the webhook accepted the notification
        """
        if not self.notification_enabled:
            logger.info(f"Notifications disabled, skipping notification for job {job_id}")
            return False

        notification_message = (
            f"Critical Error in Sync Job\n"
            f"Job ID: {job_id}\n"
            f"Graph: {graph}\n"
            f"Error: {error_message}\n"
        )

        if context:
            notification_message += f"Context: {context}\n"

        logger.warning(f"CRITICAL ERROR NOTIFICATION: {notification_message}")

        if not self.notification_webhook:
            return False

        payload = {
            "text": notification_message,
            "job_id": job_id,
            "graph": graph,
            "error": error_message
        }
        try:
            if self.client is not None:
                response = await self.client.post(self.notification_webhook, json=payload, timeout=10.0)
            else:
                async with httpx.AsyncClient() as client:
                    response = await client.post(self.notification_webhook, json=payload, timeout=10.0)
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to send notification: {e}")
            return False

        logger.info(f"Notification sent for job {job_id}")
        return True
