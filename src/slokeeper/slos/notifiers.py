"""
Notification handlers for burn alerts.

Posts rendered alert messages to generic or Slack webhooks.
"""

from __future__ import annotations

from typing import Any

import httpx
import structlog

from slokeeper.core.errors import NotificationDeliveryError
from slokeeper.slos.alerts import AlertMessage
from slokeeper.slos.models import NotificationChannel

logger = structlog.get_logger()


class WebhookNotifier:
    """Send burn alert notifications to a webhook channel."""

    def __init__(self, timeout: float = 10.0) -> None:
        self.timeout = timeout

    async def send(self, channel: NotificationChannel, message: AlertMessage) -> dict[str, Any]:
        """
        Send a message to a channel.

        Args:
            channel: Resolved webhook destination
            message: Rendered alert or recovery message

        Returns:
            Delivery status

        Raises:
            NotificationDeliveryError: If the request fails or is rejected
        """
        logger.info(
            "sending_webhook_alert",
            channel_id=channel.id,
            service=channel.service,
            event_id=message.event_id,
        )

        if channel.service == "slack":
            payload = self._format_slack_message(message)
        else:
            payload = self._format_generic_message(message)

        headers = {"Content-Type": "application/json", **channel.headers}

        try:
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                response = await client.post(channel.url, json=payload, headers=headers)
                response.raise_for_status()

            logger.info("webhook_alert_sent", channel_id=channel.id, event_id=message.event_id)

            return {"status": "sent", "channel": channel.id, "event_id": message.event_id}

        except httpx.HTTPError as exc:
            logger.error(
                "webhook_alert_failed",
                channel_id=channel.id,
                event_id=message.event_id,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise NotificationDeliveryError(
                f"Failed to send webhook alert: {exc}",
                {"channel_id": channel.id, "event_id": message.event_id},
            ) from exc

    def _format_generic_message(self, message: AlertMessage) -> dict[str, Any]:
        return message.to_dict()

    def _format_slack_message(self, message: AlertMessage) -> dict[str, Any]:
        """Format alert as Slack message."""
        if message.state == "OK":
            color = "#36a64f"  # Green
        elif message.severity is not None and message.severity.value == "critical":
            color = "#ff0000"  # Red
        else:
            color = "#ff9900"  # Orange

        blocks: list[dict[str, Any]] = [
            {
                "type": "header",
                "text": {"type": "plain_text", "text": message.title},
            },
            {
                "type": "section",
                "text": {"type": "mrkdwn", "text": message.body},
            },
            {
                "type": "context",
                "elements": [
                    {
                        "type": "mrkdwn",
                        "text": f"*Triggered:* {message.start_time.strftime('%Y-%m-%d %H:%M:%S UTC')}",
                    },
                ],
            },
        ]

        if message.link:
            blocks.append({
                "type": "actions",
                "elements": [
                    {
                        "type": "button",
                        "text": {"type": "plain_text", "text": "View SLO"},
                        "url": message.link,
                        "action_id": "view_slo",
                    },
                ],
            })

        severity = message.severity.value.upper() if message.severity else "NONE"
        return {
            "text": message.title,  # Fallback text
            "blocks": blocks,
            "attachments": [
                {
                    "color": color,
                    "text": f"State: {message.state} | Severity: {severity}",
                }
            ],
        }
