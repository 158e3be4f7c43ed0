"""
Queued message delivery - core pipeline for the Lambda handler.

Each SQS record carries one JSON message payload (optionally wrapped in an
SNS notification):
1. Parse the record body into an OutboundMessage
2. Deliver it through the Mailer
3. Return a DeliveryResult (success or failure)

All errors are caught and returned as DeliveryResult with success=False.
No exceptions propagate out of the public methods.
"""

import json
import logging
import time
from typing import Any, Dict

from services import payload as payload_service
from .mailer import Mailer
from .models import DeliveryResult

logger = logging.getLogger(__name__)


class DeliveryProcessor:
    """
    Delivers queued messages through Mailgun.

    Returns DeliveryResult for explicit success/failure handling.
    """

    def __init__(self, mailer: Mailer):
        self.mailer = mailer

    def process_record(self, record: Dict[str, Any]) -> DeliveryResult:
        """
        Deliver the message carried by a single SQS record.

        Args:
            record: SQS record dict

        Returns:
            DeliveryResult with success=True or success=False (errors logged)
        """
        record_id = record.get('messageId', 'UNKNOWN')
        logger.info(f"Processing SQS message: {record_id}")

        try:
            payload = self._parse_record_body(record)
            message = payload_service.parse_message_payload(payload)
            logger.info(f"Parsed: {message!r}")

            start_time = time.time()
            response = self.mailer.deliver(message)
            logger.info(f"Mailgun call completed: {time.time() - start_time:.3f}s")

            if response.code != 200:
                return DeliveryResult(
                    success=False,
                    record_id=record_id,
                    status_code=response.code,
                    error_message=f"Mailgun returned {response.code}: {response.body[:200]}"
                )

            return DeliveryResult(
                success=True,
                record_id=record_id,
                message_id=message.message_id,
                status_code=response.code
            )

        except Exception as e:
            logger.error(f"Failed to process {record_id}: {e}", exc_info=True)

            return DeliveryResult(
                success=False,
                record_id=record_id,
                error_message=str(e)
            )

    def _parse_record_body(self, record: Dict[str, Any]) -> Dict[str, Any]:
        """
        Decode the record body, unwrapping SNS notifications.

        Raises:
            KeyError: If the record has no body
            json.JSONDecodeError: If the body is not JSON
        """
        body = json.loads(record['body'])

        # Optional setup: SNS -> SQS
        if isinstance(body, dict) and body.get('Type') == 'Notification' and 'Message' in body:
            logger.info("Unwrapping SNS message (SNS -> SQS)")
            body = json.loads(body['Message'])

        return body
