"""
AWS Lambda handler for delivering queued messages through Mailgun.

Thin orchestration layer that delegates to DeliveryProcessor.
Policy: Always delete messages (no retries). Errors logged to CloudWatch.
"""

import logging
from collections import Counter
from typing import Any, Dict, List

from domain.delivery_processor import DeliveryProcessor
from domain.mailer import Mailer
from domain.models import DeliveryResult
from services.settings import load_mailer_config

# Configure logging
logger = logging.getLogger()
logger.setLevel(logging.INFO)

# Add console handler for local testing (AWS Lambda provides handlers automatically)
if not logger.handlers:
    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.INFO)
    formatter = logging.Formatter('%(levelname)s - %(message)s')
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

# Initialize processor once at module level (reused across invocations)
delivery_processor = DeliveryProcessor(Mailer(load_mailer_config()))


def summarize(results: List[DeliveryResult]) -> Dict[str, int]:
    """
    Count batch results by Mailgun status code.

    Records that failed before Mailgun answered (bad payload, transport
    error, missing credentials) are counted under ``"no-response"``.
    """
    counts = Counter(
        str(r.status_code) if r.status_code is not None else 'no-response'
        for r in results
    )
    return dict(sorted(counts.items()))


def lambda_handler(event: Dict[str, Any], context: Any) -> Dict[str, Any]:
    """
    Deliver a batch of queued messages.

    Args:
        event: Lambda event with SQS records
        context: Lambda context

    Returns:
        Dict with batchItemFailures (always empty - no retries)
    """
    records = event.get('Records', [])
    logger.info(f"Delivering batch of {len(records)} queued message(s) through Mailgun")

    results = []
    for record in records:
        result = delivery_processor.process_record(record)
        results.append(result)

        if result.success:
            logger.info(f"Record {result.record_id}: Mailgun {result.status_code}, id {result.message_id}")
        else:
            logger.warning(
                f"Record {result.record_id}: not delivered "
                f"(status={result.status_code}): {result.error_message}"
            )

    delivered = sum(1 for r in results if r.success)
    logger.info(
        f"Batch complete: delivered={delivered} failed={len(results) - delivered} "
        f"by_status={summarize(results)}"
    )

    return {"batchItemFailures": []}
