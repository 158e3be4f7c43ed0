"""
Queue payload parsing.

A queued message is a JSON object:

  from                 str   sender address (required)
  to, cc, bcc          str or list of str
  subject              str
  reply_to             str
  text, html           str   body parts
  template             str   stored Mailgun template (replaces text/html)
  headers              dict  generic headers
  attachments          list  each item has:
                               filename     str
                               content      str  base64-encoded bytes
                               content_type str  (guessed from filename if absent)
                               inline       bool
  options              dict  Mailgun o:* options
  mailgun_headers      dict  headers overriding ``headers``
  variables            dict  sent as X-Mailgun-Variables
  recipient_variables  dict  per-recipient substitutions
  domain               str   sending domain override
"""

import base64
import binascii
import logging
from typing import Any, Dict, Optional

from domain.models import OutboundMessage

logger = logging.getLogger(__name__)


class PayloadError(ValueError):
    """Raised when a queued message payload is malformed."""
    pass


def _optional_dict(payload: Dict[str, Any], key: str) -> Optional[Dict[str, Any]]:
    value = payload.get(key)
    if value is None:
        return None
    if not isinstance(value, dict):
        raise PayloadError(f"'{key}' must be an object, got {type(value).__name__}")
    return value


def parse_message_payload(payload: Dict[str, Any]) -> OutboundMessage:
    """
    Convert a queued JSON payload into an OutboundMessage.

    Raises:
        PayloadError: If required fields are missing or have the wrong type
    """
    if not isinstance(payload, dict):
        raise PayloadError(f"Message payload must be an object, got {type(payload).__name__}")
    if not payload.get('from'):
        raise PayloadError("Message payload missing 'from'")
    if not (payload.get('to') or payload.get('cc') or payload.get('bcc')):
        raise PayloadError("Message payload has no recipients")

    message = OutboundMessage.compose(
        text=payload.get('text'),
        html=payload.get('html'),
        headers=_optional_dict(payload, 'headers'),
        sender=payload['from'],
        to=payload.get('to'),
        cc=payload.get('cc'),
        bcc=payload.get('bcc'),
        subject=payload.get('subject'),
        reply_to=payload.get('reply_to'),
        mailgun_template=payload.get('template'),
        mailgun_options=_optional_dict(payload, 'options'),
        mailgun_headers=_optional_dict(payload, 'mailgun_headers'),
        mailgun_variables=_optional_dict(payload, 'variables'),
        mailgun_recipient_variables=_optional_dict(payload, 'recipient_variables'),
        mailgun_domain=payload.get('domain'),
    )

    for att in payload.get('attachments') or []:
        try:
            content = base64.b64decode(att.get('content', ''), validate=True)
        except (binascii.Error, ValueError) as e:
            raise PayloadError(f"Attachment {att.get('filename')!r} is not valid base64: {e}")
        message.attach(
            filename=att.get('filename', 'attachment'),
            content=content,
            content_type=att.get('content_type'),
            inline=bool(att.get('inline', False))
        )

    logger.debug(f"Parsed payload: attachments={len(message.attachments)}, template={message.mailgun_template}")
    return message
