"""
MIME utilities for outbound messages.

This module provides the body-part lookups used by the Mailgun transformer
and a helper that turns an already-parsed MIME message into an
OutboundMessage.
"""

import logging
import re
from email import policy
from email.message import Message
from email.parser import BytesParser
from email.utils import formataddr, getaddresses
from typing import Optional, Union

from domain.models import Attachment, OutboundMessage

logger = logging.getLogger(__name__)

_TEXT_PLAIN = re.compile(r'^text/plain$', re.IGNORECASE)
_TEXT_HTML = re.compile(r'^text/html$', re.IGNORECASE)

# Headers that describe the MIME structure rather than the message
_TRANSPORT_HEADERS = frozenset(['content-type', 'content-transfer-encoding', 'mime-version'])


def _is_attachment(part: Message) -> bool:
    """A named part is a file, whatever its disposition."""
    if part.get_filename():
        return True
    return part.get_content_disposition() == 'attachment'


def _find_part(message: Message, pattern) -> Optional[Message]:
    """Return the first non-attachment part whose content type matches."""
    for part in message.walk():
        if part.is_multipart() or _is_attachment(part):
            continue
        if pattern.match(part.get_content_type()):
            return part
    return None


def retrieve_text_part(message: Optional[Message]) -> Optional[Message]:
    """
    Return the text/plain part of a body.

    Multipart bodies are searched for a dedicated text/plain part; a
    single-part body is returned as is only if it is text/plain.
    """
    if message is None:
        return None
    if message.is_multipart():
        return _find_part(message, _TEXT_PLAIN)
    return message if _TEXT_PLAIN.match(message.get_content_type()) else None


def retrieve_html_part(message: Optional[Message]) -> Optional[Message]:
    """
    Return the text/html part of a body.

    Same lookup rules as retrieve_text_part, for text/html.
    """
    if message is None:
        return None
    if message.is_multipart():
        return _find_part(message, _TEXT_HTML)
    return message if _TEXT_HTML.match(message.get_content_type()) else None


def decode_part(part: Optional[Message]) -> Optional[str]:
    """
    Decode a leaf MIME part to text.

    Handles quoted-printable and base64 transfer encodings through
    ``get_payload(decode=True)`` and the part's declared charset.

    Raises:
        LookupError: If the declared charset is unknown
    """
    if part is None:
        return None
    payload = part.get_payload(decode=True)
    if payload is None:
        return None
    charset = part.get_content_charset() or 'utf-8'
    return payload.decode(charset, errors='replace')


def extract_body_text(message: OutboundMessage) -> Optional[str]:
    """
    Return the decoded plain-text body, or None if unavailable.

    Missing parts and decode failures are not errors: a message without
    a readable text part is still sendable.
    """
    try:
        return decode_part(retrieve_text_part(message.body))
    except Exception as e:
        logger.warning(f"Failed to decode text body: {e}")
        return None


def extract_body_html(message: OutboundMessage) -> Optional[str]:
    """Return the decoded HTML body, or None if unavailable."""
    try:
        return decode_part(retrieve_html_part(message.body))
    except Exception as e:
        logger.warning(f"Failed to decode HTML body: {e}")
        return None


def message_from_mime(source: Union[bytes, Message]) -> OutboundMessage:
    """
    Build an OutboundMessage from a MIME message.

    Envelope headers (From, To, Cc, Bcc, Subject, Reply-To) become the
    envelope, every other header except the MIME structure headers stays
    a generic header, and attachment parts are lifted out of the tree.

    Args:
        source: Raw RFC 822 bytes or a parsed email.message.Message

    Returns:
        OutboundMessage sharing the body parts of ``source``

    Example:
        >>> raw = b"From: a@example.com\\r\\nTo: b@example.com\\r\\nSubject: Hi\\r\\n\\r\\nHello"
        >>> message = message_from_mime(raw)
        >>> message.subject
        'Hi'
    """
    if isinstance(source, bytes):
        source = BytesParser(policy=policy.default).parsebytes(source)

    message = OutboundMessage(body=source)

    for name, value in source.items():
        key = name.lower()
        if key in _TRANSPORT_HEADERS:
            continue
        if key in ('to', 'cc', 'bcc'):
            addresses = [formataddr(pair) for pair in getaddresses([str(value)]) if pair[1]]
            message.headers.add(name, addresses)
        else:
            message.headers.add(name, str(value))

    if source.is_multipart():
        for part in source.walk():
            if part.is_multipart():
                continue
            disposition = part.get_content_disposition()
            filename = part.get_filename()
            if disposition not in ('attachment', 'inline') or not filename:
                continue
            content = part.get_payload(decode=True) or b''
            message.attachments.append(Attachment(
                filename=filename,
                content_type=part.get_content_type(),
                content=content,
                inline=disposition == 'inline'
            ))

    logger.info(
        f"Parsed MIME message: headers={len(message.headers)}, "
        f"attachments={len(message.attachments)}"
    )
    return message
