"""
Message-to-Mailgun transformation.

Turns an OutboundMessage into the field map accepted by the Mailgun
messages endpoint:

1. Envelope fields (from, reply-to, subject, to/cc/bcc)
2. Template or text/HTML body
3. Attachments
4. ``o:*`` options
5. ``h:*`` headers, reconciled from the generic and provider-specific
   header channels
6. Recipient variables and ``X-Mailgun-Variables``
7. Removal of blank values

No network I/O happens here. The only side effect is on the message's
header collection, which absorbs ``mailgun_headers`` (those win on name
collision) so the message reflects what was sent.
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional

from integrations.mailgun import FieldValue, MailgunAttachment
from services import mime as mime_service
from .models import OutboundMessage, RecipientKind

logger = logging.getLogger(__name__)

# Headers dropped when copying from the header collection: Mailgun
# receives them as dedicated POST parameters.
IGNORED_HEADERS = frozenset(['to', 'from', 'subject', 'reply-to', 'template', 'mime-version'])

VARIABLES_HEADER = 'h:X-Mailgun-Variables'
RECIPIENT_VARIABLES_KEY = 'recipient-variables'

FieldMap = Dict[str, FieldValue]


@dataclass(frozen=True)
class TraceEvent:
    """
    A non-fatal decision taken while transforming a message.

    Attributes:
        action: What happened (e.g. "ignore_header")
        header: Folded header name concerned
        reason: Why ("envelope" or "already_set")
    """
    action: str
    header: str
    reason: str


TraceSink = Callable[[TraceEvent], None]


def log_trace(event: TraceEvent) -> None:
    """Default trace sink: debug-level log line."""
    if event.reason == 'envelope':
        logger.debug(f"ignoring header (using envelope instead): {event.header}")
    else:
        logger.debug(f"ignoring header (already set): {event.header}")


def transform_for_mailgun(message: OutboundMessage, trace: Optional[TraceSink] = None) -> FieldMap:
    """
    Build the Mailgun field map for ``message``.

    Headers in ``message.mailgun_headers`` overwrite headers of the same
    name (compared case-insensitively) set through ``message.headers``.

    ``recipient-variables`` and ``X-Mailgun-Variables`` are only sent for
    non-empty maps; an empty ``{}`` carries no substitutions and is skipped.

    Args:
        message: Message to transform; its header collection is updated in place
        trace: Optional sink receiving a TraceEvent for every dropped header.
            Defaults to debug logging.

    Returns:
        Field map with no None, empty-string or empty-list values
    """
    sink = trace or log_trace
    fields = build_message_object(message)

    for name, value in (message.mailgun_options or {}).items():
        fields[f"o:{name}"] = value

    for name, value in reconcile_headers(message, fields, sink).items():
        fields[f"h:{name}"] = value

    if message.mailgun_recipient_variables:
        fields[RECIPIENT_VARIABLES_KEY] = json.dumps(
            message.mailgun_recipient_variables, separators=(',', ':')
        )

    if message.mailgun_variables:
        fields[VARIABLES_HEADER] = json.dumps(message.mailgun_variables)

    return reject_blank_values(fields)


def build_message_object(message: OutboundMessage) -> FieldMap:
    """
    Build the envelope, body and attachment fields.

    Returns:
        Field map holding from, reply-to, subject, to/cc/bcc, template or
        text/html, and attachment
    """
    fields: FieldMap = {}

    fields['from'] = [message.sender]
    reply_to = message.reply_to
    if reply_to and reply_to.strip():
        fields['reply-to'] = reply_to
    fields['subject'] = [message.subject]

    if message.mailgun_template:
        fields['template'] = message.mailgun_template
    else:
        fields['html'] = [mime_service.extract_body_html(message)]
        fields['text'] = [mime_service.extract_body_text(message)]

    for kind in ('to', 'cc', 'bcc'):
        recipients = getattr(message, kind)
        if recipients.kind is RecipientKind.EMPTY:
            continue
        fields.setdefault(kind, []).extend(recipients.addresses)

    if not message.attachments:
        return fields

    attachments: List[Any] = fields.setdefault('attachment', [])
    for attachment in message.attachments:
        attachments.append(MailgunAttachment.wrap(
            filename=attachment.filename,
            content=attachment.content,
            content_type=attachment.content_type,
            inline=attachment.inline
        ))

    return fields


def reconcile_headers(message: OutboundMessage, fields: FieldMap, sink: TraceSink) -> Dict[str, Any]:
    """
    Work out which headers travel as ``h:*`` fields.

    ``mailgun_headers`` are merged into the message's header collection
    first. The collection is then folded by lowercased name, and names
    that are envelope parameters or already present in ``fields``
    (cc, bcc...) are dropped.

    Returns:
        Folded header name -> value (str, or list when repeated)
    """
    if message.mailgun_headers:
        message.headers.merge(message.mailgun_headers)

    headers: Dict[str, Any] = {}
    for name, value in message.headers.folded().items():
        if name in IGNORED_HEADERS:
            sink(TraceEvent('ignore_header', name, 'envelope'))
            continue

        if name in fields:
            sink(TraceEvent('ignore_header', name, 'already_set'))
            continue

        headers[name] = value

    return headers


def _is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, (str, bytes, list, tuple, dict)):
        return len(value) == 0
    return False


def reject_blank_values(fields: FieldMap) -> FieldMap:
    """
    Drop fields Mailgun should not receive.

    None values and empty strings are removed; list values first lose
    their blank elements and are removed if nothing is left.
    """
    cleaned: FieldMap = {}
    for key, value in fields.items():
        if isinstance(value, list):
            value = [item for item in value if not _is_blank(item)]
        if _is_blank(value):
            continue
        cleaned[key] = value
    return cleaned
