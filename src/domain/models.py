"""
Data models for outbound mail delivery.

These structures are the contract between the code composing a message,
the Mailgun transformer, and the queue processor.
"""

import enum
import mimetypes
from dataclasses import dataclass
from email.message import Message
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Any, Dict, Iterator, List, Optional, Tuple, Union

from .headers import HeaderMap


@dataclass
class Attachment:
    """
    File attached to an outbound message.

    Attributes:
        filename: Name shown to the recipient
        content_type: MIME type (e.g., "text/plain", "application/pdf")
        content: Raw content; text is UTF-8 encoded when sent
        inline: True for inline (cid:) parts, False for regular attachments
    """
    filename: str
    content_type: str
    content: Union[bytes, str]
    inline: bool = False

    @property
    def size(self) -> int:
        """Size in bytes of the encoded content."""
        if isinstance(self.content, str):
            return len(self.content.encode('utf-8'))
        return len(self.content)


class RecipientKind(enum.Enum):
    EMPTY = 'empty'
    SINGLE = 'single'
    MANY = 'many'


@dataclass(frozen=True)
class RecipientField:
    """
    A recipient list resolved once from whatever the caller supplied.

    Attributes:
        kind: EMPTY, SINGLE or MANY
        addresses: Addresses in the order they were given
    """
    kind: RecipientKind
    addresses: Tuple[str, ...] = ()

    @classmethod
    def from_value(cls, value: Any) -> 'RecipientField':
        """
        Build a recipient field from None, a single address or a list.

        Blank entries are discarded.
        """
        if value is None:
            return cls(RecipientKind.EMPTY)
        if isinstance(value, RecipientField):
            return value
        if isinstance(value, (list, tuple)):
            addresses = tuple(str(a).strip() for a in value if a is not None and str(a).strip())
        else:
            address = str(value).strip()
            addresses = (address,) if address else ()

        if not addresses:
            return cls(RecipientKind.EMPTY)
        if len(addresses) == 1:
            return cls(RecipientKind.SINGLE, addresses)
        return cls(RecipientKind.MANY, addresses)

    def __iter__(self) -> Iterator[str]:
        return iter(self.addresses)

    def __bool__(self) -> bool:
        return self.kind is not RecipientKind.EMPTY


def build_body(text: Optional[str] = None, html: Optional[str] = None) -> Optional[Message]:
    """
    Build a MIME body from plain text and/or HTML.

    Returns a single text/plain or text/html part when only one is given,
    a multipart/alternative with both parts otherwise, and None when
    neither is given.
    """
    if text is None and html is None:
        return None
    if text is not None and html is not None:
        body = MIMEMultipart('alternative')
        body.attach(MIMEText(text, 'plain', 'utf-8'))
        body.attach(MIMEText(html, 'html', 'utf-8'))
        return body
    if text is not None:
        return MIMEText(text, 'plain', 'utf-8')
    return MIMEText(html, 'html', 'utf-8')


def _header_value(value: Any) -> Any:
    if isinstance(value, RecipientField):
        return list(value.addresses)
    return value


class OutboundMessage:
    """
    An email about to be sent through Mailgun.

    Envelope accessors (``sender``, ``to``, ``cc``, ``bcc``, ``subject``,
    ``reply_to``) are views over the header collection, so a ``Cc`` header
    set through ``headers`` is the message's cc. Generic ``headers`` are
    applied first and explicit envelope arguments replace them.

    The ``mailgun_*`` attributes carry provider-specific extensions:
    options (``o:*``), headers that override generic ones, tracking
    variables, per-recipient variables, a stored template and a sending
    domain override. ``message_id`` is assigned after a successful send.
    """

    def __init__(
        self,
        sender: Optional[str] = None,
        to: Any = None,
        subject: Optional[str] = None,
        cc: Any = None,
        bcc: Any = None,
        reply_to: Optional[str] = None,
        headers: Optional[Union[HeaderMap, Dict[str, Any]]] = None,
        body: Optional[Message] = None,
        attachments: Optional[List[Attachment]] = None,
        mailgun_template: Optional[str] = None,
        mailgun_options: Optional[Dict[str, Any]] = None,
        mailgun_headers: Optional[Dict[str, Any]] = None,
        mailgun_variables: Optional[Dict[str, Any]] = None,
        mailgun_recipient_variables: Optional[Dict[str, Any]] = None,
        mailgun_domain: Optional[str] = None,
    ):
        self.headers = headers if isinstance(headers, HeaderMap) else HeaderMap(headers)

        envelope = (
            ('From', sender),
            ('To', to),
            ('Cc', cc),
            ('Bcc', bcc),
            ('Subject', subject),
            ('Reply-To', reply_to),
        )
        for name, value in envelope:
            if value is not None:
                self.headers.set(name, _header_value(value))

        self.body = body
        self.attachments: List[Attachment] = list(attachments or [])
        self.mailgun_template = mailgun_template
        self.mailgun_options = mailgun_options
        self.mailgun_headers = mailgun_headers
        self.mailgun_variables = mailgun_variables
        self.mailgun_recipient_variables = mailgun_recipient_variables
        self.mailgun_domain = mailgun_domain
        self.message_id: Optional[str] = None

    @classmethod
    def compose(cls, text: Optional[str] = None, html: Optional[str] = None, **kwargs) -> 'OutboundMessage':
        """Create a message whose body is built from ``text`` and ``html``."""
        return cls(body=build_body(text, html), **kwargs)

    @property
    def sender(self) -> Optional[str]:
        return self.headers.get('from')

    @sender.setter
    def sender(self, value: Optional[str]) -> None:
        self.headers.set('From', value)

    @property
    def to(self) -> RecipientField:
        return RecipientField.from_value(self.headers.get_all('to'))

    @to.setter
    def to(self, value: Any) -> None:
        self.headers.set('To', _header_value(value))

    @property
    def cc(self) -> RecipientField:
        return RecipientField.from_value(self.headers.get_all('cc'))

    @cc.setter
    def cc(self, value: Any) -> None:
        self.headers.set('Cc', _header_value(value))

    @property
    def bcc(self) -> RecipientField:
        return RecipientField.from_value(self.headers.get_all('bcc'))

    @bcc.setter
    def bcc(self, value: Any) -> None:
        self.headers.set('Bcc', _header_value(value))

    @property
    def subject(self) -> Optional[str]:
        return self.headers.get('subject')

    @subject.setter
    def subject(self, value: Optional[str]) -> None:
        self.headers.set('Subject', value)

    @property
    def reply_to(self) -> Optional[str]:
        return self.headers.get('reply-to')

    @reply_to.setter
    def reply_to(self, value: Optional[str]) -> None:
        self.headers.set('Reply-To', value)

    def attach(
        self,
        filename: str,
        content: Union[bytes, str],
        content_type: Optional[str] = None,
        inline: bool = False
    ) -> Attachment:
        """
        Attach a file, guessing its MIME type from the filename if needed.

        Returns:
            The Attachment that was added
        """
        if not content_type:
            content_type = mimetypes.guess_type(filename)[0] or 'application/octet-stream'
        attachment = Attachment(
            filename=filename,
            content_type=content_type,
            content=content,
            inline=inline
        )
        self.attachments.append(attachment)
        return attachment

    def __repr__(self) -> str:
        return (
            f"OutboundMessage(from={self.sender!r}, to={list(self.to)!r}, "
            f"subject={self.subject!r}, attachments={len(self.attachments)})"
        )


@dataclass
class DeliveryResult:
    """
    Result of delivering one queued message.

    Attributes:
        success: Whether Mailgun accepted the message
        record_id: SQS message identifier
        message_id: Mailgun message id (if accepted)
        status_code: HTTP status returned by Mailgun (if a request was made)
        error_message: Error description (if delivery failed)
    """
    success: bool
    record_id: str
    message_id: Optional[str] = None
    status_code: Optional[int] = None
    error_message: Optional[str] = None

    @property
    def should_delete_message(self) -> bool:
        """Always True - delete all messages to prevent infinite retries."""
        return True

    def __repr__(self) -> str:
        """Human-readable representation for logging."""
        if self.success:
            return f"DeliveryResult(success=True, record_id={self.record_id}, message_id={self.message_id})"
        else:
            return (
                f"DeliveryResult(success=False, record_id={self.record_id}, "
                f"status_code={self.status_code}, error={self.error_message})"
            )
