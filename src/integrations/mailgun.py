"""
Mailgun HTTP API Client Module

This module provides a small client for the Mailgun messages endpoint.
It knows how to put a transformed field map on the wire; building that
field map from a message is the transformer's job.

Usage:
    from integrations.mailgun import MailgunClient

    client = MailgunClient(api_key="key-...", api_host="api.eu.mailgun.net")
    response = client.send_message("mg.example.com", {
        "from": ["noreply@mg.example.com"],
        "to": ["user@example.org"],
        "subject": ["Hello"],
        "text": ["Hello there"],
    })
    print(response.code, response.to_dict().get("id"))
"""

import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import requests

from domain.headers import to_text

logger = logging.getLogger(__name__)

DEFAULT_API_HOST = 'api.mailgun.net'
DEFAULT_API_VERSION = 'v3'

TEST_MODE_RESPONSE = {
    'id': 'test-mode-mail@localhost',
    'message': 'Queued. Thank you.',
}


# ============================================================================
# Custom Exception Classes
# ============================================================================

class ParseError(Exception):
    """Raised when a Mailgun response body is not valid JSON."""
    pass


# ============================================================================
# Wire Types
# ============================================================================

@dataclass(frozen=True)
class MailgunAttachment:
    """
    Binary-safe attachment descriptor sent as a multipart file.

    Attributes:
        filename: Name of the file as the recipient sees it
        content_type: MIME type of the file
        content: Raw bytes
        inline: Sent as an ``inline`` file (cid: reference) if True
    """
    filename: str
    content_type: str
    content: bytes
    inline: bool = False

    @classmethod
    def wrap(
        cls,
        filename: str,
        content: Union[bytes, str],
        content_type: str,
        inline: bool = False
    ) -> 'MailgunAttachment':
        """Copy attachment data into a descriptor, encoding text as UTF-8."""
        if isinstance(content, str):
            content = content.encode('utf-8')
        return cls(
            filename=filename,
            content_type=content_type,
            content=bytes(content),
            inline=inline
        )

    @property
    def form_field(self) -> str:
        return 'inline' if self.inline else 'attachment'


@dataclass
class MailgunResponse:
    """
    Raw response returned by the Mailgun API.

    Attributes:
        code: HTTP status code
        body: Response body as text
    """
    code: int
    body: str

    def to_dict(self) -> Dict[str, Any]:
        """
        Parse the JSON body.

        Raises:
            ParseError: If the body is not a JSON object
        """
        try:
            data = json.loads(self.body)
        except (TypeError, ValueError) as e:
            raise ParseError(f"Response body is not valid JSON: {e}")
        if not isinstance(data, dict):
            raise ParseError(f"Expected a JSON object, got {type(data).__name__}")
        return data

    @classmethod
    def from_dict(cls, data: Mapping[str, Any], code: int = 200) -> 'MailgunResponse':
        return cls(code=code, body=json.dumps(dict(data)))


FieldValue = Union[str, List[Any], MailgunAttachment]
FormFields = List[Tuple[str, str]]
FormFiles = List[Tuple[str, Tuple[str, bytes, str]]]


# ============================================================================
# Client
# ============================================================================

class MailgunClient:
    """
    Client for sending messages through the Mailgun HTTP API.

    In test mode no request is made and a canned "queued" response is
    returned instead.
    """

    def __init__(
        self,
        api_key: str,
        api_host: str = DEFAULT_API_HOST,
        api_version: str = DEFAULT_API_VERSION,
        api_ssl: bool = True,
        test_mode: bool = False,
        timeout: Optional[float] = None
    ):
        self.api_key = api_key
        self.api_host = api_host
        self.api_version = api_version
        self.api_ssl = api_ssl
        self.timeout = timeout
        self._test_mode = bool(test_mode)

    @property
    def base_url(self) -> str:
        scheme = 'https' if self.api_ssl else 'http'
        return f"{scheme}://{self.api_host}/{self.api_version}"

    @property
    def test_mode(self) -> bool:
        return self._test_mode

    def enable_test_mode(self) -> None:
        """Stop sending network requests; send_message returns a canned response."""
        self._test_mode = True

    def disable_test_mode(self) -> None:
        self._test_mode = False

    def send_message(self, domain: str, data: Mapping[str, FieldValue]) -> MailgunResponse:
        """
        Send a message through ``POST /<domain>/messages``.

        Args:
            domain: Sending domain registered with Mailgun
            data: Transformed field map

        Returns:
            MailgunResponse with the raw status code and body; non-200
            responses are returned, not raised

        Raises:
            requests.RequestException: On transport failures
        """
        if self._test_mode:
            logger.info(f"Test mode enabled, not sending message for domain {domain}")
            return MailgunResponse.from_dict(TEST_MODE_RESPONSE)

        url = f"{self.base_url}/{domain}/messages"
        fields, files = encode_form(data)

        logger.info(
            f"Sending message: url={url}, fields={len(fields)}, files={len(files)}"
        )

        response = requests.post(
            url,
            auth=('api', self.api_key),
            data=fields,
            files=files or None,
            timeout=self.timeout
        )

        logger.info(f"Mailgun responded: status={response.status_code}")
        return MailgunResponse(code=response.status_code, body=response.text)

    def __repr__(self) -> str:
        return f"MailgunClient(base_url={self.base_url!r}, test_mode={self._test_mode})"


def encode_form(data: Mapping[str, FieldValue]) -> Tuple[FormFields, FormFiles]:
    """
    Flatten a field map into multipart form fields and files.

    List values become repeated fields. Attachments become files under
    ``attachment`` or ``inline``. The bare ``reply-to`` key has no API
    parameter of its own and is sent as the ``h:Reply-To`` header.
    """
    fields: FormFields = []
    files: FormFiles = []

    for key, value in data.items():
        name = 'h:Reply-To' if key == 'reply-to' else key
        values = value if isinstance(value, list) else [value]
        for item in values:
            if item is None:
                continue
            if isinstance(item, MailgunAttachment):
                files.append((item.form_field, (item.filename, item.content, item.content_type)))
            else:
                fields.append((name, to_text(item)))

    return fields, files
