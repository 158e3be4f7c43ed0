"""
Tests for the Mailgun HTTP client integration.
"""

import json
import pytest
from unittest.mock import Mock, patch
import requests
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from integrations.mailgun import (
    MailgunAttachment,
    MailgunClient,
    MailgunResponse,
    ParseError,
    encode_form,
)


def http_response(status_code, body):
    response = Mock()
    response.status_code = status_code
    response.text = body
    return response


class TestMailgunClient:
    """Test client configuration."""

    def test_base_url(self):
        """Test the URL built from host, version and SSL flag."""
        assert MailgunClient('key').base_url == 'https://api.mailgun.net/v3'
        assert MailgunClient('key', api_host='localhost:8080', api_version='v2', api_ssl=False).base_url == \
            'http://localhost:8080/v2'

    def test_test_mode_toggle(self):
        """Test enabling and disabling test mode."""
        client = MailgunClient('key')
        assert client.test_mode is False

        client.enable_test_mode()
        assert client.test_mode is True

        client.disable_test_mode()
        assert client.test_mode is False


class TestSendMessage:
    """Test the send_message call."""

    @patch('integrations.mailgun.requests.post')
    def test_send_message_success(self, mock_post):
        """Test a successful send."""
        mock_post.return_value = http_response(
            200, json.dumps({'id': '<abc@mg.example.com>', 'message': 'Queued. Thank you.'})
        )
        client = MailgunClient('key-123', timeout=30)

        response = client.send_message('mg.example.com', {
            'from': ['unittest@example.org'],
            'to': ['a@example.org', 'b@example.org'],
            'subject': ['Hello'],
            'o:tracking': 'yes',
        })

        assert response.code == 200
        assert response.to_dict()['id'] == '<abc@mg.example.com>'

        mock_post.assert_called_once()
        args, kwargs = mock_post.call_args
        assert args[0] == 'https://api.mailgun.net/v3/mg.example.com/messages'
        assert kwargs['auth'] == ('api', 'key-123')
        assert kwargs['timeout'] == 30
        assert kwargs['data'] == [
            ('from', 'unittest@example.org'),
            ('to', 'a@example.org'),
            ('to', 'b@example.org'),
            ('subject', 'Hello'),
            ('o:tracking', 'yes'),
        ]
        assert kwargs['files'] is None

    @patch('integrations.mailgun.requests.post')
    def test_send_message_with_attachments(self, mock_post):
        """Test that attachments are sent as files."""
        mock_post.return_value = http_response(200, '{"id": "x"}')
        attachment = MailgunAttachment(filename='info.txt', content_type='text/plain', content=b'hello')

        MailgunClient('key').send_message('mg.example.com', {'attachment': [attachment]})

        assert mock_post.call_args[1]['files'] == [('attachment', ('info.txt', b'hello', 'text/plain'))]

    @patch('integrations.mailgun.requests.post')
    def test_send_message_error_returned(self, mock_post):
        """Test that a non-200 response is returned, not raised."""
        mock_post.return_value = http_response(401, 'Forbidden')

        response = MailgunClient('bad-key').send_message('mg.example.com', {'to': ['a@example.org']})

        assert response.code == 401
        assert response.body == 'Forbidden'

    @patch('integrations.mailgun.requests.post')
    def test_send_message_transport_error(self, mock_post):
        """Test that requests exceptions propagate."""
        mock_post.side_effect = requests.Timeout('timed out')

        with pytest.raises(requests.Timeout):
            MailgunClient('key').send_message('mg.example.com', {'to': ['a@example.org']})

    @patch('integrations.mailgun.requests.post')
    def test_send_message_test_mode(self, mock_post):
        """Test that test mode never hits the network."""
        client = MailgunClient('key', test_mode=True)

        response = client.send_message('mg.example.com', {'to': ['a@example.org']})

        mock_post.assert_not_called()
        assert response.code == 200
        assert response.to_dict() == {'id': 'test-mode-mail@localhost', 'message': 'Queued. Thank you.'}


class TestEncodeForm:
    """Test field map flattening."""

    def test_reply_to_sent_as_header(self):
        """Test that reply-to goes on the wire as h:Reply-To."""
        fields, files = encode_form({'reply-to': 'dude@example.com.au'})

        assert fields == [('h:Reply-To', 'dude@example.com.au')]
        assert files == []

    def test_inline_attachment(self):
        """Test that inline attachments use the inline field."""
        inline = MailgunAttachment.wrap('logo.png', b'\x89PNG', 'image/png', inline=True)

        fields, files = encode_form({'attachment': [inline]})

        assert fields == []
        assert files == [('inline', ('logo.png', b'\x89PNG', 'image/png'))]

    def test_multi_value_header(self):
        """Test that repeated headers are repeated fields."""
        fields, _ = encode_form({'h:x-neat-header': ['foo', 'bar']})

        assert fields == [('h:x-neat-header', 'foo'), ('h:x-neat-header', 'bar')]

    def test_boolean_option(self):
        """Test that booleans are sent as true/false."""
        fields, _ = encode_form({'o:tracking': True, 'o:dkim': False, 'o:deliverytime-optimize-period': 24})

        assert fields == [('o:tracking', 'true'), ('o:dkim', 'false'), ('o:deliverytime-optimize-period', '24')]


class TestWireTypes:
    """Test MailgunAttachment and MailgunResponse."""

    def test_wrap_text(self):
        """Test that text content is encoded as UTF-8."""
        attachment = MailgunAttachment.wrap('note.txt', 'héllo', 'text/plain')

        assert attachment.content == 'héllo'.encode('utf-8')
        assert attachment.form_field == 'attachment'

    def test_response_parse_error(self):
        """Test that a non-JSON body raises ParseError."""
        with pytest.raises(ParseError):
            MailgunResponse(code=502, body='<html>Bad Gateway</html>').to_dict()

        with pytest.raises(ParseError):
            MailgunResponse(code=200, body='[1, 2]').to_dict()
