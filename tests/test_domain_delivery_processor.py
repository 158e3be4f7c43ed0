"""
Tests for the queued message delivery pipeline.
"""

import json
import pytest
from unittest.mock import Mock, patch
import sys
import os

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

from domain.delivery_processor import DeliveryProcessor
from domain.errors import ConfigurationError
from domain.mailer import Mailer
from integrations.mailgun import MailgunResponse


@pytest.fixture
def message_payload():
    return {
        'from': 'unittest@example.org',
        'to': 'test@example.org',
        'subject': 'Test!',
        'text': 'Test!',
    }


@pytest.fixture
def fake_mailer():
    return Mailer({'api_key': 'key-test', 'domain': 'mg.example.com', 'fake_message_send': True})


def sqs_record(body, message_id='sqs-msg-1'):
    return {'messageId': message_id, 'body': json.dumps(body)}


class TestProcessRecord:
    """Test DeliveryProcessor.process_record()."""

    def test_success(self, fake_mailer, message_payload):
        """Test delivering a message in fake-send mode."""
        with patch('integrations.mailgun.requests.post') as mock_post:
            result = DeliveryProcessor(fake_mailer).process_record(sqs_record(message_payload))

        assert result.success is True
        assert result.record_id == 'sqs-msg-1'
        assert result.message_id == 'test-mode-mail@localhost'
        assert result.status_code == 200
        mock_post.assert_not_called()

    def test_sns_wrapped(self, fake_mailer, message_payload):
        """Test a payload delivered through SNS -> SQS."""
        record = sqs_record({'Type': 'Notification', 'Message': json.dumps(message_payload)})

        result = DeliveryProcessor(fake_mailer).process_record(record)

        assert result.success is True

    def test_rejected_by_mailgun(self, message_payload):
        """Test that a non-200 response is a failed result."""
        mailer = Mock()
        mailer.deliver.return_value = MailgunResponse(code=400, body='{"message": "invalid"}')

        result = DeliveryProcessor(mailer).process_record(sqs_record(message_payload))

        assert result.success is False
        assert result.status_code == 400
        assert '400' in result.error_message

    def test_invalid_json(self, fake_mailer):
        """Test that a body that is not JSON is a failed result."""
        result = DeliveryProcessor(fake_mailer).process_record({'messageId': 'bad', 'body': 'not json'})

        assert result.success is False
        assert result.record_id == 'bad'
        assert result.error_message

    def test_invalid_payload(self, fake_mailer):
        """Test that a payload without sender is a failed result."""
        result = DeliveryProcessor(fake_mailer).process_record(sqs_record({'to': 'a@example.org'}))

        assert result.success is False
        assert 'from' in result.error_message

    def test_configuration_error(self, message_payload):
        """Test that configuration errors are reported, not raised."""
        mailer = Mock()
        mailer.deliver.side_effect = ConfigurationError('Config requires api_key key')

        result = DeliveryProcessor(mailer).process_record(sqs_record(message_payload))

        assert result.success is False
        assert 'api_key' in result.error_message

    def test_missing_message_id(self, fake_mailer, message_payload):
        """Test a record without messageId."""
        result = DeliveryProcessor(fake_mailer).process_record({'body': json.dumps(message_payload)})

        assert result.record_id == 'UNKNOWN'
