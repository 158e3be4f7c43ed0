"""
Mailgun mailer - resolves settings, transforms and sends messages.

Configuration is a plain mapping:

    {
        'api_key': 'key-...',
        'domain': 'mg.example.com',
        'api_host': 'api.mailgun.net',      # optional
        'api_version': 'v3',                # optional
        'api_ssl': True,                    # optional
        'api_test_mode': False,             # optional
        'api_timeout': None,                # optional, seconds
        'fake_message_send': False,         # optional
        'domains': {                        # optional per-domain overrides
            'mg.example.org': {'api_key': 'key-other', 'api_version': 'v2'},
        },
    }

Settings are resolved on every send so per-domain credentials can be
added to the configuration at any time.
"""

import logging
from types import MappingProxyType
from typing import Any, Dict, Mapping, Optional

from integrations.mailgun import MailgunClient, MailgunResponse
from .errors import ConfigurationError
from .models import OutboundMessage
from .transformer import transform_for_mailgun

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = MappingProxyType({
    'api_host': 'api.mailgun.net',
    'api_version': 'v3',
    'api_ssl': True,
    'api_test_mode': False,
    'api_timeout': None,
    'fake_message_send': False,
})


def _merge(base: Dict[str, Any], override: Mapping[str, Any]) -> Dict[str, Any]:
    merged = dict(base)
    for key, value in override.items():
        if value is None and key in merged:
            continue
        merged[key] = value
    return merged


class Mailer:
    """
    Sends OutboundMessage objects through Mailgun.

    Example:
        >>> mailer = Mailer({'api_key': 'key-test', 'domain': 'mg.example.com'})
        >>> response = mailer.deliver(message)
        >>> response.code
        200
    """

    def __init__(self, config: Mapping[str, Any]):
        """
        Args:
            config: Mailer configuration; needs ``api_key`` or ``domains``

        Raises:
            ConfigurationError: If neither ``api_key`` nor ``domains`` is present
        """
        if not config or not ('api_key' in config or 'domains' in config):
            raise ConfigurationError('Config requires api_key or domain specific config', config)

        self.config = config

    @property
    def default_domain(self) -> Optional[str]:
        return self.config.get('domain')

    def resolve_config(self, domain: Optional[str] = None) -> Dict[str, Any]:
        """
        Merge defaults, global settings and the override block for ``domain``.

        Later layers win: domain override > global > defaults.

        Raises:
            ConfigurationError: If no API key is left after merging
        """
        global_config = {k: v for k, v in self.config.items() if k != 'domains'}
        resolved = _merge(dict(DEFAULT_CONFIG), global_config)

        domains = self.config.get('domains') or {}
        if domain and domain in domains:
            resolved = _merge(resolved, domains[domain])

        if not resolved.get('api_key'):
            raise ConfigurationError('Config requires api_key key', resolved)

        return resolved

    def get_client(self, domain: Optional[str] = None) -> MailgunClient:
        """
        Build a Mailgun client for ``domain``.

        Raises:
            ConfigurationError: If no API key can be resolved
        """
        config = self.resolve_config(domain)

        client = MailgunClient(
            api_key=config['api_key'],
            api_host=config['api_host'],
            api_version=config['api_version'],
            api_ssl=config['api_ssl'],
            test_mode=config['api_test_mode'],
            timeout=config['api_timeout']
        )

        if config['fake_message_send']:
            logger.info("NOTE: fake message sending has been enabled for mailgun!")
            client.enable_test_mode()

        return client

    def deliver(self, message: OutboundMessage) -> MailgunResponse:
        """
        Transform and send ``message``.

        On a 200 response the Mailgun message id is stored on
        ``message.message_id``. Other responses are returned unchanged for
        the caller to inspect.

        Raises:
            ConfigurationError: If no sending domain or API key is available
            requests.RequestException: On transport failures
        """
        domain = message.mailgun_domain or self.default_domain
        if not domain:
            raise ConfigurationError('No sending domain on the message or in config', self.config)

        client = self.get_client(domain)
        fields = transform_for_mailgun(message)

        logger.info(f"Delivering {message!r} via domain {domain}")
        response = client.send_message(domain, fields)

        if response.code == 200:
            message.message_id = response.to_dict().get('id')
            logger.info(f"Mailgun accepted message: id={message.message_id}")
        else:
            logger.warning(f"Mailgun rejected message: status={response.code}, body={response.body[:200]}")

        return response
