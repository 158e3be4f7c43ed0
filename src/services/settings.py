"""
Mailer configuration from the Lambda environment.

Environment variables:
    MAILGUN_API_KEY             API key (takes precedence over the SSM parameter)
    MAILGUN_API_KEY_PARAMETER   SSM SecureString holding the API key
    MAILGUN_DOMAIN              Default sending domain
    MAILGUN_API_HOST            e.g. api.eu.mailgun.net
    MAILGUN_API_VERSION         e.g. v3
    MAILGUN_API_SSL             true/false
    MAILGUN_TEST_MODE           true/false
    MAILGUN_TIMEOUT             Request timeout in seconds
    MAILGUN_FAKE_SEND           true/false, never hit the network
    MAILGUN_DOMAINS             JSON object of per-domain overrides
"""

import json
import logging
import os
from typing import Any, Dict, Mapping, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

from domain.errors import ConfigurationError

logger = logging.getLogger(__name__)

# Configure SSM client with timeouts to prevent infinite hangs
ssm_config = Config(
    retries={
        'max_attempts': 1,
        'mode': 'standard'
    },
    connect_timeout=5,
    read_timeout=10
)

_TRUE_VALUES = ('1', 'true', 'yes', 'on')

_ssm_client = None


def _get_ssm_client():
    """Create the SSM client on first use (reused across invocations)."""
    global _ssm_client
    if _ssm_client is None:
        region = os.environ.get('AWS_REGION', os.environ.get('AWS_DEFAULT_REGION', 'us-west-2'))
        _ssm_client = boto3.client('ssm', region_name=region, config=ssm_config)
        logger.info(f"SSM client initialized: region={region}")
    return _ssm_client


def parse_bool(value: Optional[str]) -> Optional[bool]:
    if value is None or value.strip() == '':
        return None
    return value.strip().lower() in _TRUE_VALUES


def fetch_api_key(parameter_name: str) -> str:
    """
    Read the Mailgun API key from an SSM SecureString parameter.

    Raises:
        ConfigurationError: If the parameter cannot be read
    """
    try:
        response = _get_ssm_client().get_parameter(Name=parameter_name, WithDecryption=True)
        return response['Parameter']['Value']
    except ClientError as e:
        error_code = e.response.get('Error', {}).get('Code', 'Unknown')
        logger.error(f"Failed to read SSM parameter {parameter_name}: error_code={error_code}")
        raise ConfigurationError(
            f"Cannot read Mailgun API key from SSM parameter {parameter_name}: {error_code}"
        )


def load_mailer_config(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """
    Build the mailer configuration mapping from environment variables.

    Only variables that are set end up in the mapping, so the mailer's
    defaults apply to everything else.

    Args:
        environ: Environment to read (defaults to os.environ)

    Returns:
        Configuration mapping for domain.mailer.Mailer

    Raises:
        ConfigurationError: If MAILGUN_TIMEOUT or MAILGUN_DOMAINS is malformed,
            or the SSM parameter cannot be read
    """
    env = os.environ if environ is None else environ
    config: Dict[str, Any] = {}

    api_key = env.get('MAILGUN_API_KEY')
    if not api_key and env.get('MAILGUN_API_KEY_PARAMETER'):
        api_key = fetch_api_key(env['MAILGUN_API_KEY_PARAMETER'])
    if api_key:
        config['api_key'] = api_key

    for env_name, key in (('MAILGUN_DOMAIN', 'domain'),
                          ('MAILGUN_API_HOST', 'api_host'),
                          ('MAILGUN_API_VERSION', 'api_version')):
        if env.get(env_name):
            config[key] = env[env_name]

    for env_name, key in (('MAILGUN_API_SSL', 'api_ssl'),
                          ('MAILGUN_TEST_MODE', 'api_test_mode'),
                          ('MAILGUN_FAKE_SEND', 'fake_message_send')):
        flag = parse_bool(env.get(env_name))
        if flag is not None:
            config[key] = flag

    if env.get('MAILGUN_TIMEOUT'):
        try:
            config['api_timeout'] = float(env['MAILGUN_TIMEOUT'])
        except ValueError:
            raise ConfigurationError(f"MAILGUN_TIMEOUT must be a number, got {env['MAILGUN_TIMEOUT']!r}")

    if env.get('MAILGUN_DOMAINS'):
        try:
            domains = json.loads(env['MAILGUN_DOMAINS'])
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"MAILGUN_DOMAINS is not valid JSON: {e}")
        if not isinstance(domains, dict):
            raise ConfigurationError("MAILGUN_DOMAINS must be a JSON object")
        config['domains'] = domains

    logger.info(
        f"Mailer config loaded: domain={config.get('domain')}, "
        f"api_key_set={'api_key' in config}, domains={sorted(config.get('domains', {}))}"
    )
    return config
