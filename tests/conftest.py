"""
Pytest configuration and fixtures for all tests.
"""

import os
import sys
import pytest

# Add src to Python path before any imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '../src'))

# Set up test environment variables before importing any modules
os.environ.setdefault('MAILGUN_API_KEY', 'key-test')
os.environ.setdefault('MAILGUN_DOMAIN', 'mg.example.com')
os.environ.setdefault('MAILGUN_FAKE_SEND', 'true')
os.environ.setdefault('AWS_DEFAULT_REGION', 'us-west-2')
os.environ.setdefault('LOG_LEVEL', 'INFO')


@pytest.fixture(scope="session", autouse=True)
def setup_test_environment():
    """Set up test environment variables for all tests."""
    # Environment variables are already set above
    yield
