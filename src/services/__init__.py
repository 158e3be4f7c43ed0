"""
Utility functions shared by the mail pipeline.

This package contains MIME helpers, settings loading and queue payload
parsing.
"""

__all__ = ['mime', 'payload', 'settings']
