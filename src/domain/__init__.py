"""
Domain layer for outbound mail delivery.

This layer contains:
- Data models (messages, recipients, attachments, results)
- The message-to-Mailgun transformer
- The mailer that resolves settings and sends
"""
