"""Rate-limited background email dispatch for agency notifications.

This package provides the email sending side of the agency platform:

- An in-memory, strictly ordered dispatch queue that spaces sends to respect
  the email provider's rate limit without blocking the caller
- Email providers for the Resend HTTP API, plain SMTP and a log-only backend
- Jinja2 notification templates for castings, briefings and creator outreach
- Prometheus metrics for monitoring
- FastAPI REST API and a click CLI

Example:
    Basic usage with the FastAPI application::

        from mail_dispatch.api import create_app
        from mail_dispatch.providers import create_provider
        from mail_dispatch.service import DispatchService

        service = DispatchService(create_provider(settings), settings=settings)
        app = create_app(service, api_token="secret")
"""

__version__ = "0.3.0"
