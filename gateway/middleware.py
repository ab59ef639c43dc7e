"""
Middleware configuration for the webhook app.
"""

from __future__ import annotations

import os

from starlette.middleware.trustedhost import TrustedHostMiddleware


def configure_middleware(app):
    """Apply the optional host allowlist for production deployments."""
    trusted_hosts_env = os.environ.get("TRUSTED_HOSTS", "")
    trusted_hosts = [host.strip() for host in trusted_hosts_env.split(",") if host.strip()]
    if trusted_hosts:
        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=trusted_hosts,
        )
