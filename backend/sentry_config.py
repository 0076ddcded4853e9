"""
Sentry Error Monitoring Configuration
Optional error tracking for the valuation API
"""
import logging
from typing import Optional

import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration
from sentry_sdk.integrations.logging import LoggingIntegration

logger = logging.getLogger("Sentry")


def filter_sensitive_data(event, hint):
    """Redact wallet addresses in request bodies before they leave the process."""
    sensitive_keys = ['address', 'holder', 'wallets', 'api_key', 'secret']

    if 'request' in event and 'data' in event['request']:
        data = event['request']['data']
        if isinstance(data, dict):
            for key in sensitive_keys:
                if key in data:
                    data[key] = '[FILTERED]'

    return event


def init_sentry(dsn: Optional[str], environment: str = "development", release: str = "local") -> bool:
    """Initialize Sentry when a DSN is configured."""
    if not dsn:
        logger.info("No SENTRY_DSN found - error tracking disabled")
        return False

    sentry_sdk.init(
        dsn=dsn,
        environment=environment,

        traces_sample_rate=0.2,

        integrations=[
            FastApiIntegration(transaction_style="endpoint"),
            StarletteIntegration(),
            LoggingIntegration(
                level=logging.INFO,
                event_level=logging.ERROR
            ),
        ],

        before_send=filter_sensitive_data,
        send_default_pii=False,
        release=f"valuation-engine@{release}",

        # RPC flakiness is expected and already absorbed by the engine
        ignore_errors=[
            ConnectionRefusedError,
            TimeoutError,
        ],
    )

    logger.info(f"✓ Sentry initialized for {environment} (release: {release[:8]})")
    return True
