"""
Security/audit event logging for the promotions platform.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


def log_security_event(event_type: str, details: dict[str, Any], request_ip: str | None = None) -> None:
    """
    Log security events for monitoring and forensics
    """
    try:
        logger.warning(f"🚨 [Security] {event_type}: {details} from IP: {request_ip}")
    except Exception as e:
        logger.error(f"Failed to log security event: {e}")
