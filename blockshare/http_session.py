"""Shared requests session setup for every HTTP collaborator."""

import logging
import os
import threading
from typing import Dict, Iterable, Optional

import requests
import truststore
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

logger = logging.getLogger('blockshare.http')

RETRY_STATUS_CODES = (429, 500, 502, 503, 504)

_system_ca_lock = threading.Lock()
_system_ca_enabled = False


def enable_system_ca() -> bool:
    """
    Switch TLS verification to the OS trust store when USE_SYSTEM_CA is set.

    Returns:
        True if the system store is active
    """
    global _system_ca_enabled

    if os.getenv('USE_SYSTEM_CA') not in ('1', 'true', 'True', 'TRUE'):
        return False

    with _system_ca_lock:
        if not _system_ca_enabled:
            truststore.inject_into_ssl()
            _system_ca_enabled = True
            logger.info("Using system CA certificate store")
    return True


def build_session(
    max_retries: int = 3,
    backoff_factor: float = 0.5,
    allowed_methods: Optional[Iterable[str]] = None,
    headers: Optional[Dict[str, str]] = None
) -> requests.Session:
    """
    Create a session with retry on transient HTTP statuses.

    Args:
        max_retries: Retry attempts for statuses in RETRY_STATUS_CODES
        backoff_factor: Exponential backoff factor between attempts
        allowed_methods: Methods eligible for retry, urllib3 default when None
        headers: Headers applied to every request

    Returns:
        Configured requests.Session
    """
    enable_system_ca()

    session = requests.Session()
    if headers:
        session.headers.update(headers)

    retry_kwargs = {
        'total': max_retries,
        'backoff_factor': backoff_factor,
        'status_forcelist': list(RETRY_STATUS_CODES),
        'raise_on_status': False,
    }
    if allowed_methods is not None:
        retry_kwargs['allowed_methods'] = frozenset(m.upper() for m in allowed_methods)

    adapter = HTTPAdapter(max_retries=Retry(**retry_kwargs))
    session.mount('http://', adapter)
    session.mount('https://', adapter)
    return session


__all__ = ['build_session', 'enable_system_ca', 'RETRY_STATUS_CODES']
