"""
Log Sanitizer - keeps credentials out of log output

OAuth tokens, client secrets and Authorization headers pass through the
auth and export code paths; anything logged as structured context goes
through redact() first.
"""

from typing import Any, Set


SENSITIVE_KEYS: Set[str] = {
    'password', 'passwd', 'pwd',
    'token', 'access_token', 'accesstoken', 'refresh_token', 'refreshtoken',
    'id_token', 'api_key', 'apikey',
    'authorization', 'auth', 'cookie', 'set-cookie',
    'secret', 'client_secret', 'clientsecret',
    'code',  # OAuth authorization code
    'session_id', 'sessionid', 'sid',
}

REDACTED = '[REDACTED]'


def is_sensitive_key(key: Any) -> bool:
    """Check whether a mapping key names a credential"""
    if not isinstance(key, str):
        return False
    return key.strip().lower() in SENSITIVE_KEYS


def redact(data: Any) -> Any:
    """
    Return a copy of data with sensitive values replaced.

    Dicts are walked recursively (including nested headers), lists and tuples
    element-wise. Non-container values are returned unchanged.

    Example:
        >>> redact({"headers": {"Authorization": "Bearer abc"}, "status": 401})
        {'headers': {'Authorization': '[REDACTED]'}, 'status': 401}
    """
    if isinstance(data, dict):
        return {
            k: (REDACTED if is_sensitive_key(k) else redact(v))
            for k, v in data.items()
        }
    if isinstance(data, list):
        return [redact(item) for item in data]
    if isinstance(data, tuple):
        return tuple(redact(item) for item in data)
    return data
