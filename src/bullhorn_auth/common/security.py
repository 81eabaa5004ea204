"""
Redaction helpers for bullhorn_auth.

Session tokens, access tokens, authorization codes and passwords all travel
as query or form parameters, so URLs and error messages are scrubbed before
they reach a log record or an exception message.
"""

import re
from urllib.parse import urlsplit, urlunsplit

REDACTED = "[REDACTED]"

# Query parameter names whose values are never logged (compared lowercased)
SENSITIVE_PARAMS = {
    "bhresttoken",
    "access_token",
    "refresh_token",
    "code",
    "client_secret",
    "token",
    "password",
    "pwd",
    "secret",
}


def _assignment(name: str, anchored: bool = False):
    prefix = r"([?&])" if anchored else r"()"
    return (
        re.compile(prefix + name + r'=[^&\s"\']+', re.IGNORECASE),
        r"\1" + name + "=" + REDACTED,
    )


# (pattern, replacement) pairs applied to free text
SENSITIVE_PATTERNS = [
    _assignment("BhRestToken"),
    _assignment("access_token"),
    _assignment("refresh_token"),
    _assignment("client_secret"),
    _assignment("password"),
    # bare "code=" is too common in prose, so only redact it inside a query
    _assignment("code", anchored=True),
    (re.compile(r"bearer\s+[\w\-.]+", re.IGNORECASE), "bearer " + REDACTED),
]

_URL_PATTERN = re.compile(r'https?://[^\s"\'<>]+')


def _redact_param(param: str) -> str:
    name, sep, _ = param.partition("=")
    if sep and name.lower() in SENSITIVE_PARAMS:
        return f"{name}={REDACTED}"
    return param


def sanitize_url(url: str) -> str:
    """
    Replace the values of sensitive query parameters with [REDACTED].

    Scheme, host, path and the remaining parameters are left as they were,
    so the URL still says which endpoint was called.
    """
    if not url:
        return url
    try:
        parts = urlsplit(url)
    except ValueError:
        return url
    if not parts.query:
        return url

    query = "&".join(_redact_param(p) for p in parts.query.split("&"))
    return urlunsplit(parts._replace(query=query))


def sanitize_error_message(msg: str, max_length: int = 500) -> str:
    """
    Scrub credentials out of free text and cap its length.

    Inline assignments such as password=... are masked first, then every
    embedded URL goes through sanitize_url. Text longer than max_length is
    cut and ends in "...".
    """
    if not msg:
        return msg

    for pattern, replacement in SENSITIVE_PATTERNS:
        msg = pattern.sub(replacement, msg)
    msg = _URL_PATTERN.sub(lambda m: sanitize_url(m.group(0)), msg)

    if len(msg) > max_length:
        return msg[: max_length - 3] + "..."
    return msg
