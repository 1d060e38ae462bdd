"""Tiny stdlib HTTP helpers used by the fetcher.

We keep the urllib plumbing here (TLS policy, auth, redirects, form bodies) so
the retry loop in `webfetch.fetcher` only deals with outcomes.
"""

from __future__ import annotations

import http.client
import socket
import ssl
import urllib.error
import urllib.request
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from urllib.parse import quote, urlencode

import certifi

from webfetch.models import Credential

FORM_CONTENT_TYPE = "application/x-www-form-urlencoded"

# Everything a failed send can raise before or while reading a response.
TRANSPORT_ERRORS = (urllib.error.URLError, http.client.HTTPException, OSError)


def ssl_context(verify: bool = True) -> ssl.SSLContext:
    """Return the SSL context for a request.

    With `verify=False` the context accepts any server certificate and host
    name. Otherwise verification uses the system CA bundle; some Python builds
    (notably the Python.org macOS installer) ship without one until the
    "Install Certificates" step has run, in which case we fall back to
    `certifi`.
    """
    if not verify:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
        return ctx

    paths = ssl.get_default_verify_paths()
    cafile = paths.openssl_cafile
    capath = paths.openssl_capath
    if (cafile and Path(cafile).exists()) or (capath and Path(capath).exists()):
        return ssl.create_default_context()
    return ssl.create_default_context(cafile=certifi.where())


class NoRedirectHandler(urllib.request.HTTPRedirectHandler):
    """Refuse to follow redirects so the 3xx surfaces as an `HTTPError`."""

    def redirect_request(self, req, fp, code, msg, headers, newurl):
        return None


class _PassUnsupportedChallenges:
    """Let a 401 with a challenge we cannot answer (NTLM, Negotiate, Bearer)
    reach the caller as an `HTTPError` instead of urllib's `ValueError`."""

    def http_error_auth_reqed(self, *args):
        try:
            return super().http_error_auth_reqed(*args)
        except ValueError:
            return None


class BasicAuthHandler(_PassUnsupportedChallenges, urllib.request.HTTPBasicAuthHandler):
    pass


class DigestAuthHandler(_PassUnsupportedChallenges, urllib.request.HTTPDigestAuthHandler):
    pass


def build_opener(
    credential: Credential | None = None,
    *,
    url: str | None = None,
    verify: bool = True,
    follow_redirects: bool = True,
) -> urllib.request.OpenerDirector:
    """Build an opener carrying the TLS, auth and redirect policy of one request."""
    handlers: list[Any] = [urllib.request.HTTPSHandler(context=ssl_context(verify))]
    if credential is not None:
        passwords = urllib.request.HTTPPasswordMgrWithDefaultRealm()
        # Any realm at or below the request URL gets this login.
        passwords.add_password(None, url or "", credential.login, credential.password)
        handlers.append(BasicAuthHandler(passwords))
        handlers.append(DigestAuthHandler(passwords))
    if not follow_redirects:
        handlers.append(NoRedirectHandler())
    return urllib.request.build_opener(*handlers)


def encode_form(fields: Mapping[str, str] | None, *, legacy: bool = False) -> bytes | None:
    """Encode form fields as an `application/x-www-form-urlencoded` body.

    Returns None when there is nothing to send. `legacy=True` renders every
    pair as `key=<escaped value>&`: keys go out verbatim and a trailing `&`
    is left in place, matching what older consumers of this client expect.
    """
    if not fields:
        return None
    if legacy:
        body = "".join(f"{key}={quote(str(value), safe='')}&" for key, value in fields.items())
    else:
        body = urlencode([(str(k), str(v)) for k, v in fields.items()], quote_via=quote)
    return body.encode("utf-8")


def is_timeout(exc: BaseException) -> bool:
    """True when a transport failure was caused by a timeout."""
    if isinstance(exc, (socket.timeout, TimeoutError)):
        return True
    if isinstance(exc, urllib.error.URLError):
        return isinstance(exc.reason, (socket.timeout, TimeoutError))
    return False


def release(resp: Any) -> None:
    """Close the stream behind a response or `HTTPError` (best effort)."""
    fp = getattr(resp, "fp", None)
    if fp is not None:
        fp.close()
