"""Fetch a single URL with GET or form POST, retrying on timeouts.

Typical use:

    f = Fetcher("https://example.com/rates")
    f.headers["User-Agent"] = "rates-bot/1.0"
    f.get()
    if f.success:
        rate = f.convert_response(float)

Retries are reserved for timeouts. Any HTTP response ends the loop: 200 and
302 count as success, every other status is reported through `response` with
`success=False`. Other transport failures end the loop immediately. Nothing
from the network layer escapes `get()`/`post()`.
"""

from __future__ import annotations

import logging
import time
import urllib.error
import urllib.request
from collections.abc import Mapping
from typing import Any
from urllib.parse import urlparse

from webfetch.config import FetchConfig, get_default_config
from webfetch.convert import convert, to_text
from webfetch.helpers.http_client import (
    FORM_CONTENT_TYPE,
    TRANSPORT_ERRORS,
    build_opener,
    encode_form,
    is_timeout,
    release,
)
from webfetch.models import Credential, RequestHeaders, ResponseInfo, check_header

logger = logging.getLogger(__name__)

HTTP_OK = 200
HTTP_FOUND = 302


def _validate_url(url: str) -> str:
    parsed = urlparse(url or "")
    if parsed.scheme.lower() not in {"http", "https"} or not parsed.netloc:
        raise ValueError(f"Expected an absolute http(s) URL, got {url!r}")
    return url


class Fetcher:
    """One logical request: configuration, a retry loop and its outcome.

    Headers, credential, timeout, retries and the policy flags must be set
    before calling `get()`/`post()`. Header values http.client cannot send
    (line breaks, characters outside latin-1) raise ValueError when set, and
    again when a request starts if `headers` was swapped for a plain dict.
    """

    def __init__(self, url: str, config: FetchConfig | None = None):
        self._url = _validate_url(url)
        config = config or get_default_config()

        self.headers = RequestHeaders()
        self.credential: Credential | None = None
        self.retries = config.retries
        self.timeout_ms = config.timeout_ms
        self.retry_delay_ms = config.retry_delay_ms
        self.insecure_skip_verify = config.insecure_skip_verify
        self.follow_redirects = config.follow_redirects
        self.legacy_form_encoding = config.legacy_form_encoding

        self._reset_outcome()

    @property
    def url(self) -> str:
        return self._url

    @property
    def status_code(self) -> int | None:
        return self.response.status_code if self.response else None

    def __repr__(self) -> str:
        return f"Fetcher(url={self._url!r}, success={self.success}, status={self.status_code})"

    def _reset_outcome(self) -> None:
        self.success = False
        self.response: ResponseInfo | None = None
        self.response_data: bytes | None = None
        self.attempts = 0
        self.timed_out = False
        self.last_error: Exception | None = None

    def get(self) -> None:
        """Make an HTTP GET request."""
        self._load("GET")

    def post(self, fields: Mapping[str, str] | None = None) -> None:
        """Make a form-encoded HTTP POST request."""
        self._load("POST", fields)

    def _build_request(self, method: str, body: bytes | None) -> urllib.request.Request:
        headers = dict(self.headers.items())
        if method == "POST":
            for name in [n for n in headers if n.lower() == "content-type"]:
                del headers[name]
            headers["Content-Type"] = FORM_CONTENT_TYPE
        return urllib.request.Request(self._url, data=body, headers=headers, method=method)

    def _validate_settings(self) -> None:
        for name in ("retries", "timeout_ms", "retry_delay_ms"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"{name} must be >= 0, got {value}")
        # Headers may have been replaced with a plain dict after construction.
        for name, value in self.headers.items():
            check_header(name, value)

    def _load(self, method: str, fields: Mapping[str, str] | None = None) -> None:
        self._validate_settings()
        self._reset_outcome()

        body = None
        if method == "POST":
            body = encode_form(fields, legacy=self.legacy_form_encoding)
        if self.insecure_skip_verify and self._url.lower().startswith("https"):
            logger.warning(f"TLS certificate validation is disabled for {self._url}")

        opener = build_opener(
            self.credential,
            url=self._url,
            verify=not self.insecure_skip_verify,
            follow_redirects=self.follow_redirects,
        )
        timeout = self.timeout_ms / 1000.0

        for attempt in range(self.retries):
            if attempt > 0:
                # Only timeouts get here: every other outcome breaks the loop.
                time.sleep(self.retry_delay_ms / 1000.0)

            self.attempts = attempt + 1
            self.response = None
            self.last_error = None
            self.timed_out = False
            req = self._build_request(method, body)
            logger.debug(f"{method} {self._url} (attempt {self.attempts}/{self.retries})")

            try:
                with opener.open(req, timeout=timeout) as resp:  # nosec B310 - url is controlled by caller
                    self.response = ResponseInfo.from_response(resp)
                    self._handle_status(resp)
                break
            except urllib.error.HTTPError as e:
                self.response = ResponseInfo.from_response(e)
                self.last_error = e
                release(e)
                self._handle_status(e)
                break
            except TRANSPORT_ERRORS as e:
                self.last_error = e
                if is_timeout(e):
                    self.timed_out = True
                    logger.warning(
                        f"Timeout fetching {self._url} (attempt {self.attempts}/{self.retries}): {e}"
                    )
                    continue
                logger.warning(f"Exception fetching {self._url}: {e}")
                break

        if self.timed_out and not self.success:
            logger.warning(f"Giving up on {self._url} after {self.attempts} timed out attempt(s)")

    def _handle_status(self, resp: Any) -> None:
        status = self.response.status_code if self.response else 0
        if status == HTTP_OK:
            self.response_data = resp.read()
            self.success = True
            logger.info(f"Fetched {len(self.response_data)} bytes from {self._url}")
        elif status == HTTP_FOUND:
            # The redirect was not followed; nothing to read.
            self.success = True
            logger.info(f"Found (302) at {self._url}, ignoring")
        else:
            logger.warning(f"Unexpected status {status} from {self._url}")

    def text(self) -> str:
        """Decode the body with the response charset (UTF-8 when none)."""
        return to_text(self.response_data, self.response.charset if self.response else None)

    def convert_response(self, target: type) -> Any:
        """Convert the body to `target` (bytes, str, int, float, Decimal or bool).

        Raises ConversionError when the body cannot be represented as `target`.
        """
        charset = self.response.charset if self.response else None
        return convert(self.response_data, charset, target)


def get(url: str, config: FetchConfig | None = None) -> bytes | None:
    """GET a URL with default settings and return the body (None on failure)."""
    f = Fetcher(url, config)
    f.get()
    return f.response_data


def get_as(url: str, target: type, config: FetchConfig | None = None) -> Any:
    """GET a URL and convert the body to `target`."""
    f = Fetcher(url, config)
    f.get()
    return f.convert_response(target)


def post(url: str, fields: Mapping[str, str] | None = None, config: FetchConfig | None = None) -> bytes | None:
    """POST form fields to a URL and return the body (None on failure)."""
    f = Fetcher(url, config)
    f.post(fields)
    return f.response_data


def post_as(
    url: str,
    target: type,
    fields: Mapping[str, str] | None = None,
    config: FetchConfig | None = None,
) -> Any:
    """POST form fields to a URL and convert the body to `target`."""
    f = Fetcher(url, config)
    f.post(fields)
    return f.convert_response(target)
