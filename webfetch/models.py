"""Value types shared by the fetcher and the transport helpers."""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping, MutableMapping
from dataclasses import dataclass, field
from typing import Any

# RFC 7230 token characters.
_HEADER_NAME_RE = re.compile(r"[!#$%&'*+.^_`|~0-9A-Za-z-]+")


def check_header(name: str, value: str) -> None:
    """Raise ValueError for a header http.client would refuse to send.

    Names must be tokens; values must be latin-1 and a single line.
    """
    if not isinstance(name, str) or not _HEADER_NAME_RE.fullmatch(name):
        raise ValueError(f"Invalid header name {name!r}")
    value = str(value)
    if "\r" in value or "\n" in value:
        raise ValueError(f"Header {name} contains a line break")
    try:
        value.encode("latin-1")
    except UnicodeEncodeError:
        raise ValueError(f"Header {name} is not latin-1 encodable: {value!r}") from None


class Headers(MutableMapping):
    """Header name → value mapping with case-insensitive names.

    The spelling of the most recent assignment is kept for sending.
    """

    def __init__(self, data: Mapping[str, str] | None = None, **kwargs: str) -> None:
        self._store: dict[str, tuple[str, str]] = {}
        self.update(data or {}, **kwargs)

    def __setitem__(self, name: str, value: str) -> None:
        self._store[name.lower()] = (name, str(value))

    def __getitem__(self, name: str) -> str:
        return self._store[name.lower()][1]

    def __delitem__(self, name: str) -> None:
        del self._store[name.lower()]

    def __iter__(self) -> Iterator[str]:
        return (original for original, _value in self._store.values())

    def __len__(self) -> int:
        return len(self._store)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Mapping):
            return NotImplemented
        theirs = {str(k).lower(): v for k, v in other.items()}
        return {k: v for k, (_n, v) in self._store.items()} == theirs

    def __repr__(self) -> str:
        return f"Headers({dict(self.items())!r})"

    def copy(self) -> "Headers":
        return type(self)(dict(self.items()))


class RequestHeaders(Headers):
    """Headers to send; values http.client cannot put on the wire are refused
    when they are set."""

    def __setitem__(self, name: str, value: str) -> None:
        check_header(name, value)
        super().__setitem__(name, value)


@dataclass(frozen=True)
class Credential:
    """Username/password pair, optionally qualified by a domain."""

    username: str
    password: str
    domain: str | None = None

    @property
    def login(self) -> str:
        # DOMAIN\user is how domain accounts are presented over basic/digest auth.
        if self.domain:
            return f"{self.domain}\\{self.username}"
        return self.username

    def __repr__(self) -> str:
        return f"Credential(username={self.username!r}, password='***', domain={self.domain!r})"


@dataclass(frozen=True)
class ResponseInfo:
    """Status metadata captured from the last response (never the body)."""

    status_code: int
    reason: str = ""
    headers: Headers = field(default_factory=Headers)
    content_type: str | None = None
    charset: str | None = None
    url: str | None = None

    @classmethod
    def from_response(cls, resp: Any) -> "ResponseInfo":
        """Capture metadata from a urllib response or `HTTPError`."""
        status = getattr(resp, "status", None) or getattr(resp, "code", None) or 0
        message = getattr(resp, "headers", None)
        headers = Headers(dict(message.items())) if message is not None else Headers()

        content_type = None
        charset = None
        if message is not None and message.get("Content-Type"):
            content_type = message.get_content_type()
            charset = message.get_content_charset()

        reason = getattr(resp, "reason", None) or getattr(resp, "msg", None) or ""
        url = getattr(resp, "url", None)
        return cls(
            status_code=int(status),
            reason=str(reason),
            headers=headers,
            content_type=content_type,
            charset=charset,
            url=url,
        )
