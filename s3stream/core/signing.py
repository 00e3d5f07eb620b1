"""Request signing for the S3 REST API (AWS Signature Version 2).

Every request sent to the store carries an ``Authorization`` header of the
form ``AWS <access-key>:<signature>``, where the signature is a base64
HMAC-SHA1 over a canonical description of the request. The canonical form
has to match the store's own computation byte for byte, otherwise the
request is rejected with a 403.

See http://docs.aws.amazon.com/AmazonS3/latest/dev/RESTAuthentication.html
"""

from __future__ import annotations

import base64
import hashlib
import hmac
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Sequence, Tuple
from urllib.parse import quote

from s3stream.const import AMZ_HEADER_PREFIX, HTTP_DATE_FORMAT

# Ordered (name, value) pairs. A name may repeat.
HeaderItems = List[Tuple[str, str]]
QueryItems = List[Tuple[str, str]]


def http_date(now: datetime | None = None) -> str:
    """Format a timestamp as an HTTP-date in UTC."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).strftime(HTTP_DATE_FORMAT)


def escape(value: str) -> str:
    """Percent-encode a path segment or query component.

    Only unreserved characters are left alone and spaces become ``%20``.
    """
    return quote(value, safe="")


def get_header(headers: Sequence[Tuple[str, str]], name: str) -> str:
    """Return the first value of a header, matched case-insensitively."""
    wanted = name.lower()
    for header_name, value in headers:
        if header_name.lower() == wanted:
            return value
    return ""


def canonical_resource(path: str, query: Sequence[Tuple[str, str]]) -> Tuple[str, str]:
    """Canonicalize a resource path and its query parameters.

    Args:
        path: Unescaped resource path, e.g. ``/bucket/some key.txt``.
        query: Query parameters as ordered pairs. Empty values produce a
            bare name with no ``=``.

    Returns:
        Tuple of (canonical resource, raw query string). The raw query is
        what must be sent on the wire, since the store verifies the
        signature against the query as received.
    """
    canonical = "/".join(escape(segment) for segment in path.split("/"))

    if not query:
        return canonical, ""

    grouped: dict[str, list[str]] = {}
    for name, value in query:
        grouped.setdefault(name, []).append(value)

    parts = []
    for name in sorted(grouped):
        for value in grouped[name]:
            if value == "":
                parts.append(escape(name))
            else:
                parts.append(f"{escape(name)}={escape(value)}")

    raw_query = "&".join(parts)
    return f"{canonical}?{raw_query}", raw_query


def canonical_amz_headers(headers: Sequence[Tuple[str, str]]) -> str:
    """Build the canonical ``x-amz-*`` header block.

    Names are lower-cased and sorted; repeated headers are joined with a
    comma in the order they were added. Each entry ends with a newline.
    """
    grouped: dict[str, list[str]] = {}
    for name, value in headers:
        lowered = name.lower()
        if lowered.startswith(AMZ_HEADER_PREFIX):
            grouped.setdefault(lowered, []).append(value)

    return "".join(f"{name}:{','.join(grouped[name])}\n" for name in sorted(grouped))


@dataclass
class SigningContext:
    """Everything about one outbound request that takes part in its signature.

    Attributes:
        method: HTTP method.
        resource: Unescaped resource path including the bucket,
            e.g. ``/bucket/prefix/key``.
        query: Query parameters as ordered pairs.
        headers: Request headers as ordered pairs.
    """

    method: str
    resource: str
    query: QueryItems = field(default_factory=list)
    headers: HeaderItems = field(default_factory=list)

    def header(self, name: str) -> str:
        return get_header(self.headers, name)


@dataclass
class SignedRequest:
    """Headers and query string to put on the wire for a signed request."""

    headers: HeaderItems
    query_string: str
    signature: str
    authorization: str

    def header_dict(self) -> dict[str, str]:
        """Collapse the headers to a mapping, comma-joining repeated names."""
        collapsed: dict[str, str] = {}
        for name, value in self.headers:
            if name in collapsed:
                collapsed[name] = f"{collapsed[name]},{value}"
            else:
                collapsed[name] = value
        return collapsed


def string_to_sign(context: SigningContext) -> str:
    """Build the newline-separated string that gets signed."""
    resource, _ = canonical_resource(context.resource, context.query)
    return "\n".join(
        [
            context.method.strip(),
            context.header("Content-MD5"),
            context.header("Content-Type"),
            context.header("Date"),
            canonical_amz_headers(context.headers) + resource,
        ]
    )


def sign(secret_key: str, data: str) -> str:
    """Return the base64 HMAC-SHA1 of ``data`` keyed with ``secret_key``."""
    digest = hmac.new(
        secret_key.encode("utf-8"), data.encode("utf-8"), hashlib.sha1
    ).digest()
    return base64.b64encode(digest).decode("ascii")


def sign_request(
    context: SigningContext,
    access_key: str,
    secret_key: str,
    now: datetime | None = None,
) -> SignedRequest:
    """Sign a request, stamping a ``Date`` header first if it has none.

    Args:
        context: The request to sign. Its header list gains a ``Date``
            entry when missing.
        access_key: Public access key id.
        secret_key: Secret used for the HMAC.
        now: Timestamp used for the ``Date`` header, defaults to now.

    Returns:
        The headers (including ``Authorization``) and the query string to send.
    """
    if not context.header("Date"):
        context.headers.append(("Date", http_date(now)))

    signature = sign(secret_key, string_to_sign(context))
    authorization = f"AWS {access_key}:{signature}"
    _, query_string = canonical_resource(context.resource, context.query)

    headers = [
        (name, value)
        for name, value in context.headers
        if name.lower() != "authorization"
    ]
    headers.append(("Authorization", authorization))
    return SignedRequest(
        headers=headers,
        query_string=query_string,
        signature=signature,
        authorization=authorization,
    )


def presign_query(
    method: str,
    resource: str,
    access_key: str,
    secret_key: str,
    expires: int,
) -> QueryItems:
    """Query string authentication for a URL valid until ``expires``.

    The expiry, as seconds since the epoch, takes the place of the ``Date``
    header in the string to sign.

    Returns:
        The ``AWSAccessKeyId``, ``Expires`` and ``Signature`` parameters.
    """
    context = SigningContext(
        method=method, resource=resource, headers=[("Date", str(expires))]
    )
    signature = sign(secret_key, string_to_sign(context))
    return [
        ("AWSAccessKeyId", access_key),
        ("Expires", str(expires)),
        ("Signature", signature),
    ]
