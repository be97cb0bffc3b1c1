"""DoH media types and the base64url codec for the GET ``dns`` parameter."""

import base64
import binascii

from doh_proxy.proxy_service.errors import InvalidParameter

DOH_MEDIA_TYPE = "application/dns-message"
DOH_JSON_MEDIA_TYPE = "application/dns-json"
# Pre-RFC 8484 drafts used this name; some clients still send it.
DOH_LEGACY_MEDIA_TYPE = "application/dns-udpwireformat"
DOH_DNS_PARAM = "dns"


def decode_dns_param(value: str) -> bytes:
    """
    Decode a base64url ``dns`` parameter into the raw DNS message.

    ``-`` and ``_`` are mapped back to ``+`` and ``/`` and the value is
    padded with ``=`` to a multiple of four before a strict decode.

    Raises:
        InvalidParameter: If the value is not valid base64url
    """
    translated = value.replace("-", "+").replace("_", "/")
    translated += "=" * (-len(translated) % 4)
    try:
        return base64.b64decode(translated, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise InvalidParameter() from exc


def encode_dns_param(message: bytes) -> str:
    """Encode a DNS message as unpadded base64url, as DoH clients send it."""
    return base64.urlsafe_b64encode(message).rstrip(b"=").decode("ascii")


def is_dns_media_type(content_type: str | None) -> bool:
    """Whether a request Content-Type carries a DNS wire-format message."""
    if not content_type:
        return False
    content_type = content_type.lower()
    return DOH_MEDIA_TYPE in content_type or DOH_LEGACY_MEDIA_TYPE in content_type
