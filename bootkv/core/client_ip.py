"""Client address resolution for the HTTP layer.

The peer address is authoritative unless it is a private or loopback address,
in which case the request is assumed to come through a local reverse proxy and
the first parseable ``X-Forwarded-For`` entry is used instead. Only IPv4
clients are served.
"""

from __future__ import annotations

import ipaddress
import logging
from dataclasses import dataclass
from ipaddress import IPv4Address, IPv6Address

from fastapi import Request

from bootkv.core.config import ServerSettings
from bootkv.core.errors import ValidationAppError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ClientAddress:
    ip: IPv4Address
    text: str
    via_proxy: bool = False


def _parse_ip(candidate: str) -> IPv4Address | IPv6Address | None:
    try:
        return ipaddress.ip_address(candidate.strip())
    except ValueError:
        return None


def _to_ipv4(ip: IPv4Address | IPv6Address) -> IPv4Address | None:
    if isinstance(ip, IPv4Address):
        return ip
    return ip.ipv4_mapped


def _forwarded_for(header_value: str) -> IPv4Address | IPv6Address | None:
    for candidate in header_value.split(","):
        parsed = _parse_ip(candidate)
        if parsed is not None:
            return parsed
    return None


def resolve_client_address(
    peer_host: str | None,
    forwarded_for: str | None,
    server_settings: ServerSettings,
) -> ClientAddress:
    """Resolve the effective client IPv4 address.

    Args:
        peer_host: Socket peer host as reported by the ASGI server.
        forwarded_for: Raw ``X-Forwarded-For`` header, if any.
        server_settings: Proxy trust configuration.

    Returns:
        ClientAddress with the IPv4 address and its dotted text form.

    Raises:
        ValidationAppError: ``invalid_client_ip`` if no address can be parsed,
            ``ipv4_required`` for IPv6 clients.
    """
    peer = _parse_ip(peer_host or "")
    if peer is None:
        raise ValidationAppError(
            code="invalid_client_ip",
            message="Client address could not be determined",
        )

    resolved = peer
    via_proxy = False
    if server_settings.trust_private_proxies and (peer.is_private or peer.is_loopback) and forwarded_for:
        forwarded = _forwarded_for(forwarded_for)
        if forwarded is not None:
            resolved = forwarded
            via_proxy = True

    if not via_proxy and str(peer) == "127.0.0.1" and not server_settings.disable_local_ip_warning:
        logger.warning(
            "client_ip.localhost_request",
            extra={"hint": "Request from localhost; the reverse proxy may not be setting X-Forwarded-For"},
        )

    ipv4 = _to_ipv4(resolved)
    if ipv4 is None:
        raise ValidationAppError(code="ipv4_required", message="Only IPv4 is supported")

    return ClientAddress(ip=ipv4, text=str(ipv4), via_proxy=via_proxy)


def get_client_address(request: Request, server_settings: ServerSettings) -> ClientAddress:
    peer_host = request.client.host if request.client else None
    return resolve_client_address(peer_host, request.headers.get("X-Forwarded-For"), server_settings)
