from __future__ import annotations

import asyncio
import ipaddress
import socket
from typing import Iterable, Optional

import httpx


class BlockedURLError(httpx.RequestError):
    """Target host resolved to a non-public address."""


class BlockedHostChecker:
    """
    Prüft jeden ausgehenden Request (auch Redirect-Hops) gegen private Ziele.

    Wird als httpx request event hook eingehängt; httpx ruft den Hook für
    jede Redirect-URL erneut auf. Die DNS-Auflösung läuft über den Event-Loop,
    damit die Deadline des Calls auch den Lookup begrenzt.
    """

    async def __call__(self, request: httpx.Request) -> None:
        url = request.url
        port = url.port or (443 if url.scheme == "https" else 80)
        blocked = await check_host(url.host, port)
        if blocked:
            raise BlockedURLError(f"blocked url ({blocked})")


async def check_host(host: str, port: int) -> Optional[str]:
    """
    Löst den Host auf und prüft alle Adressen (SSRF Protection).

    Gibt den Grund zurück oder None.
    """
    h = (host or "").strip().lower()
    if h in {"localhost"} or h.endswith(".localhost"):
        return "blocked hostname"
    loop = asyncio.get_running_loop()
    try:
        infos = await loop.getaddrinfo(host, port, type=socket.SOCK_STREAM)
    except (socket.gaierror, UnicodeError):
        return "dns resolution failed"
    return is_blocked_host(str(info[4][0]) for info in infos)


def is_blocked_host(addresses: Iterable[str]) -> Optional[str]:
    """
    Klassifiziert bereits aufgelöste Adressen.

    Blockiert private, loopback, link-local, reservierte, multicast und
    unspezifizierte Adressen.
    """
    for address in addresses:
        # IPv6 scope id (fe80::1%eth0) abschneiden
        ip_str = address.split("%", 1)[0]
        try:
            ip = ipaddress.ip_address(ip_str)
        except ValueError:
            return "invalid ip"
        if ip.is_private or ip.is_loopback or ip.is_link_local or ip.is_reserved or ip.is_multicast or ip.is_unspecified:
            return f"blocked ip {ip}"
    return None
