"""auth.py - Source IP allow-list gate.

A POST is accepted only when the caller's source IP equals one of the
configured ``ALLOWED_IPS`` or an IPv4 address one of the ``ALLOWED_HOSTS``
resolves to at request time.
"""
from __future__ import annotations

import socket
from typing import Callable, List

from config import ToolboxConfig, logger

__all__ = [
    "_resolve_ipv4",
    "_source_allowed",
]


def _resolve_ipv4(host: str) -> List[str]:
    """Return the IPv4 addresses of ``host``; an unresolvable host yields none."""
    try:
        infos = socket.getaddrinfo(host, None, socket.AF_INET)
    except (socket.gaierror, UnicodeError) as exc:
        logger.warning("allowed host %s did not resolve: %s", host, exc)
        return []
    addrs: List[str] = []
    for info in infos:
        addr = info[4][0]
        if addr not in addrs:
            addrs.append(addr)
    return addrs


def _source_allowed(
    source_ip: str,
    config: ToolboxConfig,
    resolver: Callable[[str], List[str]] = _resolve_ipv4,
) -> bool:
    if not source_ip:
        return False
    if source_ip in config.allowed_ips:
        return True
    for host in config.allowed_hosts:
        if source_ip in resolver(host):
            return True
    return False
