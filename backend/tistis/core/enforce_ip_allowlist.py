"""IP Allowlist Enforcement: client IP extraction and CIDR matching.

Invariants:
    - Empty/None allowlist means every IP is allowed
    - With an allowlist, an unparseable or missing client IP is denied
    - Entries match exactly or by IPv4/IPv6 CIDR network membership
    - Proxy header precedence: x-forwarded-for (first hop) > x-real-ip > cf-connecting-ip
"""

import ipaddress
from collections.abc import Iterable, Mapping

_PROXY_HEADERS = ("x-forwarded-for", "x-real-ip", "cf-connecting-ip")


def extract_client_ip(headers: Mapping[str, str]) -> str | None:
    """First client IP advertised by the proxy chain."""
    for name in _PROXY_HEADERS:
        raw = headers.get(name)
        if raw:
            first = raw.split(",")[0].strip()
            if first:
                return first
    return None


def _parse_entry(entry: str):
    try:
        if "/" in entry:
            return ipaddress.ip_network(entry.strip(), strict=False)
        return ipaddress.ip_address(entry.strip())
    except ValueError:
        return None


def is_ip_allowed(ip: str | None, allowlist: Iterable[str] | None) -> bool:
    entries = [e for e in (allowlist or []) if e]
    if not entries:
        return True
    if not ip:
        return False
    try:
        address = ipaddress.ip_address(ip.strip())
    except ValueError:
        return False

    for entry in entries:
        if entry.strip() == ip.strip():
            return True
        parsed = _parse_entry(entry)
        if isinstance(parsed, (ipaddress.IPv4Network, ipaddress.IPv6Network)):
            if address.version == parsed.version and address in parsed:
                return True
        elif parsed is not None and parsed == address:
            return True
    return False


def sanitize_allowlist(entries: Iterable[str] | None) -> list[str] | None:
    """Drop invalid entries; empty result collapses to None (no restriction)."""
    cleaned = []
    for entry in entries or []:
        entry = (entry or "").strip()
        if entry and _parse_entry(entry) is not None and entry not in cleaned:
            cleaned.append(entry)
    return cleaned or None
