"""Credential records and URL matching for authenticated remotes."""

from __future__ import annotations

from dataclasses import dataclass
from urllib.parse import urlsplit

_DEFAULT_PORTS = {"https": 443, "http": 80}


@dataclass
class GitCredential:
    """A username/password pair scoped to one ``protocol://host[:port]``."""

    protocol: str
    host: str
    username: str = ""
    password: str = ""

    @classmethod
    def from_dict(cls, data: dict) -> GitCredential:
        return cls(
            protocol=str(data.get("protocol", "https")),
            host=str(data.get("host", "")),
            username=str(data.get("username") or ""),
            password=str(data.get("password") or ""),
        )

    def to_dict(self) -> dict:
        return {
            "protocol": self.protocol,
            "host": self.host,
            "username": self.username,
            "password": self.password,
        }


def _host_and_port(protocol: str, host: str) -> tuple[str, int | None]:
    name, sep, port = host.rpartition(":")
    if sep and port.isdigit():
        return name.lower(), int(port)
    return host.lower(), _DEFAULT_PORTS.get(protocol)


def find_credentials_for_repo(
    url: str, credentials: list[GitCredential],
) -> GitCredential | None:
    """Return the credential to use for *url*, or ``None``.

    Protocol, hostname and effective port must match (an omitted port
    means the protocol default).  When the URL names a user, a credential
    for that user wins over an anonymous one and credentials for other
    users never match.
    """
    try:
        parts = urlsplit(url)
        port = parts.port
    except ValueError:
        return None
    protocol = parts.scheme.lower()
    if not protocol or not parts.hostname:
        return None
    hostname = parts.hostname.lower()
    if port is None:
        port = _DEFAULT_PORTS.get(protocol)
    url_user = parts.username or ""

    fallback = None
    for cred in credentials:
        if cred.protocol.lower().rstrip(":") != protocol:
            continue
        if _host_and_port(protocol, cred.host) != (hostname, port):
            continue
        if not url_user:
            return cred
        if cred.username == url_user:
            return cred
        if not cred.username and fallback is None:
            fallback = cred
    return fallback
