"""Network endpoint extraction from command text.

Only strings that appear in the command are reported; nothing is resolved
or contacted. Three shapes are recognized:

- URLs: scheme://host[:port][/path]
- bare IPv4 addresses, with or without a port
- hostnames with a port, where the hostname is dotted or `localhost`
"""

import re

URL_RE = re.compile(r"\b[a-zA-Z][a-zA-Z0-9+.-]*://[^\s'\"<>|;`(){}]+")

HOST_PORT_RE = re.compile(
    r"(?<![\w./@:-])"
    r"(?:"
    r"(?P<ip>(?:\d{1,3}\.){3}\d{1,3})(?::(?P<ip_port>\d{1,5}))?"
    r"|(?P<host>localhost|(?:[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?\.)+[a-zA-Z][a-zA-Z0-9-]*)"
    r":(?P<host_port>\d{1,5})"
    r")"
    r"(?![\w.:/-])"
)

# Characters that close a sentence or quote rather than belong to a URL
TRAILING_PUNCTUATION = ".,:!?"


def _valid_port(port: str | None) -> bool:
    return port is None or 0 < int(port) <= 65535


def _valid_ipv4(address: str) -> bool:
    return all(int(octet) <= 255 for octet in address.split("."))


def extract_endpoints(command: str) -> list[str]:
    """Find URL-like and host:port-like substrings in a command.

    Args:
        command: Raw command text

    Returns:
        Matched substrings verbatim, in order of appearance, without duplicates
    """
    found: list[tuple[int, str]] = []

    # Blank out URLs so their host parts are not matched again below
    masked = list(command)
    for match in URL_RE.finditer(command):
        url = match.group(0).rstrip(TRAILING_PUNCTUATION)
        if "://" not in url or url.endswith("://"):
            continue
        found.append((match.start(), url))
        masked[match.start():match.end()] = " " * (match.end() - match.start())

    for match in HOST_PORT_RE.finditer("".join(masked)):
        if match.group("ip"):
            if not _valid_ipv4(match.group("ip")) or not _valid_port(match.group("ip_port")):
                continue
        elif not _valid_port(match.group("host_port")):
            continue
        found.append((match.start(), match.group(0)))

    endpoints: list[str] = []
    for _, endpoint in sorted(found, key=lambda item: item[0]):
        if endpoint not in endpoints:
            endpoints.append(endpoint)
    return endpoints
