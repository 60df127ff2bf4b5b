"""Domain utilities for normalization and parsing."""

import re
from pathlib import Path
from typing import Iterator, Union
from urllib.parse import urlsplit

import tldextract

# Offline extractor: uses the public suffix snapshot bundled with tldextract
_EXTRACT = tldextract.TLDExtract(suffix_list_urls=())


def normalize_domain(domain: str) -> str:
    """
    Normalize a domain or URL to a canonical host.

    - Converts to lowercase
    - Strips www. prefix
    - Handles URLs by extracting the host (userinfo and port dropped)
    - Handles IDN (internationalized domain names)
    - Strips whitespace and trailing dots

    Args:
        domain: Raw domain string or URL

    Returns:
        Normalized domain string

    Examples:
        >>> normalize_domain("WWW.EXAMPLE.COM")
        'example.com'
        >>> normalize_domain("https://www.example.com:8443/path")
        'example.com'
        >>> normalize_domain("  example.com.  ")
        'example.com'
    """
    if not domain:
        return ""

    domain = domain.strip()

    if "://" in domain:
        domain = urlsplit(domain).netloc
    else:
        # Bare "host/path" or "host?query"
        domain = re.split(r"[/?#]", domain, maxsplit=1)[0]

    # Drop userinfo and port
    domain = domain.rsplit("@", 1)[-1]
    if not domain.startswith("["):
        domain = domain.split(":", 1)[0]

    domain = domain.lower().rstrip(".")

    if domain.startswith("www."):
        domain = domain[4:]

    # Handle IDN (internationalized domains)
    try:
        domain = domain.encode("ascii").decode("idna")
    except (UnicodeError, UnicodeDecodeError):
        try:
            domain = domain.encode("idna").decode("ascii")
        except (UnicodeError, UnicodeDecodeError):
            pass

    return domain


def parent_domains(host: str) -> Iterator[str]:
    """
    Yield a host and every domain it is a subdomain of.

    A host ``H`` is covered by a registry entry ``E`` when ``H == E`` or ``H``
    ends with ``"." + E``; these are exactly the values yielded here.

    Examples:
        >>> list(parent_domains("a.b.example.com"))
        ['a.b.example.com', 'b.example.com', 'example.com', 'com']
    """
    host = normalize_domain(host)
    if not host:
        return

    parts = host.split(".")
    for i in range(len(parts)):
        yield ".".join(parts[i:])


def get_apex_domain(domain: str) -> str:
    """
    Get the apex/registered domain (domain + public suffix, no subdomains).

    Args:
        domain: Domain name or URL

    Returns:
        Apex domain

    Examples:
        >>> get_apex_domain("w17.sololevelinganime.com")
        'sololevelinganime.com'
        >>> get_apex_domain("api.staging.example.co.uk")
        'example.co.uk'
    """
    normalized = normalize_domain(domain)
    if not normalized:
        return ""

    result = _EXTRACT(normalized)
    if result.domain and result.suffix:
        return f"{result.domain}.{result.suffix}"
    return normalized


def batch_normalize_domains(domains: list[str]) -> list[str]:
    """
    Normalize a batch of domains.

    Args:
        domains: List of domain strings

    Returns:
        List of normalized domains (duplicates removed, empty strings filtered)
    """
    normalized = {normalize_domain(d) for d in domains if d}
    return sorted([d for d in normalized if d])


def load_domain_list(path: Union[str, Path]) -> list[str]:
    """
    Load domains from a list file.

    Accepts one domain or URL per line and hosts-file lines
    (``127.0.0.1 domain.com``); blank lines and ``#`` comments are skipped.

    Returns:
        Normalized, de-duplicated domains
    """
    domains = []
    with open(path, "r", encoding="utf-8") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            # Last field is the domain in hosts format
            domains.append(line.split()[-1])

    return batch_normalize_domains(domains)
