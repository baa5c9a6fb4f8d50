"""SSH utilities for gitsm."""

from .keys import KeyScanner, SSHKeyRecord, key_generation_hint, validate_key_pair
from .probe import DEFAULT_GREETINGS, KeyTester, ProbeResult, ProviderGreeting
from .remote import RemoteEndpoint, convert_to_https, convert_to_ssh, is_ssh_url, parse_remote_url

__all__ = [
    "DEFAULT_GREETINGS",
    "KeyScanner",
    "KeyTester",
    "ProbeResult",
    "ProviderGreeting",
    "RemoteEndpoint",
    "SSHKeyRecord",
    "convert_to_https",
    "convert_to_ssh",
    "is_ssh_url",
    "key_generation_hint",
    "parse_remote_url",
    "validate_key_pair",
]
