"""SSH key discovery and validation."""

from __future__ import annotations

import base64
import binascii
import logging
import os
import re
import stat
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union

import paramiko

from ..errors import KeyValidationError
from ..paths import to_relative_ssh_path

logger = logging.getLogger(__name__)

UNKNOWN_FINGERPRINT = "Unknown"
KEY_TYPES = ("rsa", "ed25519", "ecdsa", "dsa")

_EXCLUDED_NAMES = ("known_hosts", "config", "authorized_keys")

# Checked in order; the first key type with a matching marker wins.
_TEXT_MARKERS: tuple[tuple[str, tuple[str, ...]], ...] = (
    ("ed25519", ("ssh-ed25519", "ED25519")),
    ("rsa", ("ssh-rsa", "RSA")),
    ("ecdsa", ("ecdsa", "ECDSA", " EC PRIVATE KEY")),
    ("dsa", ("ssh-dss", "DSA")),
)
_BINARY_MARKERS: tuple[tuple[str, bytes], ...] = (
    ("ed25519", b"ssh-ed25519"),
    ("rsa", b"ssh-rsa"),
    ("ecdsa", b"ecdsa-sha2-"),
    ("dsa", b"ssh-dss"),
)
_PUBLIC_PREFIXES: tuple[tuple[str, str], ...] = (
    ("ed25519", "ssh-ed25519"),
    ("ed25519", "sk-ssh-ed25519"),
    ("rsa", "ssh-rsa"),
    ("ecdsa", "ecdsa-sha2-"),
    ("ecdsa", "sk-ecdsa-sha2-"),
    ("dsa", "ssh-dss"),
)
_BASE64_LINE = re.compile(r"^[A-Za-z0-9+/=]+$")


@dataclass
class SSHKeyRecord:
    """A discovered private/public key pair."""

    name: str
    path: str
    public_key_path: str
    key_type: str = "rsa"
    fingerprint: str = UNKNOWN_FINGERPRINT
    relative_path: str = ""


def key_generation_hint(email: str = "your_email@example.com") -> str:
    return (
        "Generate a new SSH key with:\n"
        f'  ssh-keygen -t ed25519 -C "{email}"\n'
        "Or, where ed25519 is not supported:\n"
        f'  ssh-keygen -t rsa -b 4096 -C "{email}"\n'
        "Then add the public key to your Git service (GitHub, GitLab, etc.)."
    )


def is_private_key_candidate(name: str) -> bool:
    """Name-only part of the candidate rule (the .pub sibling is checked separately)."""
    if name.endswith(".pub") or name.startswith("."):
        return False
    if name in _EXCLUDED_NAMES:
        return False
    return not name.startswith(("known_hosts", "authorized_keys"))


def classify_key_type(private_text: str, public_text: str = "") -> str:
    """Best-effort key type; falls back to ``rsa`` and never fails."""
    lines = private_text.splitlines()
    marker_text = "\n".join(line for line in lines if not _BASE64_LINE.match(line.strip()))
    for key_type, markers in _TEXT_MARKERS:
        if any(marker in marker_text for marker in markers):
            return key_type

    # OpenSSH-format keys keep the algorithm name inside the (unencrypted) base64 header.
    if "OPENSSH PRIVATE KEY" in private_text:
        body = "".join(line.strip() for line in lines if _BASE64_LINE.match(line.strip()))
        try:
            decoded = base64.b64decode(body)
        except (binascii.Error, ValueError):
            decoded = b""
        for key_type, marker in _BINARY_MARKERS:
            if marker in decoded:
                return key_type

    token = public_text.strip().split(" ", 1)[0] if public_text.strip() else ""
    for key_type, prefix in _PUBLIC_PREFIXES:
        if token.startswith(prefix):
            return key_type
    return "rsa"


def validate_key_pair(private_path: Union[str, Path], public_path: Union[str, Path, None] = None) -> None:
    """Raise KeyValidationError unless both halves exist, are readable and well formed."""
    private = Path(private_path)
    public = Path(public_path) if public_path else Path(f"{private}.pub")

    if not private.is_file():
        raise KeyValidationError(
            f"SSH key file does not exist: {private}",
            hint="Run `gitsm fix` to pick another key.",
        )
    if not os.access(private, os.R_OK):
        raise KeyValidationError(f"SSH key file is not readable: {private}")
    if not public.is_file():
        raise KeyValidationError(
            f"Public key not found: {public}",
            hint=f"Recreate it with: ssh-keygen -y -f {private} > {public}",
        )
    try:
        blob = paramiko.PublicBlob.from_file(str(public))
    except Exception as exc:
        raise KeyValidationError(f"Public key {public} is not a valid OpenSSH public key: {exc}") from exc
    logger.debug("Validated key pair %s (%s)", private, blob.key_type)


class KeyScanner:
    """Discovers usable key pairs in an SSH directory."""

    def __init__(
        self,
        ssh_dir: Union[str, Path],
        *,
        keygen_binary: str = "ssh-keygen",
        fingerprint_timeout: int = 5,
    ) -> None:
        self.ssh_dir = Path(ssh_dir).expanduser()
        self.keygen_binary = keygen_binary
        self.fingerprint_timeout = fingerprint_timeout

    def discover(self) -> list[SSHKeyRecord]:
        """Return every valid key pair; an empty list signals "no keys", never an error."""
        try:
            if not self.ssh_dir.is_dir():
                logger.warning("SSH directory not found: %s, creating it", self.ssh_dir)
                self._create_ssh_dir()
                return []
            entries = sorted(self.ssh_dir.iterdir(), key=lambda p: p.name)
        except OSError as exc:
            logger.warning("Failed to discover SSH keys in %s: %s", self.ssh_dir, exc)
            return []

        keys: list[SSHKeyRecord] = []
        for entry in entries:
            try:
                record = self._inspect(entry)
            except OSError as exc:
                logger.debug("Skipping %s: %s", entry.name, exc)
                continue
            if record is not None:
                keys.append(record)
        return keys

    def _create_ssh_dir(self) -> None:
        try:
            self.ssh_dir.mkdir(parents=True, exist_ok=True)
            if os.name == "posix":
                self.ssh_dir.chmod(0o700)
        except OSError as exc:
            logger.warning("Could not create SSH directory %s: %s", self.ssh_dir, exc)

    def _inspect(self, entry: Path) -> Optional[SSHKeyRecord]:
        if not is_private_key_candidate(entry.name) or not entry.is_file():
            return None
        public = entry.with_name(f"{entry.name}.pub")
        if not public.is_file():
            logger.debug("Public key not found for %s", entry.name)
            return None
        if not (os.access(entry, os.R_OK) and os.access(public, os.R_OK)):
            logger.debug("Cannot access key files for %s", entry.name)
            return None

        self._fix_permissions(entry)
        private_text = entry.read_text(encoding="utf-8", errors="replace")
        public_text = public.read_text(encoding="utf-8", errors="replace")
        return SSHKeyRecord(
            name=entry.name,
            path=str(entry.absolute()),
            public_key_path=str(public.absolute()),
            key_type=classify_key_type(private_text, public_text),
            fingerprint=self.fingerprint(public),
            relative_path=to_relative_ssh_path(str(entry.absolute())),
        )

    def _fix_permissions(self, key_path: Path) -> None:
        if os.name != "posix":
            return
        try:
            mode = stat.S_IMODE(key_path.stat().st_mode)
            if mode not in (0o600, 0o400):
                logger.info("Fixing permissions for %s (was %o)", key_path.name, mode)
                key_path.chmod(0o600)
        except OSError as exc:
            logger.warning("Could not fix permissions for %s: %s", key_path.name, exc)

    def fingerprint(self, public_key_path: Union[str, Path]) -> str:
        """Second field of ``ssh-keygen -lf``; ``Unknown`` on any failure."""
        try:
            result = subprocess.run(
                [self.keygen_binary, "-lf", str(public_key_path)],
                capture_output=True,
                text=True,
                timeout=self.fingerprint_timeout,
                check=False,
            )
        except (OSError, subprocess.SubprocessError) as exc:
            logger.debug("Could not get fingerprint for %s: %s", public_key_path, exc)
            return UNKNOWN_FINGERPRINT
        parts = result.stdout.strip().split()
        if result.returncode != 0 or len(parts) < 2:
            return UNKNOWN_FINGERPRINT
        return parts[1]
