"""Line-oriented editing of a repository's git config file.

The file is kept as an ordered list of tagged lines (section headers,
key/value entries and opaque passthrough text). Only the ``core.sshCommand``
entry is ever rewritten; every other byte is rendered back unchanged.
"""

from __future__ import annotations

import logging
import os
import re
import stat
import tempfile
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional, Union

from ..errors import ConfigParseError
from ..paths import normalize_for_ssh

logger = logging.getLogger(__name__)

SSH_COMMAND_SECTION = "core"
SSH_COMMAND_KEY = "sshCommand"
SSH_COMMAND_OPTIONS = "-F /dev/null -o IdentitiesOnly=yes -o StrictHostKeyChecking=no -o UserKnownHostsFile=/dev/null"

_HEADER = re.compile(r"^\s*\[(?P<body>[^\]\n]*)\]")
_SECTION_NAME = re.compile(r'^\s*(?P<name>[A-Za-z0-9.-]+)(?:\s+"(?P<sub>(?:[^"\\\n]|\\.)*)")?\s*$')
_ENTRY = re.compile(r"^(?P<indent>\s*)(?P<key>[A-Za-z][A-Za-z0-9-]*)\s*(?P<eq>=)?")

_UNESCAPES = {"n": "\n", "t": "\t", "b": "\b", "\\": "\\", '"': '"'}


class LineKind(str, Enum):
    HEADER = "header"
    ENTRY = "entry"
    OPAQUE = "opaque"


@dataclass
class ConfigLine:
    """One logical line; ``raw`` may span continuation lines and keeps its line ending."""

    kind: LineKind
    raw: str
    section: Optional[str] = None      # lower-cased section name (headers)
    subsection: Optional[str] = None
    key: Optional[str] = None          # lower-cased key name (entries)

    @property
    def indent(self) -> str:
        match = _ENTRY.match(self.raw)
        return match.group("indent") if match else ""

    @property
    def raw_value(self) -> Optional[str]:
        if self.kind is not LineKind.ENTRY:
            return None
        _, sep, rest = self.raw.partition("=")
        return rest if sep else ""


def format_ssh_command(key_path: str) -> str:
    """The ``core.sshCommand`` value binding a repository to `key_path`."""
    path = normalize_for_ssh(key_path)
    return f'ssh -i "{path}" {SSH_COMMAND_OPTIONS}'


def encode_value(value: str) -> str:
    """Escape a value the way ``git config`` writes it."""
    escaped = (
        value.replace("\\", "\\\\")
        .replace('"', '\\"')
        .replace("\n", "\\n")
        .replace("\t", "\\t")
    )
    if escaped != escaped.strip() or "#" in value or ";" in value:
        return f'"{escaped}"'
    return escaped


def decode_value(raw: str) -> str:
    """Inverse of :func:`encode_value` for a raw value as found after ``=``."""
    out: list[str] = []
    pending = ""
    in_quote = False
    i = 0
    while i < len(raw):
        char = raw[i]
        if char == "\\":
            nxt = raw[i + 1] if i + 1 < len(raw) else ""
            if nxt in ("\n", "\r"):
                i += 3 if raw[i + 1:i + 3] == "\r\n" else 2
                continue
            out.append(pending)
            pending = ""
            out.append(_UNESCAPES.get(nxt, nxt))
            i += 2
            continue
        if char in "\r\n":
            break
        if char == '"':
            in_quote = not in_quote
            out.append(pending)
            pending = ""
        elif not in_quote and char in "#;":
            break
        elif not in_quote and char in " \t":
            if out:
                pending += char
        else:
            out.append(pending)
            pending = ""
            out.append(char)
        i += 1
    return "".join(out)


class GitConfigDocument:
    """Parsed config text that renders back byte-for-byte."""

    def __init__(self, lines: list[ConfigLine], newline: str = "\n", source: str = "<config>") -> None:
        self.lines = lines
        self.newline = newline
        self.source = source

    @classmethod
    def parse(cls, text: str, *, source: str = "<config>") -> "GitConfigDocument":
        lines: list[ConfigLine] = []
        continuing = False
        for number, physical in enumerate(text.splitlines(keepends=True), start=1):
            if continuing:
                lines[-1].raw += physical
                continuing = physical.rstrip("\r\n").endswith("\\")
                continue
            stripped = physical.strip()
            if stripped.startswith("["):
                lines.append(cls._parse_header(physical, number, source))
                continue
            match = _ENTRY.match(physical)
            if match and not stripped.startswith(("#", ";")):
                lines.append(ConfigLine(LineKind.ENTRY, physical, key=match.group("key").lower()))
                continuing = physical.rstrip("\r\n").endswith("\\")
                continue
            lines.append(ConfigLine(LineKind.OPAQUE, physical))
        newline = "\r\n" if "\r\n" in text else "\n"
        return cls(lines, newline=newline, source=source)

    @staticmethod
    def _parse_header(physical: str, number: int, source: str) -> ConfigLine:
        match = _HEADER.match(physical)
        if not match:
            raise ConfigParseError(source, "unterminated section header", line_number=number)
        name_match = _SECTION_NAME.match(match.group("body"))
        if not name_match:
            raise ConfigParseError(
                source, f"malformed section header [{match.group('body')}]", line_number=number
            )
        return ConfigLine(
            LineKind.HEADER,
            physical,
            section=name_match.group("name").lower(),
            subsection=name_match.group("sub"),
        )

    def render(self) -> str:
        return "".join(line.raw for line in self.lines)

    def _sections(self, section: str) -> list[tuple[int, list[int]]]:
        """``(header_index, entry_indices)`` for every matching section without subsection."""
        found: list[tuple[int, list[int]]] = []
        current: Optional[list[int]] = None
        for index, line in enumerate(self.lines):
            if line.kind is LineKind.HEADER:
                if line.section == section and line.subsection is None:
                    current = []
                    found.append((index, current))
                else:
                    current = None
            elif line.kind is LineKind.ENTRY and current is not None:
                current.append(index)
        return found

    def get(self, section: str, key: str) -> Optional[str]:
        value = None
        for _, entries in self._sections(section.lower()):
            for index in entries:
                line = self.lines[index]
                if line.key == key.lower():
                    value = decode_value(line.raw_value or "")
        return value

    def set(self, section: str, key: str, value: str) -> None:
        """Leave exactly one ``key`` in ``[section]`` set to ``value``.

        Git reads the last occurrence, so that one is rewritten in place and
        every earlier duplicate is dropped. With no occurrence the entry is
        inserted after the first header.
        """
        section, lookup = section.lower(), key.lower()
        sections = self._sections(section)
        matches = [
            index
            for _, entries in sections
            for index in entries
            if self.lines[index].key == lookup
        ]
        if matches:
            line = self.lines[matches[-1]]
            ending = _line_ending(line.raw) or self.newline
            line.raw = f"{line.indent}{key} = {encode_value(value)}{ending}"
            duplicates = set(matches[:-1])
            self.lines = [kept for index, kept in enumerate(self.lines) if index not in duplicates]
            return

        if sections:
            header_index, entries = sections[0]
            header = self.lines[header_index]
            if not _line_ending(header.raw):
                header.raw += self.newline
            indent = self.lines[entries[0]].indent if entries else "\t"
            entry = ConfigLine(
                LineKind.ENTRY,
                f"{indent}{key} = {encode_value(value)}{self.newline}",
                key=lookup,
            )
            self.lines.insert(header_index + 1, entry)
            return

        if self.lines and not _line_ending(self.lines[-1].raw):
            self.lines[-1].raw += self.newline
        self.lines.append(ConfigLine(LineKind.HEADER, f"[{section}]{self.newline}", section=section))
        self.lines.append(
            ConfigLine(LineKind.ENTRY, f"\t{key} = {encode_value(value)}{self.newline}", key=lookup)
        )

    def unset(self, section: str, key: str) -> int:
        lookup = key.lower()
        doomed = {
            index
            for _, entries in self._sections(section.lower())
            for index in entries
            if self.lines[index].key == lookup
        }
        self.lines = [line for index, line in enumerate(self.lines) if index not in doomed]
        return len(doomed)


def _line_ending(raw: str) -> str:
    if raw.endswith("\r\n"):
        return "\r\n"
    if raw.endswith("\n"):
        return "\n"
    return ""


def locate_config(repo_path: Union[str, Path]) -> Path:
    """Path of the config file shared by the repository at `repo_path`."""
    repo = Path(repo_path)
    dot_git = repo / ".git"
    if dot_git.is_dir():
        git_dir = dot_git
    elif dot_git.is_file():
        try:
            pointer = dot_git.read_text(encoding="utf-8").strip()
        except OSError as exc:
            raise ConfigParseError(str(dot_git), str(exc)) from exc
        if not pointer.startswith("gitdir:"):
            raise ConfigParseError(str(dot_git), "missing 'gitdir:' pointer")
        git_dir = Path(pointer[len("gitdir:"):].strip())
        if not git_dir.is_absolute():
            git_dir = repo / git_dir
    elif (repo / "HEAD").is_file() and (repo / "config").is_file():
        git_dir = repo  # bare repository
    else:
        raise ConfigParseError(str(dot_git), "no git directory found")

    commondir = git_dir / "commondir"
    if commondir.is_file():
        common = Path(commondir.read_text(encoding="utf-8").strip())
        git_dir = common if common.is_absolute() else (git_dir / common).resolve()
    return git_dir / "config"


def _atomic_write(path: Path, text: str) -> None:
    try:
        mode = stat.S_IMODE(path.stat().st_mode)
    except OSError:
        mode = 0o644
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".tmp_config_")
    try:
        with os.fdopen(fd, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
        os.chmod(tmp_path, mode)
        os.replace(tmp_path, path)
    except Exception:
        try:
            os.unlink(tmp_path)
        except OSError:
            pass
        raise


class ConfigReconciler:
    """Owns the ``core.sshCommand`` directive of each repository."""

    def read(self, repo_path: Union[str, Path]) -> tuple[Path, GitConfigDocument]:
        path = locate_config(repo_path)
        try:
            with path.open("r", encoding="utf-8", newline="") as handle:
                text = handle.read()
        except (OSError, UnicodeDecodeError) as exc:
            raise ConfigParseError(str(path), str(exc)) from exc
        return path, GitConfigDocument.parse(text, source=str(path))

    def get_ssh_command(self, repo_path: Union[str, Path]) -> Optional[str]:
        _, document = self.read(repo_path)
        return document.get(SSH_COMMAND_SECTION, SSH_COMMAND_KEY)

    def set_ssh_command(self, repo_path: Union[str, Path], key_path: Optional[str]) -> None:
        """Bind `repo_path` to `key_path`; ``None`` or ``""`` removes the directive."""
        path, document = self.read(repo_path)
        original = document.render()
        if key_path:
            document.set(SSH_COMMAND_SECTION, SSH_COMMAND_KEY, format_ssh_command(key_path))
        else:
            removed = document.unset(SSH_COMMAND_SECTION, SSH_COMMAND_KEY)
            logger.debug("Removed %d sshCommand line(s) from %s", removed, path)
        updated = document.render()
        if updated == original:
            return
        try:
            _atomic_write(path, updated)
        except OSError as exc:
            raise ConfigParseError(str(path), f"write failed: {exc}") from exc
        logger.info("Updated core.sshCommand in %s", path)
