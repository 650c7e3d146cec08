"""Blocked-command gate for shell command lines.

Best effort, not a sandbox: the command line is split on chaining
operators and the leading executable of every piece is matched against
glob patterns (case-insensitive). Quoting tricks and variable expansion
can evade it.
"""

from __future__ import annotations

import fnmatch
import os
import re
import shlex
from collections.abc import Iterable

from termctl.shared.errors import ValidationError
from termctl.shared.types import ValidationResult

_SPLIT_RE = re.compile(r"&&|\|\||;|\||&|\n|\$\(|`|\(|\)")
_ASSIGNMENT_RE = re.compile(r"^[A-Za-z_][A-Za-z0-9_]*=")
_WINDOWS_SUFFIXES = (".exe", ".cmd", ".bat", ".com")

# Commands that run their argument as another command.
WRAPPERS = frozenset({
    "sudo", "doas", "env", "nohup", "time", "nice", "exec",
    "command", "builtin", "xargs", "timeout", "watch",
})

# Wrapper options whose value is the next token.
_OPTIONS_WITH_VALUE = {
    "sudo": {"-u", "-g", "-p", "-C", "-D", "-R", "-r", "-t", "-T", "-U",
             "--user", "--group", "--prompt", "--chdir", "--chroot", "--role",
             "--type", "--command-timeout", "--other-user", "--close-from"},
    "doas": {"-u", "-C"},
    "env": {"-u", "-C", "-S", "--unset", "--chdir", "--split-string"},
    "nice": {"-n", "--adjustment"},
    "exec": {"-a"},
    "time": {"-f", "-o", "--format", "--output"},
    "xargs": {"-a", "-d", "-E", "-I", "-L", "-n", "-P", "-s",
              "--arg-file", "--delimiter", "--max-args", "--max-procs",
              "--max-lines", "--max-chars", "--replace"},
    "timeout": {"-s", "-k", "--signal", "--kill-after"},
    "watch": {"-n", "--interval"},
}

# Positional arguments a wrapper takes before the wrapped command.
_LEADING_POSITIONALS = {"timeout": 1}


def split_commands(command_line: str) -> list[str]:
    """Split a command line into sub-commands on shell chaining operators."""
    return [part.strip() for part in _SPLIT_RE.split(command_line) if part.strip()]


def _tokenize(part: str) -> list[str]:
    # Windows path separators would otherwise be eaten as escapes.
    part = part.replace("\\", "/")
    try:
        return shlex.split(part, posix=True)
    except ValueError:
        # Unbalanced quotes
        return part.split()


def _normalize(token: str) -> str:
    name = token.rsplit("/", 1)[-1].lower()
    for suffix in _WINDOWS_SUFFIXES:
        if name.endswith(suffix):
            return name[: -len(suffix)]
    return name


def executables(part: str) -> list[str]:
    """Return the executable names a single sub-command would run.

    Leading ``NAME=value`` assignments are skipped. When the first
    executable is a wrapper such as ``sudo``, the wrapped command is
    included as well.
    """
    tokens = [t for t in _tokenize(part) if t]
    while tokens and _ASSIGNMENT_RE.match(tokens[0]):
        tokens.pop(0)

    names: list[str] = []
    while tokens:
        name = _normalize(tokens.pop(0))
        if not name:
            break
        names.append(name)
        if name not in WRAPPERS:
            break
        _skip_wrapper_args(name, tokens)
    return names


def _skip_wrapper_args(wrapper: str, tokens: list[str]) -> None:
    """Drop a wrapper's options and leading positionals from *tokens*."""
    takes_value = _OPTIONS_WITH_VALUE.get(wrapper, set())
    while tokens:
        token = tokens[0]
        if token == "--":
            tokens.pop(0)
            break
        if token.startswith("-"):
            tokens.pop(0)
            if token in takes_value and tokens:
                tokens.pop(0)
            continue
        if _ASSIGNMENT_RE.match(token):
            tokens.pop(0)
            continue
        break
    del tokens[:_LEADING_POSITIONALS.get(wrapper, 0)]
    # watch "rm -rf /tmp/x" passes the wrapped command as one argument.
    if tokens and " " in tokens[0].strip():
        tokens[:1] = _tokenize(tokens[0])



def _matches(name: str, pattern: str) -> bool:
    return fnmatch.fnmatchcase(name, pattern.strip().lower())


def validate_command(command_line: str, blocked_patterns: Iterable[str]) -> ValidationResult:
    """Decide whether *command_line* may run given the blocked patterns."""
    if not command_line or not command_line.strip():
        return ValidationResult(allowed=False, reason="Empty command")

    patterns = [p for p in blocked_patterns if p and p.strip()]
    for part in split_commands(command_line):
        for name in executables(part):
            for pattern in patterns:
                if _matches(name, pattern):
                    return ValidationResult(
                        allowed=False,
                        reason=f"Command not allowed: '{name}' is blocked",
                        blocked=name,
                    )
    return ValidationResult(allowed=True)


def assert_command_allowed(command_line: str, blocked_patterns: Iterable[str]) -> None:
    """Raise ValidationError if the command line is rejected."""
    result = validate_command(command_line, blocked_patterns)
    if not result.allowed:
        raise ValidationError(result.reason or "Command not allowed")


def is_directory_allowed(path: str, allowed_directories: Iterable[str]) -> bool:
    """Check that *path* lies inside one of the allowed directories.

    An empty allow-list means unrestricted.
    """
    allowed = [d for d in allowed_directories if d]
    if not allowed:
        return True
    resolved = os.path.realpath(os.path.expanduser(path))
    for directory in allowed:
        root = os.path.realpath(os.path.expanduser(directory))
        if resolved == root or resolved.startswith(root.rstrip(os.sep) + os.sep):
            return True
    return False
