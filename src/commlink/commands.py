"""
Command registry: declared commands, name sanitization and lookup.

Command names are sanitized the same way everywhere a command token is
read: trimmed, lower-cased, internal whitespace runs collapsed to a single
hyphen. `"  Show  Status "` becomes `"show-status"`.
"""

import re
from collections.abc import Iterator
from typing import Optional

from commlink.errors import ConflictError, UnknownCommandError, ValidationError

NOT_IMPLEMENTED_SUFFIX = "(not implemented)"

_WHITESPACE = re.compile(r"\s+")


def sanitize(token: Optional[str]) -> str:
    return _WHITESPACE.sub("-", (token or "").strip().lower())


class ServiceCommand:
    __slots__ = ("name", "shortcut", "description", "implemented")

    def __init__(self, name: str, description: str = "", shortcut: Optional[str] = None, implemented: bool = True):
        self.name = name
        self.shortcut = shortcut
        self.description = description
        self.implemented = implemented

    @property
    def help_label(self) -> str:
        """Name with the shortcut bracketed, e.g. `(h)elp`."""
        if not self.shortcut:
            return self.name
        idx = self.name.index(self.shortcut)
        end = idx + len(self.shortcut)
        return f"{self.name[:idx]}({self.shortcut}){self.name[end:]}"

    @property
    def help_description(self) -> str:
        if self.implemented:
            return self.description
        return f"{self.description} {NOT_IMPLEMENTED_SUFFIX}".strip()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ServiceCommand):
            return NotImplemented
        return (self.name, self.shortcut, self.description, self.implemented) == (
            other.name, other.shortcut, other.description, other.implemented,
        )

    def __hash__(self) -> int:
        return hash(self.name)

    def __repr__(self) -> str:
        return f"ServiceCommand(name={self.name!r}, shortcut={self.shortcut!r})"


class CommandRegistry:
    """Append-only during startup; read-only once frozen."""

    def __init__(self) -> None:
        self._commands: dict[str, ServiceCommand] = {}
        self._frozen = False

    def register(
        self,
        name: str,
        description: str = "",
        shortcut: Optional[str] = None,
        implemented: bool = True,
    ) -> ServiceCommand:
        if self._frozen:
            raise ConflictError(f"Cannot register {name!r}: registry is frozen")
        canonical = sanitize(name)
        if not canonical:
            raise ValidationError(f"Command name {name!r} is empty after sanitization")
        if canonical in self._commands:
            raise ConflictError(f"Command {canonical!r} is already registered")

        short = sanitize(shortcut) or None
        if short is not None:
            if short not in canonical:
                raise ValidationError(f"Shortcut {short!r} does not occur in command name {canonical!r}")
            for existing in self._commands.values():
                if short in (existing.name, existing.shortcut):
                    raise ConflictError(f"Shortcut {short!r} already used by command {existing.name!r}")
        for existing in self._commands.values():
            if existing.shortcut == canonical:
                raise ConflictError(f"Command name {canonical!r} already used as shortcut of {existing.name!r}")

        command = ServiceCommand(canonical, description, short, implemented)
        self._commands[canonical] = command
        return command

    def freeze(self) -> None:
        self._frozen = True

    @property
    def frozen(self) -> bool:
        return self._frozen

    def find(self, name_or_shortcut: str) -> Optional[ServiceCommand]:
        token = sanitize(name_or_shortcut)
        if not token:
            raise ValidationError(f"Malformed command token {name_or_shortcut!r}")
        command = self._commands.get(token)
        if command is not None:
            return command
        for command in self._commands.values():
            if command.shortcut == token:
                return command
        return None

    def resolve(self, name_or_shortcut: str) -> ServiceCommand:
        command = self.find(name_or_shortcut)
        if command is None:
            raise UnknownCommandError(f"Unknown command {sanitize(name_or_shortcut)!r}")
        return command

    def help_table(self) -> dict[str, str]:
        return {c.help_label: c.help_description for c in self}

    def __contains__(self, name_or_shortcut: object) -> bool:
        if not isinstance(name_or_shortcut, str) or not sanitize(name_or_shortcut):
            return False
        return self.find(name_or_shortcut) is not None

    def __iter__(self) -> Iterator[ServiceCommand]:
        return iter([self._commands[name] for name in sorted(self._commands)])

    def __len__(self) -> int:
        return len(self._commands)
