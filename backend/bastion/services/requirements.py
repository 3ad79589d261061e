"""Username and password policy checks.

Each requirement is a small named predicate. Validation always returns every
unmet requirement so a player can fix all of them in one attempt.
"""
from __future__ import annotations

import abc
from dataclasses import dataclass, field
from typing import Iterable, Sequence


class Requirement(abc.ABC):
    """A single named policy predicate over a username or a password."""

    @abc.abstractmethod
    def is_satisfied(self, value: str) -> bool:
        ...

    @abc.abstractmethod
    def describe(self) -> str:
        ...

    def __str__(self) -> str:
        return self.describe()


@dataclass(frozen=True)
class Length(Requirement):
    min: int
    max: int

    def is_satisfied(self, value: str) -> bool:
        return self.min <= len(value) <= self.max

    def describe(self) -> str:
        return f"Must be between {self.min} and {self.max} characters long"


@dataclass(frozen=True)
class LowercaseLetter(Requirement):
    def is_satisfied(self, value: str) -> bool:
        return any(char.islower() for char in value)

    def describe(self) -> str:
        return "Must contain a lowercase letter"


@dataclass(frozen=True)
class UppercaseLetter(Requirement):
    def is_satisfied(self, value: str) -> bool:
        return any(char.isupper() for char in value)

    def describe(self) -> str:
        return "Must contain an uppercase letter"


@dataclass(frozen=True)
class Number(Requirement):
    def is_satisfied(self, value: str) -> bool:
        return any(char.isdigit() for char in value)

    def describe(self) -> str:
        return "Must contain a number"


@dataclass(frozen=True)
class Symbol(Requirement):
    def is_satisfied(self, value: str) -> bool:
        return any(not char.isalnum() and not char.isspace() for char in value)

    def describe(self) -> str:
        return "Must contain a symbol"


@dataclass(frozen=True)
class AllowedCharacters(Requirement):
    """Only ASCII letters, digits, and the listed extra characters."""

    extra: str = "_"

    def is_satisfied(self, value: str) -> bool:
        return all((char.isascii() and char.isalnum()) or char in self.extra for char in value)

    def describe(self) -> str:
        return f"Can only contain letters, digits or any of '{self.extra}'"


@dataclass(frozen=True)
class AllLowercase(Requirement):
    def is_satisfied(self, value: str) -> bool:
        return value == value.lower()

    def describe(self) -> str:
        return "Must be in lowercase"


@dataclass(frozen=True)
class Reserved(Requirement):
    """Exact names nobody may register, such as staff or system names."""

    names: frozenset[str] = field(default_factory=frozenset)

    def is_satisfied(self, value: str) -> bool:
        return value.lower() not in self.names

    def describe(self) -> str:
        return "Must not be a reserved name"


@dataclass(frozen=True)
class Blacklist(Requirement):
    """Words that may not appear anywhere in the name."""

    words: frozenset[str] = field(default_factory=frozenset)

    def is_satisfied(self, value: str) -> bool:
        lowered = value.lower()
        return not any(word in lowered for word in self.words)

    def describe(self) -> str:
        return "Must not contain a forbidden word"


@dataclass(frozen=True)
class LegacyUsername(Requirement):
    """Name still held by an account that has not been migrated yet."""

    username: str

    def is_satisfied(self, value: str) -> bool:
        return value != self.username

    def describe(self) -> str:
        return f"'{self.username}' is reserved for an account awaiting migration, use /migrate if it is yours"


DEFAULT_PASSWORD_REQUIREMENTS: tuple[Requirement, ...] = (
    Length(8, 64),
    LowercaseLetter(),
    UppercaseLetter(),
    Number(),
    Symbol(),
)

DEFAULT_USERNAME_REQUIREMENTS: tuple[Requirement, ...] = (
    AllowedCharacters("_"),
    Length(3, 32),
    AllLowercase(),
)


def find_missing_requirements(value: str, requirements: Iterable[Requirement]) -> list[Requirement]:
    return [requirement for requirement in requirements if not requirement.is_satisfied(value)]


class RequirementValidator:
    """Bundle the configured username and password policies."""

    def __init__(
        self,
        username_requirements: Sequence[Requirement] = DEFAULT_USERNAME_REQUIREMENTS,
        password_requirements: Sequence[Requirement] = DEFAULT_PASSWORD_REQUIREMENTS,
    ) -> None:
        self._username_requirements = tuple(username_requirements)
        self._password_requirements = tuple(password_requirements)

    @classmethod
    def with_names(cls, reserved: Iterable[str] = (), blacklist: Iterable[str] = ()) -> RequirementValidator:
        username_requirements = list(DEFAULT_USERNAME_REQUIREMENTS)
        reserved = frozenset(name.lower() for name in reserved)
        blacklist = frozenset(word.lower() for word in blacklist)
        if reserved:
            username_requirements.append(Reserved(reserved))
        if blacklist:
            username_requirements.append(Blacklist(blacklist))
        return cls(username_requirements=username_requirements)

    def missing_username_requirements(self, username: str) -> list[Requirement]:
        return find_missing_requirements(username, self._username_requirements)

    def missing_password_requirements(self, password: str) -> list[Requirement]:
        return find_missing_requirements(password, self._password_requirements)
