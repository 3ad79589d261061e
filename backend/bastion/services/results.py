"""Tagged results returned by the account operations."""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Union

from bastion.services.requirements import Requirement


@dataclass(frozen=True)
class Success:
    pass


@dataclass(frozen=True)
class AlreadyRegistered:
    pass


@dataclass(frozen=True)
class NotRegistered:
    pass


@dataclass(frozen=True)
class NotLogged:
    pass


@dataclass(frozen=True)
class WrongPassword:
    pass


@dataclass(frozen=True)
class InvalidPassword:
    missing: list[Requirement] = field(default_factory=list)


@dataclass(frozen=True)
class InvalidUsername:
    missing: list[Requirement] = field(default_factory=list)


@dataclass(frozen=True)
class RateLimit:
    pass


AccountOperationResult = Union[
    Success,
    AlreadyRegistered,
    NotRegistered,
    NotLogged,
    WrongPassword,
    InvalidPassword,
    InvalidUsername,
    RateLimit,
]


def result_name(result: AccountOperationResult) -> str:
    """Snake-case tag used on the wire, e.g. ``already_registered``."""

    name = type(result).__name__
    return "".join(f"_{char.lower()}" if char.isupper() else char for char in name).lstrip("_")


def describe_result(result: AccountOperationResult) -> str:
    """Player-facing sentence for a result."""

    if isinstance(result, Success):
        return "Success!"
    if isinstance(result, AlreadyRegistered):
        return "This account is already registered!"
    if isinstance(result, NotRegistered):
        return "You are not registered!"
    if isinstance(result, NotLogged):
        return "You are not logged in! Use /login to login."
    if isinstance(result, WrongPassword):
        return "Wrong password!"
    if isinstance(result, InvalidPassword):
        return "The password does not meet the requirements:\n - " + "\n - ".join(map(str, result.missing))
    if isinstance(result, InvalidUsername):
        return "The username does not meet the requirements:\n - " + "\n - ".join(map(str, result.missing))
    if isinstance(result, RateLimit):
        return "You have made too many attempts, please try again later."
    raise TypeError(f"Unknown account result {result!r}")
