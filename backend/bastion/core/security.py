"""Security helpers for password hashing, session tokens, and message signing."""
from __future__ import annotations

import base64
import hashlib
import logging
from typing import Any, Literal

from argon2 import PasswordHasher as Argon2Hasher
from argon2 import Type as Argon2Type
from argon2.exceptions import InvalidHashError, VerificationError
from argon2.low_level import hash_secret_raw
from itsdangerous import BadSignature, URLSafeSerializer
from passlib.handlers.pbkdf2 import pbkdf2_sha1, pbkdf2_sha256, pbkdf2_sha512
from passlib.utils.binary import ab64_encode
from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

ARGON2_ALGORITHM = "argon2id"

_PBKDF2_HANDLERS = {
    "sha1": pbkdf2_sha1,
    "sha256": pbkdf2_sha256,
    "sha512": pbkdf2_sha512,
}


class Argon2Params(BaseModel):
    """Argon2id cost parameters. ``memory`` is expressed in KiB."""

    memory: int = Field(..., ge=8)
    iterations: int = Field(..., ge=1)
    parallelism: int = Field(default=1, ge=1)
    length: int = Field(default=32, ge=4)
    salt_length: int = Field(default=16, ge=8)


class PBKDF2Params(BaseModel):
    """Iterated HMAC parameters, only used for pre-migration passwords."""

    hmac: Literal["sha1", "sha256", "sha512"] = "sha256"
    iterations: int = Field(default=10000, ge=1)
    salt_length: int = Field(default=16, ge=0)


class HashRecord(BaseModel):
    """A salted hash: algorithm tag, integer params, base64 salt and digest."""

    algorithm: str
    params: dict[str, int] = Field(default_factory=dict)
    salt: str
    digest: str

    def salt_bytes(self) -> bytes:
        return base64.b64decode(self.salt)

    def digest_bytes(self) -> bytes:
        return base64.b64decode(self.digest)


def _b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii")


def _unpad_b64(value: bytes) -> str:
    return base64.b64encode(value).decode("ascii").rstrip("=")


def _pad_b64decode(value: str) -> bytes:
    return base64.b64decode(value + "=" * (-len(value) % 4))


class PasswordHasher:
    """Hash and verify passwords.

    New passwords always use Argon2id. PBKDF2 records are accepted by
    ``verify`` so legacy credentials can be checked during migration.
    """

    @staticmethod
    def hash(password: str, params: Argon2Params | PBKDF2Params) -> HashRecord:
        if isinstance(params, PBKDF2Params):
            return PasswordHasher._hash_pbkdf2(password, params)
        hasher = Argon2Hasher(
            time_cost=params.iterations,
            memory_cost=params.memory,
            parallelism=params.parallelism,
            hash_len=params.length,
            salt_len=params.salt_length,
            type=Argon2Type.ID,
        )
        # $argon2id$v=19$m=65536,t=3,p=2$<salt>$<digest>
        _, _, version, costs, salt, digest = hasher.hash(password).split("$")
        params_map = dict(item.split("=") for item in costs.split(","))
        return HashRecord(
            algorithm=ARGON2_ALGORITHM,
            params={
                "version": int(version.removeprefix("v=")),
                "memory": int(params_map["m"]),
                "iterations": int(params_map["t"]),
                "parallelism": int(params_map["p"]),
            },
            salt=_b64(_pad_b64decode(salt)),
            digest=_b64(_pad_b64decode(digest)),
        )

    @staticmethod
    def _hash_pbkdf2(password: str, params: PBKDF2Params) -> HashRecord:
        handler = _PBKDF2_HANDLERS[params.hmac]
        parsed = handler.from_string(
            handler.using(rounds=params.iterations, salt_size=params.salt_length).hash(password)
        )
        return HashRecord(
            algorithm=f"pbkdf2-{params.hmac}",
            params={"iterations": parsed.rounds},
            salt=_b64(parsed.salt),
            digest=_b64(parsed.checksum),
        )

    @staticmethod
    def verify(password: str, record: HashRecord) -> bool:
        try:
            if record.algorithm == ARGON2_ALGORITHM:
                encoded = "$argon2id$v={v}$m={m},t={t},p={p}${salt}${digest}".format(
                    v=record.params.get("version", 19),
                    m=record.params["memory"],
                    t=record.params["iterations"],
                    p=record.params["parallelism"],
                    salt=_unpad_b64(record.salt_bytes()),
                    digest=_unpad_b64(record.digest_bytes()),
                )
                try:
                    return Argon2Hasher().verify(encoded, password)
                except VerificationError:
                    return False
            if record.algorithm.startswith("pbkdf2-"):
                handler = _PBKDF2_HANDLERS[record.algorithm.removeprefix("pbkdf2-")]
                encoded = "{ident}{rounds}${salt}${digest}".format(
                    ident=handler.ident,
                    rounds=record.params["iterations"],
                    salt=ab64_encode(record.salt_bytes()).decode("ascii"),
                    digest=ab64_encode(record.digest_bytes()).decode("ascii"),
                )
                return handler.verify(password, encoded)
        except (InvalidHashError, KeyError, TypeError, ValueError) as exc:
            logger.warning("Malformed %s hash record: %s", record.algorithm, exc)
            return False
        logger.warning("Unknown hash algorithm %s", record.algorithm)
        return False


class SessionTokenDeriver:
    """Derive a stable session token from a device id and a session secret.

    The device id is the Argon2 secret and the session secret the salt, so the
    same pair always maps to the same token while neither is stored as is.
    """

    def __init__(self, params: Argon2Params) -> None:
        self._params = params

    def derive(self, device_id: str, session_secret: str) -> str:
        raw = hash_secret_raw(
            secret=device_id.encode("utf-8"),
            salt=session_secret.encode("utf-8"),
            time_cost=self._params.iterations,
            memory_cost=self._params.memory,
            parallelism=self._params.parallelism,
            hash_len=self._params.length,
            type=Argon2Type.ID,
        )
        return _b64(raw)


def hash_legacy_username(username: str) -> str:
    """Key under which a legacy account is stored, never the plaintext name."""

    return _b64(hashlib.sha256(username.encode("utf-8")).digest())


class MessageSigner:
    """Sign and unsign messenger envelopes exchanged between processes."""

    def __init__(self, secret_key: str, salt: str = "bastion-messenger") -> None:
        self._serializer = URLSafeSerializer(secret_key, salt=salt)

    def dumps(self, data: dict[str, Any]) -> str:
        return self._serializer.dumps(data)

    def loads(self, token: str) -> dict[str, Any]:
        try:
            return self._serializer.loads(token)
        except BadSignature as exc:
            raise ValueError("Invalid message signature") from exc
