"""
Token codec: seals a descriptor plus expiry into an opaque envelope.

Token layout (outermost first):

    base64( JSON {"iv": base64(iv), "value": base64(ciphertext)} )
    ciphertext = AES-256-CBC( PKCS7( HMAC-SHA256(body) || body ) )
    body       = canonical JSON of the descriptor payload

Both keys come from one HKDF-SHA256 derivation of the deployment secret,
so seal and unseal always agree on key material. Every decoding failure
surfaces as the same :class:`TokenError`.
"""

from __future__ import annotations

import base64
import binascii
import json
import secrets
from dataclasses import dataclass

from cryptography.exceptions import InvalidSignature
from cryptography.hazmat.primitives import hashes, hmac, padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from gateway.config.settings import IV_LENGTH, MAC_LENGTH, MAX_TOKEN_LENGTH
from gateway.domain.descriptor import ConnectionDescriptor, build
from gateway.domain.errors import GatewayError, TokenError

KEY_INFO = b"guacamole-token-gateway/v1"
BLOCK_SIZE = algorithms.AES.block_size


@dataclass(frozen=True)
class TokenEnvelope:
    """The two-field envelope handed to browsers as the token string."""

    iv: bytes
    ciphertext: bytes

    def encode(self) -> str:
        inner = json.dumps({
            "iv": base64.b64encode(self.iv).decode("ascii"),
            "value": base64.b64encode(self.ciphertext).decode("ascii"),
        }, separators=(",", ":"))
        return base64.b64encode(inner.encode("ascii")).decode("ascii")

    @classmethod
    def decode(cls, token: str) -> TokenEnvelope:
        """Parse a token string. Raises ValueError on any structural problem."""
        inner = json.loads(base64.b64decode(token, validate=True))
        if not isinstance(inner, dict):
            raise ValueError("envelope is not an object")
        iv, value = inner.get("iv"), inner.get("value")
        if not isinstance(iv, str) or not isinstance(value, str):
            raise ValueError("envelope fields missing")
        return cls(
            iv=base64.b64decode(iv, validate=True),
            ciphertext=base64.b64decode(value, validate=True),
        )


def derive_keys(secret: str | bytes) -> tuple[bytes, bytes]:
    """Stretch the deployment secret into an (encryption, MAC) key pair."""
    if isinstance(secret, str):
        secret = secret.encode("utf-8")
    if not secret:
        raise ValueError("token secret must not be empty")
    material = HKDF(
        algorithm=hashes.SHA256(),
        length=64,
        salt=None,
        info=KEY_INFO,
    ).derive(secret)
    return material[:32], material[32:]


class TokenCodec:
    """Stateless seal/unseal bound to one secret; safe to share between threads."""

    def __init__(self, secret: str | bytes) -> None:
        self._enc_key, self._mac_key = derive_keys(secret)

    # -- Low level ----------------------------------------------------------

    def _tag(self, body: bytes) -> hmac.HMAC:
        mac = hmac.HMAC(self._mac_key, hashes.SHA256())
        mac.update(body)
        return mac

    def _encrypt(self, body: bytes) -> str:
        iv = secrets.token_bytes(IV_LENGTH)
        padder = padding.PKCS7(BLOCK_SIZE).padder()
        padded = padder.update(self._tag(body).finalize() + body) + padder.finalize()
        encryptor = Cipher(algorithms.AES(self._enc_key), modes.CBC(iv)).encryptor()
        ciphertext = encryptor.update(padded) + encryptor.finalize()
        return TokenEnvelope(iv=iv, ciphertext=ciphertext).encode()

    def _decrypt(self, envelope: TokenEnvelope) -> bytes:
        if len(envelope.iv) != IV_LENGTH:
            raise ValueError("bad iv length")
        if not envelope.ciphertext or len(envelope.ciphertext) % (BLOCK_SIZE // 8):
            raise ValueError("bad ciphertext length")
        decryptor = Cipher(algorithms.AES(self._enc_key), modes.CBC(envelope.iv)).decryptor()
        padded = decryptor.update(envelope.ciphertext) + decryptor.finalize()
        unpadder = padding.PKCS7(BLOCK_SIZE).unpadder()
        plaintext = unpadder.update(padded) + unpadder.finalize()
        if len(plaintext) < MAC_LENGTH:
            raise ValueError("plaintext too short")
        tag, body = plaintext[:MAC_LENGTH], plaintext[MAC_LENGTH:]
        self._tag(body).verify(tag)
        return body

    # -- Public API ---------------------------------------------------------

    def seal(self, descriptor: ConnectionDescriptor) -> str:
        """
        Encrypt a descriptor into a token string.

        A fresh IV is drawn on every call, so sealing the same descriptor
        twice never yields the same token.

        Raises:
            ValueError: If the descriptor has no expiry attached
        """
        if descriptor.expires_at is None:
            raise ValueError("refusing to seal a descriptor without expires_at")
        body = json.dumps(descriptor.to_payload(), sort_keys=True, separators=(",", ":"))
        return self._encrypt(body.encode("utf-8"))

    def unseal(self, token: str) -> ConnectionDescriptor:
        """
        Decrypt a token string back into an equivalent descriptor.

        The descriptor is rebuilt through the builder; a stored connection
        string that disagrees with the rebuilt one is rejected.

        Raises:
            TokenError: For every kind of failure, without detail
        """
        try:
            if not isinstance(token, str) or len(token) > MAX_TOKEN_LENGTH:
                raise ValueError("token too long")
            body = self._decrypt(TokenEnvelope.decode(token))
            payload = json.loads(body)
            if not isinstance(payload, dict):
                raise ValueError("payload is not an object")

            expires_at = payload.pop("expires_at", None)
            if expires_at is not None and (isinstance(expires_at, bool) or not isinstance(expires_at, int)):
                raise ValueError("expires_at is not an integer")

            stored = payload.pop("connection_string", None)
            descriptor = build(payload)
            if stored is not None and stored != descriptor.connection_string:
                raise ValueError("connection string mismatch")
        except (ValueError, TypeError, RecursionError, binascii.Error, InvalidSignature, GatewayError):
            raise TokenError() from None

        return descriptor.with_expiry(expires_at)
