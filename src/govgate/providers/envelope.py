"""Request/response encryption for VAHAN and NIC.

VAHAN wraps every lookup in an envelope keyed by a shared secret (the
"ss key")::

    data          base64(iv[12] | salt[16] | AES-256-GCM ciphertext | tag[16])
                  key = PBKDF2-HMAC-SHA256(ss_key, salt, 65536 iterations, 32 bytes)
    symmetricKey  base64(RSA-OAEP-SHA256(ss_key)) with the provider's public key
    hash          base64(HMAC-SHA256(ss_key, plaintext JSON))
    timestamp     IST, ``YYYY-MM-DDTHH:mm:ss.SSS``
    requestId     UUID4
    version       "1.0.0"

Responses (error responses included) come back in the same shape, with the
symmetric key encrypted to our public key; the HMAC over the decrypted
plaintext must match ``hash``.

NIC uses a fresh 16-byte session key (SEK) per request. The SEK travels
RSA-OAEP encrypted (over its hex form) in a header, and the payload is
AES-256-ECB/PKCS7 with ``sek + sek`` as the key.
"""

from __future__ import annotations

import base64
import hmac as std_hmac
import json
import os
import uuid
from datetime import datetime
from typing import Any

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, hmac, padding, serialization
from cryptography.hazmat.primitives.asymmetric import padding as asym_padding
from cryptography.hazmat.primitives.ciphers import Cipher, algorithms, modes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

from govgate.core.errors import ConfigError, EnvelopeError
from govgate.providers.base import IST

ENVELOPE_VERSION = "1.0.0"
PBKDF2_ITERATIONS = 65536
IV_SIZE = 12
SALT_SIZE = 16
TAG_SIZE = 16
SEK_SIZE = 16

OAEP_SHA256 = asym_padding.OAEP(
    mgf=asym_padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)


def b64encode(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def load_public_key(pem: str) -> Any:
    try:
        return serialization.load_pem_public_key(pem.encode("utf-8"))
    except ValueError as e:
        raise ConfigError("Invalid RSA public key", cause=e) from e


def load_private_key(pem: str) -> Any:
    try:
        return serialization.load_pem_private_key(pem.encode("utf-8"), password=None)
    except ValueError as e:
        raise ConfigError("Invalid RSA private key", cause=e) from e


def ist_timestamp(now: datetime | None = None) -> str:
    """``YYYY-MM-DDTHH:mm:ss.SSS`` in Indian Standard Time."""
    now = (now or datetime.now(IST)).astimezone(IST)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}"


def canonical_json(payload: Any) -> str:
    """Compact JSON, the form the HMAC is computed over."""
    return json.dumps(payload, separators=(",", ":"), ensure_ascii=False)


# ── AES-GCM with a PBKDF2-derived key ───────────────────────────────────


def derive_key(secret: bytes, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(algorithm=hashes.SHA256(), length=32, salt=salt, iterations=PBKDF2_ITERATIONS)
    return kdf.derive(secret)


def gcm_encrypt(plaintext: bytes, secret: bytes, *, salt: bytes | None = None, iv: bytes | None = None) -> str:
    salt = salt or os.urandom(SALT_SIZE)
    iv = iv or os.urandom(IV_SIZE)
    # AESGCM appends the 16-byte tag to the ciphertext
    sealed = AESGCM(derive_key(secret, salt)).encrypt(iv, plaintext, None)
    return b64encode(iv + salt + sealed)


def gcm_decrypt(data: str, secret: bytes) -> bytes:
    try:
        raw = base64.b64decode(data, validate=True)
    except (ValueError, TypeError) as e:
        raise EnvelopeError("Envelope data is not valid base64", cause=e) from e
    if len(raw) < IV_SIZE + SALT_SIZE + TAG_SIZE:
        raise EnvelopeError("Envelope data is too short")

    iv = raw[:IV_SIZE]
    salt = raw[IV_SIZE : IV_SIZE + SALT_SIZE]
    try:
        return AESGCM(derive_key(secret, salt)).decrypt(iv, raw[IV_SIZE + SALT_SIZE :], None)
    except InvalidTag as e:
        raise EnvelopeError("Envelope authentication tag mismatch", cause=e) from e


def hmac_sha256(key: bytes, data: bytes) -> str:
    mac = hmac.HMAC(key, hashes.SHA256())
    mac.update(data)
    return b64encode(mac.finalize())


class VahanEnvelope:
    """Seals VAHAN requests and opens VAHAN responses.

    Args:
        ss_key: Shared symmetric secret
        public_key_pem: VAHAN's public key, encrypts the outbound ss key
        private_key_pem: Our private key, decrypts the inbound ss key
    """

    def __init__(self, ss_key: str, public_key_pem: str, private_key_pem: str | None = None):
        if not ss_key:
            raise ConfigError("VAHAN ss_key is not configured")
        self._ss_key = ss_key.encode("utf-8")
        self._public_key = load_public_key(public_key_pem)
        self._private_key = load_private_key(private_key_pem) if private_key_pem else None

    def seal(
        self,
        payload: Any,
        *,
        now: datetime | None = None,
        request_id: str | None = None,
    ) -> dict[str, str]:
        plaintext = canonical_json(payload).encode("utf-8")
        return {
            "data": gcm_encrypt(plaintext, self._ss_key),
            "version": ENVELOPE_VERSION,
            "symmetricKey": b64encode(self._public_key.encrypt(self._ss_key, OAEP_SHA256)),
            "hash": hmac_sha256(self._ss_key, plaintext),
            "timestamp": ist_timestamp(now),
            "requestId": request_id or str(uuid.uuid4()),
        }

    def open(self, body: Any) -> str:
        """Decrypt and verify a response envelope, returning the plaintext.

        Raises:
            EnvelopeError: Missing fields, undecryptable key or data, or
                an HMAC mismatch
        """
        if self._private_key is None:
            raise ConfigError("VAHAN private key is not configured")
        if not isinstance(body, dict) or not all(k in body for k in ("symmetricKey", "data", "hash")):
            raise EnvelopeError("Response is not a VAHAN envelope")

        try:
            secret = self._private_key.decrypt(base64.b64decode(body["symmetricKey"]), OAEP_SHA256)
        except ValueError as e:
            raise EnvelopeError("Cannot decrypt envelope symmetric key", cause=e) from e

        plaintext = gcm_decrypt(body["data"], secret)
        if not std_hmac.compare_digest(hmac_sha256(secret, plaintext), str(body["hash"])):
            raise EnvelopeError("Hash validation failed")
        return plaintext.decode("utf-8")


# ── NIC session key ─────────────────────────────────────────────────────


def generate_sek() -> bytes:
    return os.urandom(SEK_SIZE)


def wrap_sek(sek: bytes, public_key: Any) -> str:
    """RSA-OAEP-SHA256 over the SEK's hex string, base64 encoded."""
    return b64encode(public_key.encrypt(sek.hex().encode("ascii"), OAEP_SHA256))


def ecb_encrypt(payload: Any, sek: bytes) -> str:
    """AES-256-ECB/PKCS7 of the JSON payload with ``sek + sek`` as the key."""
    padder = padding.PKCS7(algorithms.AES.block_size).padder()
    padded = padder.update(canonical_json(payload).encode("utf-8")) + padder.finalize()
    encryptor = Cipher(algorithms.AES(sek + sek), modes.ECB()).encryptor()
    return b64encode(encryptor.update(padded) + encryptor.finalize())


__all__ = [
    "ENVELOPE_VERSION",
    "VahanEnvelope",
    "canonical_json",
    "ecb_encrypt",
    "gcm_decrypt",
    "gcm_encrypt",
    "generate_sek",
    "hmac_sha256",
    "ist_timestamp",
    "load_private_key",
    "load_public_key",
    "wrap_sek",
]
