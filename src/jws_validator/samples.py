from __future__ import annotations

import time
from typing import Any

from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import rsa

from .core import ALGORITHM, decode_unverified, encode

DEFAULT_SAMPLE_KID = "demo-k1"
DEFAULT_KEY_SIZE = 2048


def rsa_keypair(key_size: int = DEFAULT_KEY_SIZE) -> tuple[str, str]:
    private_key = rsa.generate_private_key(public_exponent=65537, key_size=key_size)
    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=serialization.NoEncryption(),
    ).decode("utf-8")
    public_pem = (
        private_key.public_key()
        .public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        .decode("utf-8")
    )
    return private_pem, public_pem


def _sample_claims() -> dict[str, Any]:
    return {
        "id": "demo-user",
        "email": "demo-user@example.com",
        "iat": int(time.time()),
    }


def generate_sample(
    kid: str = DEFAULT_SAMPLE_KID, key_size: int = DEFAULT_KEY_SIZE
) -> dict[str, Any]:
    if not kid:
        raise ValueError("sample kid must not be empty")
    if key_size < 1024:
        raise ValueError("key size must be at least 1024 bits")

    private_pem, public_pem = rsa_keypair(key_size)
    token = encode(private_pem, kid, _sample_claims())
    header, claims = decode_unverified(token)
    # A second, unrelated key so the document looks like a real rotation set.
    _, other_public_pem = rsa_keypair(key_size)
    return {
        "alg": ALGORITHM,
        "kid": kid,
        "token": token,
        "header": header,
        "claims": claims,
        "private_key": private_pem,
        "public_key": public_pem,
        "key_document": {kid: public_pem, f"{kid}-previous": other_public_pem},
    }
