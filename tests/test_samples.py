from __future__ import annotations

import pytest

from jws_validator.core import decode
from jws_validator.keys import CachedKeyResolver, KeyFetchOptions, PublicKeyCache
from jws_validator.samples import generate_sample


@pytest.mark.asyncio
async def test_sample_token_verifies_against_its_key_document() -> None:
    sample = generate_sample(kid="k-test", key_size=1024)
    document = sample["key_document"]

    async def fetch_from_document(key_id: str, options: KeyFetchOptions) -> str | None:
        return document.get(key_id)

    resolver = CachedKeyResolver(PublicKeyCache(), fetch=fetch_from_document)
    options = KeyFetchOptions(host="keys.example.com", path="/certs")

    claims = await decode(sample["token"], options, resolver=resolver)
    assert claims == sample["claims"]
    assert claims["id"] == "demo-user"


@pytest.mark.parametrize(("kid", "key_size"), [("", 2048), ("k1", 512)])
def test_sample_rejects_bad_arguments(kid: str, key_size: int) -> None:
    with pytest.raises(ValueError):
        generate_sample(kid=kid, key_size=key_size)
