"""API Key Format: generation, hashing and format validation of public API keys.

Invariants:
    - Key shape: tis_{live|test}_{32 lowercase hex chars}
    - Plaintext is returned once by generate_api_key() and never persisted
    - Persisted lookups use the SHA-256 hex digest only (64 chars)

Design Decisions:
    - secrets.token_hex for the random part: CSPRNG, URL-safe, fixed length
    - Format is checked before any DB round-trip so garbage never hits the index
"""

import hashlib
import re
import secrets
from dataclasses import dataclass

from tistis.core.domain_types import ApiKeyEnvironment

KEY_PREFIX = "tis"
RANDOM_HEX_LENGTH = 32
HINT_LENGTH = 4

_KEY_PATTERN = re.compile(r"^tis_(live|test)_[0-9a-f]{32}$")


@dataclass(frozen=True)
class GeneratedApiKey:
    """Freshly minted key; `plaintext` must be shown to the user exactly once."""
    plaintext: str
    key_hash: str
    key_hint: str
    key_prefix: str
    environment: ApiKeyEnvironment


def key_prefix_for(environment: ApiKeyEnvironment) -> str:
    return f"{KEY_PREFIX}_{environment.value}_"


def hash_api_key(key: str) -> str:
    """SHA-256 hex digest of the plaintext key."""
    return hashlib.sha256(key.encode("utf-8")).hexdigest()


def generate_api_key(
    environment: ApiKeyEnvironment = ApiKeyEnvironment.LIVE,
) -> GeneratedApiKey:
    prefix = key_prefix_for(environment)
    plaintext = prefix + secrets.token_hex(RANDOM_HEX_LENGTH // 2)
    return GeneratedApiKey(
        plaintext=plaintext,
        key_hash=hash_api_key(plaintext),
        key_hint=plaintext[-HINT_LENGTH:],
        key_prefix=prefix,
        environment=environment,
    )


def validate_api_key_format(key: str | None) -> bool:
    if not key:
        return False
    return bool(_KEY_PATTERN.match(key))


def extract_environment(key: str) -> ApiKeyEnvironment | None:
    """Environment encoded in the prefix, or None for malformed keys."""
    match = _KEY_PATTERN.match(key or "")
    if not match:
        return None
    return ApiKeyEnvironment(match.group(1))


def mask_api_key(key_prefix: str, key_hint: str) -> str:
    """Display form for listings, e.g. tis_live_••••a1b2."""
    return f"{key_prefix}{'•' * 4}{key_hint}"
