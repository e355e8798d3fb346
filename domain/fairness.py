from __future__ import annotations

import hashlib
import hmac
import secrets


DIE_FACES = 6
# Number of hex characters of the digest turned into the roll (32 bits).
PREFIX_HEX_CHARS = 8


def generate_server_seed() -> str:
    return secrets.token_hex(32)


def hash_server_seed(server_seed: str) -> str:
    """Return the public commitment for a server seed (sha256, hex)."""

    return hashlib.sha256(server_seed.encode("utf-8")).hexdigest()


def compute_outcome(server_seed: str, client_seed: str, nonce: int) -> int:
    """
    Derive a die roll in [1, 6] from the round's inputs.

    Anyone holding the revealed server seed can reproduce the roll:

        digest = sha256("{server_seed}:{client_seed}:{nonce}")
        roll = int(digest[:8], 16) % 6 + 1
    """

    message = f"{server_seed}:{client_seed}:{nonce}"
    digest = hashlib.sha256(message.encode("utf-8")).hexdigest()
    return int(digest[:PREFIX_HEX_CHARS], 16) % DIE_FACES + 1


def verify(
    server_seed: str,
    server_seed_hash: str,
    client_seed: str,
    nonce: int,
    outcome: int,
) -> bool:
    """Check a settled roll against its published commitment."""

    if not hmac.compare_digest(hash_server_seed(server_seed), server_seed_hash):
        return False
    return compute_outcome(server_seed, client_seed, nonce) == outcome
