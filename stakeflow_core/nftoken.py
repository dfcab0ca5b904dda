"""
Non-fungible asset custody for StakeFlow.

The NFT staking pool depends on a custody collaborator exposing:

  - ``owner_of(asset_id) -> str | None``
  - ``transfer_asset_in(asset_id, from_account) -> bool``
  - ``transfer_asset_out(asset_id, to_account) -> bool``

:class:`NFTRegistry` is the in-memory implementation used by the API
server and the tests.  Staked assets are held by the ``POOL_CUSTODY``
pseudo-account while they sit in the pool.
"""

from __future__ import annotations

import hashlib
from dataclasses import dataclass

POOL_CUSTODY = "stakeflow:nft-pool"


@dataclass
class NFToken:
    """A single non-fungible asset."""
    asset_id: str
    issuer: str             # minting account
    owner: str              # current holder (POOL_CUSTODY while staked)
    uri: str
    serial: int

    def to_dict(self) -> dict:
        return {
            "asset_id": self.asset_id,
            "issuer": self.issuer,
            "owner": self.owner,
            "uri": self.uri,
            "serial": self.serial,
        }


class NFTRegistry:
    """Tracks asset ownership and executes custody moves for the pool."""

    def __init__(self, custody_account: str = POOL_CUSTODY):
        self.custody_account = custody_account
        self.tokens: dict[str, NFToken] = {}
        self._next_serial: dict[str, int] = {}  # issuer -> next serial

    def _compute_asset_id(self, issuer: str, serial: int) -> str:
        blob = f"{issuer}:{serial}".encode("utf-8")
        return hashlib.blake2b(blob, digest_size=16).hexdigest()

    def mint(self, owner: str, uri: str = "") -> NFToken:
        """Mint a new asset directly into *owner*'s hands."""
        serial = self._next_serial.get(owner, 0)
        self._next_serial[owner] = serial + 1
        token = NFToken(
            asset_id=self._compute_asset_id(owner, serial),
            issuer=owner,
            owner=owner,
            uri=uri,
            serial=serial,
        )
        self.tokens[token.asset_id] = token
        return token

    def owner_of(self, asset_id: str) -> str | None:
        token = self.tokens.get(asset_id)
        return token.owner if token is not None else None

    def transfer_asset_in(self, asset_id: str, from_account: str) -> bool:
        token = self.tokens.get(asset_id)
        if token is None or token.owner != from_account:
            return False
        token.owner = self.custody_account
        return True

    def transfer_asset_out(self, asset_id: str, to_account: str) -> bool:
        token = self.tokens.get(asset_id)
        if token is None or token.owner != self.custody_account:
            return False
        token.owner = to_account
        return True

    def get_tokens_for_account(self, account: str) -> list[NFToken]:
        return [t for t in self.tokens.values() if t.owner == account]
