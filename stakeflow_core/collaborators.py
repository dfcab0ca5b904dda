"""
External collaborators consumed by the StakeFlow engine.

The engine never decides who may call a privileged operation and never
moves value itself.  It talks to two duck-typed collaborators:

  - **Authorization gate** — ``is_authorized(caller, privilege) -> bool``
  - **Value transfer**     — ``transfer_in(account, amount) -> bool`` and
                             ``transfer_out(account, amount) -> bool``

A transfer either fully succeeds (``True``) or has no effect (``False``
or an exception).  Asset custody lives in :mod:`stakeflow_core.nftoken`.

The in-memory implementations here back the bundled API server and the
test-suite; production deployments swap in their own objects with the
same methods.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum


class Privilege(Enum):
    SET_PARAMETERS = "set_parameters"
    INITIALIZE_POOL = "initialize_pool"
    EMERGENCY_DRAIN = "emergency_drain"


class AllowAll:
    """Gate that authorizes everything (single-operator deployments)."""

    def is_authorized(self, caller: str, privilege: Privilege) -> bool:
        return True


@dataclass
class RoleRegistry:
    """
    Role-based authorization gate.

    ``admins`` hold every privilege; ``grants`` maps a privilege to the
    extra callers allowed to exercise it.
    """
    admins: set[str] = field(default_factory=set)
    grants: dict[Privilege, set[str]] = field(default_factory=dict)

    def grant(self, caller: str, privilege: Privilege) -> None:
        self.grants.setdefault(privilege, set()).add(caller)

    def revoke(self, caller: str, privilege: Privilege) -> None:
        self.grants.get(privilege, set()).discard(caller)

    def add_admin(self, caller: str) -> None:
        self.admins.add(caller)

    def is_authorized(self, caller: str, privilege: Privilege) -> bool:
        if caller in self.admins:
            return True
        return caller in self.grants.get(privilege, set())

    def to_dict(self) -> dict:
        return {
            "admins": sorted(self.admins),
            "grants": {p.value: sorted(c) for p, c in self.grants.items()},
        }


class Treasury:
    """
    In-memory value transfer collaborator.

    Tracks spendable balances per account plus the balance held in
    engine custody (principal deposits and the reward reserve share the
    same unit).  Transfers never partially apply.
    """

    def __init__(self, balances: dict[str, int] | None = None, custody: int = 0):
        self.balances: dict[str, int] = dict(balances or {})
        self.custody: int = custody

    def credit(self, account: str, amount: int) -> None:
        """Mint spendable balance to *account* (faucet / test helper)."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        self.balances[account] = self.balances.get(account, 0) + amount

    def fund_rewards(self, amount: int) -> None:
        """Top up the engine custody reserve used to pay rewards."""
        if amount < 0:
            raise ValueError("amount must be non-negative")
        self.custody += amount

    def balance_of(self, account: str) -> int:
        return self.balances.get(account, 0)

    def transfer_in(self, account: str, amount: int) -> bool:
        have = self.balances.get(account, 0)
        if amount < 0 or have < amount:
            return False
        self.balances[account] = have - amount
        self.custody += amount
        return True

    def transfer_out(self, account: str, amount: int) -> bool:
        if amount < 0 or self.custody < amount:
            return False
        self.custody -= amount
        self.balances[account] = self.balances.get(account, 0) + amount
        return True

    def total_value(self) -> int:
        """Sum of every balance including custody; constant across transfers."""
        return self.custody + sum(self.balances.values())
