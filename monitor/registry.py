"""Per-kind set of monitored automation accounts."""

from __future__ import annotations

from collections import OrderedDict
from dataclasses import dataclass
from typing import Iterable

from trading.account_codec import AccountKind
from utils.addressing import normalize_address


@dataclass
class MonitoredAccount:
    address: str
    kind: AccountKind
    last_checked_at: int | None = None
    last_triggered_at: int | None = None


class MonitorRegistry:
    """Insertion-ordered address set for one account kind.

    Only the owning controller mutates timing. ``list()`` returns a copy, so a
    cycle that iterates a snapshot is unaffected by concurrent add/remove.
    """

    def __init__(self, kind: AccountKind) -> None:
        self.kind = AccountKind(kind)
        self._accounts: "OrderedDict[str, MonitoredAccount]" = OrderedDict()

    def __len__(self) -> int:
        return len(self._accounts)

    def __contains__(self, address: object) -> bool:
        return normalize_address(address if isinstance(address, str) else "") in self._accounts

    def add(self, address: str) -> bool:
        key = normalize_address(address)
        if not key or key in self._accounts:
            return False
        self._accounts[key] = MonitoredAccount(address=key, kind=self.kind)
        return True

    def remove(self, address: str) -> bool:
        return self._accounts.pop(normalize_address(address), None) is not None

    def list(self) -> list[str]:
        return list(self._accounts.keys())

    def get(self, address: str) -> MonitoredAccount | None:
        return self._accounts.get(normalize_address(address))

    def load_from_cache(self, snapshots: Iterable) -> int:
        """Merge cached addresses and timing.

        Already-registered accounts (e.g. from the env account lists) only take
        cached timing for fields they have not recorded yet; live timing wins.
        Returns the number of newly added addresses.
        """
        added = 0
        for snap in snapshots or []:
            key = normalize_address(getattr(snap, "account_address", ""))
            if not key:
                continue
            existing = self._accounts.get(key)
            if existing is not None:
                if existing.last_checked_at is None:
                    existing.last_checked_at = getattr(snap, "last_checked", None)
                if existing.last_triggered_at is None:
                    existing.last_triggered_at = getattr(snap, "last_triggered", None)
                continue
            self._accounts[key] = MonitoredAccount(
                address=key,
                kind=self.kind,
                last_checked_at=getattr(snap, "last_checked", None),
                last_triggered_at=getattr(snap, "last_triggered", None),
            )
            added += 1
        return added

    def update_timing(
        self,
        address: str,
        *,
        checked_at: int | None = None,
        triggered_at: int | None = None,
    ) -> None:
        account = self._accounts.get(normalize_address(address))
        if account is None:
            # Removed mid-cycle; the next cycle will not see it.
            return
        if checked_at is not None:
            account.last_checked_at = checked_at
        if triggered_at is not None:
            account.last_triggered_at = triggered_at
