import logging
from typing import Callable

from tinydb import where

from distributor.errors import InsufficientBalanceError
from distributor.models import DB, EthereumAddress

logger = logging.getLogger(__name__)

# (token, sender, recipient, amount), called after the balances have moved
TransferHook = Callable[[EthereumAddress, str, str, int], None]


class SettlementLedger:
    """
    Balances of the settlement asset, per (account, token).
    Accounts are addresses or internal escrow ids such as `escrow:1`.

    Hooks registered with `on_transfer` run after each transfer, the way a token
    with receive callbacks hands control to the recipient.
    """

    def __init__(self, db: DB):
        self.db = db
        self.hooks: list[TransferHook] = []

    def on_transfer(self, hook: TransferHook) -> None:
        self.hooks.append(hook)

    @staticmethod
    def _key(account: str, token: EthereumAddress):
        return (where("account") == account) & (where("token") == token)

    def balance_of(self, account: str, token: EthereumAddress) -> int:
        with self.db.lock:
            doc = self.db.balances.get(self._key(account, token))
        return doc["amount"] if doc else 0

    def _set(self, account: str, token: EthereumAddress, amount: int) -> None:
        self.db.balances.upsert(
            {"account": account, "token": token, "amount": amount},
            self._key(account, token),
        )

    def mint(self, account: str, token: EthereumAddress, amount: int) -> None:
        """Credit `account` from outside the ledger, e.g. a deposit"""
        if amount < 0:
            raise ValueError(f"Cannot mint a negative amount: {amount}")
        with self.db.lock:
            self._set(account, token, self.balance_of(account, token) + amount)

    def transfer(
        self, token: EthereumAddress, sender: str, recipient: str, amount: int
    ) -> None:
        if amount < 0:
            raise ValueError(f"Cannot transfer a negative amount: {amount}")
        with self.db.lock:
            available = self.balance_of(sender, token)
            if available < amount:
                raise InsufficientBalanceError(
                    f"{sender} holds {available} of {token}, needs {amount}"
                )
            self._set(sender, token, available - amount)
            self._set(recipient, token, self.balance_of(recipient, token) + amount)
            logger.debug("transfer %s %s: %s -> %s", amount, token, sender, recipient)

            for hook in self.hooks:
                hook(token, sender, recipient, amount)
