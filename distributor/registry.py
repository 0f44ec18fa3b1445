import logging
import time
from contextlib import contextmanager
from typing import Callable, Optional

import eth_utils as eth
from tinydb import where
from tinydb.table import Document

from distributor.errors import (
    BadConfigException,
    DistributionNotFoundError,
    InsufficientBalanceError,
    InvalidTransitionError,
    UnauthorizedError,
)
from distributor.models import (
    DB,
    ClaimRecord,
    Config,
    Distribution,
    DistributionKind,
    DistributionParams,
    DistributionStatus,
    EthereumAddress,
    FeeRates,
    HexStr,
    normalize_root,
)
from distributor.ledger import SettlementLedger

logger = logging.getLogger(__name__)

Clock = Callable[[], int]

# allowed status changes, keyed by the current status
TRANSITIONS: dict[DistributionStatus, set[DistributionStatus]] = {
    DistributionStatus.CREATED: {
        DistributionStatus.ACTIVE,
        DistributionStatus.CANCELLED,
    },
    DistributionStatus.ACTIVE: {
        DistributionStatus.CLOSED,
        DistributionStatus.CANCELLED,
    },
    DistributionStatus.CLOSED: set(),
    DistributionStatus.CANCELLED: set(),
}


def escrow_account(distribution_id: int) -> str:
    return f"escrow:{distribution_id}"


def now() -> int:
    return int(time.time())


class Registry:
    """
    On-ledger record of every distribution and every claim made against it.

    Every mutation runs inside `transaction()`, which holds the DB lock for the
    whole operation and rolls back every write if the operation raises: operations
    are atomic and totally ordered, and a reader never sees half of one.
    Reads only take the lock. The root is trusted as supplied by the operator.

    :param `config`: roles, fee rates and fee receivers. Fee changes made through
    the registry update this object and only apply to distributions created later.
    :param `clock`: returns the current unix time, replaced in tests
    """

    def __init__(
        self,
        config: Config,
        db: Optional[DB] = None,
        ledger: Optional[SettlementLedger] = None,
        clock: Clock = now,
    ):
        self.config = config
        self.db = db if db is not None else DB()
        self.ledger = ledger if ledger is not None else SettlementLedger(self.db)
        self.clock = clock

    @contextmanager
    def transaction(self):
        with self.db.atomic():
            yield

    # roles

    def is_operator(self, caller: EthereumAddress) -> bool:
        caller = eth.to_checksum_address(caller)
        return caller in self.config.operators or caller in self.config.admins

    def is_admin(self, caller: EthereumAddress) -> bool:
        return eth.to_checksum_address(caller) in self.config.admins

    def _require_operator(self, caller: EthereumAddress) -> None:
        if not self.is_operator(caller):
            raise UnauthorizedError(f"{caller} is not an operator")

    def _require_admin(self, caller: EthereumAddress) -> None:
        if not self.is_admin(caller):
            raise UnauthorizedError(f"{caller} is not an admin")

    # events

    def emit(self, event: str, **payload) -> None:
        self.db.events.insert({"event": event, "timestamp": self.clock(), **payload})

    def events(self, event: Optional[str] = None) -> list[dict]:
        with self.db.lock:
            if event is None:
                return self.db.events.all()
            return self.db.events.search(where("event") == event)

    # storage

    def load(self, distribution_id: int) -> Distribution:
        doc = self.db.distributions.get(doc_id=distribution_id)
        if doc is None:
            raise DistributionNotFoundError(f"Distribution {distribution_id} not found")
        return Distribution(**doc)

    def _save(self, distribution: Distribution) -> None:
        self.db.distributions.update(
            distribution.model_dump(mode="json"), doc_ids=[distribution.id]
        )

    def _next_id(self) -> int:
        return max((d.doc_id for d in self.db.distributions.all()), default=0) + 1

    def _set_status(
        self, distribution: Distribution, status: DistributionStatus
    ) -> Distribution:
        # the stored status, so an expired distribution can still be closed or cancelled
        current = distribution.status
        if status not in TRANSITIONS[current]:
            raise InvalidTransitionError(
                f"Distribution {distribution.id} cannot go from {current.value} to {status.value}"
            )
        distribution.status = status
        self._save(distribution)
        self.emit(
            "DistributionStatusChanged",
            distribution_id=distribution.id,
            status=status.value,
        )
        logger.info("distribution %s is now %s", distribution.id, status.value)
        return distribution

    # lifecycle

    def create_distribution(
        self,
        caller: EthereumAddress,
        params: DistributionParams,
        merkle_root: HexStr,
        fund: bool = False,
    ) -> Distribution:
        """
        Commit a new distribution with status CREATED.

        The current fee rates are copied onto the record. With `fund`, the caller's
        `total_amount` of the settlement token moves into escrow in the same transaction.
        Nothing is written if any check fails.
        """
        self._require_operator(caller)
        merkle_root = normalize_root(merkle_root)

        with self.transaction():
            created_at = self.clock()
            if params.window_end <= created_at:
                raise BadConfigException(
                    f"Window end {params.window_end} is not in the future"
                )

            creator = eth.to_checksum_address(caller)
            if fund:
                balance = self.ledger.balance_of(creator, params.settlement_token)
                if balance < params.total_amount:
                    raise InsufficientBalanceError(
                        f"{creator} cannot fund {params.total_amount}, holds {balance}"
                    )

            distribution = Distribution(
                **params.model_dump(),
                id=self._next_id(),
                creator=creator,
                created_at=created_at,
                merkle_root=merkle_root,
                platform_fee_bps=self.config.platform_fee_bps,
                maintenance_fee_bps=self.config.maintenance_fee_bps,
            )
            self.db.distributions.insert(self._document(distribution))

            if fund:
                self.ledger.transfer(
                    params.settlement_token,
                    creator,
                    escrow_account(distribution.id),
                    params.total_amount,
                )

            self.emit(
                "DistributionCreated",
                distribution_id=distribution.id,
                creator=creator,
                total_amount=distribution.total_amount,
                merkle_root=merkle_root,
            )

        logger.info(
            "created distribution %s for asset %s: %s units, root %s",
            distribution.id,
            distribution.asset_id,
            distribution.total_amount,
            merkle_root,
        )
        return distribution

    @staticmethod
    def _document(distribution: Distribution) -> Document:
        return Document(distribution.model_dump(mode="json"), doc_id=distribution.id)

    def fund(self, distribution_id: int, sender: EthereumAddress, amount: int) -> int:
        """
        Top up the escrow of a distribution that is not yet active. Returns the escrow balance.
        The escrow never holds more than `total_amount`.
        """
        with self.transaction():
            distribution = self.load(distribution_id)
            if distribution.status != DistributionStatus.CREATED:
                raise InvalidTransitionError(
                    f"Distribution {distribution_id} can only be funded before activation"
                )
            escrow = escrow_account(distribution_id)
            escrowed = self.ledger.balance_of(escrow, distribution.settlement_token)
            if escrowed + amount > distribution.total_amount:
                raise BadConfigException(
                    f"Funding {amount} would put {escrowed + amount} in escrow, "
                    f"above the total of {distribution.total_amount}"
                )
            self.ledger.transfer(
                distribution.settlement_token,
                eth.to_checksum_address(sender),
                escrow,
                amount,
            )
            return self.ledger.balance_of(escrow, distribution.settlement_token)

    def update_merkle_root(
        self, caller: EthereumAddress, distribution_id: int, merkle_root: HexStr
    ) -> Distribution:
        """Replace the root of a distribution that has not been activated yet"""
        self._require_operator(caller)
        merkle_root = normalize_root(merkle_root)
        with self.transaction():
            distribution = self.load(distribution_id)
            if distribution.status != DistributionStatus.CREATED:
                raise InvalidTransitionError(
                    f"Root of distribution {distribution_id} is frozen once {distribution.status.value}"
                )
            distribution.merkle_root = merkle_root
            self._save(distribution)
            self.emit(
                "MerkleRootUpdated",
                distribution_id=distribution_id,
                merkle_root=merkle_root,
            )
        return distribution

    def activate(self, caller: EthereumAddress, distribution_id: int) -> Distribution:
        """Open claims. The escrow must already hold `total_amount`."""
        self._require_operator(caller)
        with self.transaction():
            distribution = self.load(distribution_id)
            if self.clock() > distribution.window_end:
                raise InvalidTransitionError(
                    f"Window of distribution {distribution_id} has already ended"
                )
            escrowed = self.ledger.balance_of(
                escrow_account(distribution_id), distribution.settlement_token
            )
            if escrowed < distribution.total_amount:
                raise InsufficientBalanceError(
                    f"Escrow holds {escrowed}, distribution {distribution_id} needs {distribution.total_amount}"
                )
            return self._set_status(distribution, DistributionStatus.ACTIVE)

    def close(self, caller: EthereumAddress, distribution_id: int) -> Distribution:
        self._require_operator(caller)
        with self.transaction():
            return self._set_status(
                self.load(distribution_id), DistributionStatus.CLOSED
            )

    def cancel(self, caller: EthereumAddress, distribution_id: int) -> Distribution:
        """Administrative override, e.g. after a bad root is discovered"""
        self._require_admin(caller)
        with self.transaction():
            return self._set_status(
                self.load(distribution_id), DistributionStatus.CANCELLED
            )

    def recover_unclaimed(
        self,
        caller: EthereumAddress,
        distribution_id: int,
        receiver: Optional[EthereumAddress] = None,
    ) -> int:
        """
        Return what is left in escrow once a distribution is closed or cancelled.
        Funds go to `receiver`, or back to the creator. Returns the amount moved.
        """
        self._require_admin(caller)
        with self.transaction():
            distribution = self.load(distribution_id)
            status = distribution.effective_status(self.clock())
            if status not in (DistributionStatus.CLOSED, DistributionStatus.CANCELLED):
                raise InvalidTransitionError(
                    f"Distribution {distribution_id} is {status.value}, cannot recover funds"
                )

            receiver = eth.to_checksum_address(receiver or distribution.creator)
            escrow = escrow_account(distribution_id)
            remaining = self.ledger.balance_of(escrow, distribution.settlement_token)
            if remaining > 0:
                self.ledger.transfer(
                    distribution.settlement_token, escrow, receiver, remaining
                )
            self.emit(
                "UnclaimedRecovered",
                distribution_id=distribution_id,
                receiver=receiver,
                amount=remaining,
            )

        logger.info(
            "recovered %s from distribution %s to %s", remaining, distribution_id, receiver
        )
        return remaining

    # fee configuration

    def set_fee_rates(
        self, caller: EthereumAddress, platform_fee_bps: int, maintenance_fee_bps: int
    ) -> FeeRates:
        """New rates apply to distributions created from now on"""
        self._require_admin(caller)
        rates = FeeRates(
            platform_fee_bps=platform_fee_bps, maintenance_fee_bps=maintenance_fee_bps
        )
        with self.transaction():
            self.emit("FeeRatesUpdated", **rates.model_dump())
            # config is not part of the db, so it changes last
            self.config.platform_fee_bps = rates.platform_fee_bps
            self.config.maintenance_fee_bps = rates.maintenance_fee_bps
        return rates

    def set_fee_receivers(
        self,
        caller: EthereumAddress,
        platform_fee_receiver: EthereumAddress,
        maintenance_fee_receiver: EthereumAddress,
    ) -> None:
        self._require_admin(caller)
        platform_fee_receiver = eth.to_checksum_address(platform_fee_receiver)
        maintenance_fee_receiver = eth.to_checksum_address(maintenance_fee_receiver)
        with self.transaction():
            self.emit(
                "FeeReceiversUpdated",
                platform_fee_receiver=platform_fee_receiver,
                maintenance_fee_receiver=maintenance_fee_receiver,
            )
            self.config.platform_fee_receiver = platform_fee_receiver
            self.config.maintenance_fee_receiver = maintenance_fee_receiver

    # queries

    def get_distribution(self, distribution_id: int) -> Distribution:
        """The stored record, with `status` read as closed once the window has passed"""
        with self.db.lock:
            distribution = self.load(distribution_id)
        distribution.status = distribution.effective_status(self.clock())
        return distribution

    def list_distributions(
        self, kind: Optional[DistributionKind] = None
    ) -> list[Distribution]:
        with self.db.lock:
            docs = self.db.distributions.all()
        distributions = [Distribution(**d) for d in docs]
        for d in distributions:
            d.status = d.effective_status(self.clock())
        if kind is not None:
            distributions = [d for d in distributions if d.kind == kind]
        return distributions

    @staticmethod
    def _claim_key(distribution_id: int, claimant: EthereumAddress):
        return (where("distribution_id") == distribution_id) & (
            where("claimant") == eth.to_checksum_address(claimant)
        )

    def get_claim(
        self, distribution_id: int, claimant: EthereumAddress
    ) -> Optional[ClaimRecord]:
        with self.db.lock:
            doc = self.db.claims.get(self._claim_key(distribution_id, claimant))
        return ClaimRecord(**doc) if doc else None

    def has_claimed(self, distribution_id: int, claimant: EthereumAddress) -> bool:
        return self.get_claim(distribution_id, claimant) is not None

    def record_claim(self, record: ClaimRecord) -> None:
        """Write the claimed flag. Callers hold the transaction and have checked it is unset."""
        self.db.claims.insert(record.model_dump())

    def claimed_amount(self, distribution_id: int) -> int:
        """Sum of committed amounts paid out so far, fees included"""
        with self.db.lock:
            docs = self.db.claims.search(where("distribution_id") == distribution_id)
        return sum(d["amount"] for d in docs)

    def remaining_amount(self, distribution_id: int) -> int:
        """What is still held in escrow for the distribution"""
        with self.db.lock:
            distribution = self.load(distribution_id)
            return self.ledger.balance_of(
                escrow_account(distribution_id), distribution.settlement_token
            )
