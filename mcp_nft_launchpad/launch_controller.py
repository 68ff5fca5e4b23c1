"""
Launch Controller

Sequences every request against one collection launch: configuration, the four paid
sale paths, settlement of the pre-commit queue, project-owner mints and the batch
reveal. The controller owns all mutable launch state; the registry and the value
transfer are external collaborators.

Request Flow (paid mints):
1. Capability and input checks
2. Phase check against the PhaseClock at the caller-supplied time
3. Supply, allowance and per-address checks
4. Price lookup and payment check (insufficient payment is rejected here)
5. Accounting, then the registry mint
6. Refund of any overpayment, strictly after all accounting

Steps 1-4 never mutate anything. Steps 5-6 run inside a transaction: if the refund fails
the ledger, queue, price snapshot, event log and registry are restored to their state
before the call.

Privileged operations check a capability here, before reaching the core components:
the owner configures the launch, seeds the allowlist and may force a reveal; the project
owner performs dev mints.
"""
import dataclasses
from contextlib import contextmanager
from typing import Iterator, List, Optional, Sequence, Union

from solders.pubkey import Pubkey
from mcp.server.fastmcp.utilities.logging import get_logger

from mcp_nft_launchpad.batch_reveal import RevealLedger, validate_reveal_dates
from mcp_nft_launchpad.errors import (
    AllowanceExceededError,
    ConfigurationError,
    PaymentError,
    PhaseViolationError,
    RandomnessError,
    RefundFailedError,
    RevealNotReadyError,
    SupplyExhaustedError,
    UnauthorizedError,
    ValidationError,
)
from mcp_nft_launchpad.ledger import AllocationLedger
from mcp_nft_launchpad.phases import PhaseClock, boundary_fields, validate_schedule
from mcp_nft_launchpad.precommit import Allocation, PreCommitQueue, QueueEntry
from mcp_nft_launchpad.pricing import AuctionPricer, FlatPricer
from mcp_nft_launchpad.randomness import RandomnessOracle, derive_randomness
from mcp_nft_launchpad.registry import CollectibleRegistry, ValueTransfer
from mcp_nft_launchpad.schemas import (
    AllocationEvent,
    CollectionConfig,
    FlatPrices,
    LaunchEvent,
    MintEvent,
    MintReceipt,
    Phase,
    PreCommitEvent,
    PriceCurve,
    RevealConfig,
    RevealEvent,
    RevealRequestedEvent,
    SaleSchedule,
    SaleVariant,
)

logger = get_logger(__name__)


class LaunchController:
    def __init__(
        self,
        launch_id: str,
        collection: CollectionConfig,
        owner: Pubkey,
        project_owner: Pubkey,
        registry: CollectibleRegistry,
        treasury: ValueTransfer,
        variant: SaleVariant = SaleVariant.dutch_auction,
        oracle: Optional[RandomnessOracle] = None,
    ):
        allocated = collection.amount_for_auction + collection.amount_for_allowlist + collection.amount_for_devs
        if allocated > collection.collection_size:
            raise ConfigurationError(
                f"Phase allocations ({allocated}) exceed the collection size ({collection.collection_size})"
            )
        if collection.max_per_request > collection.collection_size:
            raise ConfigurationError("Max mintable per request cannot exceed the collection size")
        if variant == SaleVariant.flat and collection.amount_for_auction:
            raise ConfigurationError("Flat launches have no auction allocation")

        self.launch_id = launch_id
        self.collection = collection
        self.owner = owner
        self.project_owner = project_owner
        self.registry = registry
        self.treasury = treasury
        self.variant = variant
        self.oracle = oracle

        self.schedule = SaleSchedule()
        self.pricer: Optional[Union[AuctionPricer, FlatPricer]] = None
        self.ledger = AllocationLedger()
        self.queue = PreCommitQueue(self.ledger, collection.amount_for_allowlist)
        self.reveal: Optional[RevealLedger] = None
        self.pending_request: Optional[int] = None
        self.pending_request_time = 0
        self.force_revealed = False
        self.events: List[LaunchEvent] = []

    # --- Helpers ---

    def _require_owner(self, caller: Pubkey) -> None:
        if caller != self.owner:
            raise UnauthorizedError(f"{caller} is not the owner of launch '{self.launch_id}'")

    def _require_project_owner(self, caller: Pubkey) -> None:
        if caller != self.project_owner:
            raise UnauthorizedError(f"{caller} is not the project owner of launch '{self.launch_id}'")

    def _require_phase(self, now: int, *phases: Phase) -> Phase:
        phase = self.current_phase(now)
        if phase not in phases:
            expected = " or ".join(p.value for p in phases)
            raise PhaseViolationError(f"Launch '{self.launch_id}' is in phase {phase.value}, expected {expected}")
        return phase

    def _check_quantity(self, quantity: int) -> None:
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Quantity must be a positive integer")
        if quantity > self.collection.max_per_request:
            raise AllowanceExceededError(
                f"Quantity {quantity} exceeds the per-request maximum of {self.collection.max_per_request}"
            )

    def _check_address_limit(self, caller: Pubkey, quantity: int) -> None:
        held = self.registry.number_minted(caller) + self.ledger.pending_of(caller)
        if held + quantity > self.collection.max_per_address:
            raise AllowanceExceededError(
                f"{caller} already holds {held}; minting {quantity} more exceeds the per-address maximum "
                f"of {self.collection.max_per_address}"
            )

    def _check_collection_room(self, quantity: int, reserved: int = 0) -> None:
        room = self.collection.collection_size - reserved - self.total_supply_including_pending()
        if quantity > room:
            raise SupplyExhaustedError(f"Only {max(room, 0)} item(s) remain for this request")

    @staticmethod
    def _check_payment(cost: int, payment: int) -> None:
        if payment < cost:
            raise PaymentError(f"Payment of {payment} is insufficient, {cost} required")

    def _emit(self, event: LaunchEvent) -> None:
        self.events.append(event)
        logger.info(f"[{self.launch_id}] {event.kind}: {event.model_dump(exclude={'kind'})}")

    @contextmanager
    def _transaction(self) -> Iterator[None]:
        ledger_state = dataclasses.replace(
            self.ledger, allowances=dict(self.ledger.allowances), pending=dict(self.ledger.pending)
        )
        entries = [QueueEntry(entry.requester, entry.remaining) for entry in self.queue.entries]
        cursor = self.queue.cursor
        last_price = self.pricer.last_price if isinstance(self.pricer, AuctionPricer) else None
        event_count = len(self.events)
        registry_state = self.registry.snapshot()
        try:
            yield
        except Exception:
            vars(self.ledger).update(vars(ledger_state))
            self.queue.entries, self.queue.cursor = entries, cursor
            if last_price is not None:
                self.pricer.record_purchase_price(last_price)
            del self.events[event_count:]
            self.registry.restore(registry_state)
            logger.warning(f"[{self.launch_id}] call rolled back")
            raise

    def _refund(self, caller: Pubkey, payment: int, cost: int) -> int:
        refund = payment - cost
        if refund > 0:
            try:
                self.treasury.send(caller, refund)
            except RefundFailedError:
                raise
            except Exception as e:
                raise RefundFailedError(f"Refund of {refund} to {caller} failed: {e}") from e
        return refund

    # --- Views ---

    @property
    def clock(self) -> PhaseClock:
        return PhaseClock(self.schedule, self.variant)

    def total_supply_including_pending(self) -> int:
        return self.registry.total_minted() + self.ledger.outstanding

    def current_phase(self, now: int) -> Phase:
        sold_out = self.registry.total_minted() >= self.collection.collection_size
        return self.clock.phase_at(now, sold_out=sold_out)

    def current_price(self, now: int) -> int:
        if self.pricer is None:
            raise ConfigurationError(f"Launch '{self.launch_id}' has no schedule yet")
        phase = self.current_phase(now)
        if isinstance(self.pricer, AuctionPricer) and phase in (Phase.not_started, Phase.dutch_auction):
            return self.pricer.price_at(now)
        if phase in (Phase.public_sale, Phase.ended):
            return self.pricer.public_price()
        return self.pricer.allowlist_price()

    def has_next_reveal(self, now: int) -> bool:
        if self.reveal is None or self.pending_request is not None:
            return False
        return self.reveal.has_next(self.registry.total_minted(), now)

    def resolve_metadata_index(self, item_id: int) -> Optional[int]:
        """Metadata index of ``item_id``; None while unrevealed, the id itself when reveal is disabled."""
        if not isinstance(item_id, int) or not 0 <= item_id < self.collection.collection_size:
            raise ValidationError(f"Item {item_id} is outside the collection")
        if self.reveal is None:
            return item_id
        return self.reveal.resolve(item_id)

    # --- Configuration ---

    def configure_schedule(
        self,
        caller: Pubkey,
        now: int,
        schedule: SaleSchedule,
        curve: Optional[PriceCurve] = None,
        flat_prices: Optional[FlatPrices] = None,
    ) -> None:
        self._require_owner(caller)
        if self.clock.configured:
            raise ConfigurationError(
                f"Schedule of launch '{self.launch_id}' is already set; use the boundary setters"
            )
        validate_schedule(schedule, self.variant)
        if self.variant == SaleVariant.dutch_auction:
            if curve is None:
                raise ConfigurationError("Dutch auction launches need a price curve")
            pricer = AuctionPricer(curve, schedule.auction_start, schedule.pre_commit_start)
        else:
            if flat_prices is None:
                raise ConfigurationError("Flat launches need fixed prices")
            pricer = FlatPricer(flat_prices)
        self.schedule = schedule
        self.pricer = pricer
        logger.info(f"[{self.launch_id}] schedule configured at {now}: {schedule.model_dump()}")

    def _update_boundary(self, caller: Pubkey, now: int, name: str, value: int) -> None:
        self._require_owner(caller)
        if not self.clock.configured:
            raise ConfigurationError(f"Schedule of launch '{self.launch_id}' is not initialized")
        if name not in boundary_fields(self.variant):
            raise ConfigurationError(f"Boundary '{name}' is not used by {self.variant.value} launches")
        current = getattr(self.schedule, name)
        if current <= now:
            raise PhaseViolationError(f"Boundary '{name}' has already passed")
        if value <= now:
            raise ConfigurationError(f"Boundary '{name}' cannot be moved into the past")
        schedule = self.schedule.model_copy(update={name: value})
        validate_schedule(schedule, self.variant)
        if isinstance(self.pricer, AuctionPricer) and name in ("auction_start", "pre_commit_start"):
            self.pricer.reschedule(schedule.auction_start, schedule.pre_commit_start)
        self.schedule = schedule
        logger.info(f"[{self.launch_id}] {name} moved from {current} to {value}")

    def set_auction_start(self, caller: Pubkey, now: int, value: int) -> None:
        self._update_boundary(caller, now, "auction_start", value)

    def set_pre_commit_start(self, caller: Pubkey, now: int, value: int) -> None:
        self._update_boundary(caller, now, "pre_commit_start", value)

    def set_allowlist_start(self, caller: Pubkey, now: int, value: int) -> None:
        self._update_boundary(caller, now, "allowlist_start", value)

    def set_public_sale_start(self, caller: Pubkey, now: int, value: int) -> None:
        self._update_boundary(caller, now, "public_sale_start", value)

    def set_public_sale_end(self, caller: Pubkey, now: int, value: int) -> None:
        self._update_boundary(caller, now, "public_sale_end", value)

    def configure_reveal(self, caller: Pubkey, now: int, reveal: RevealConfig) -> None:
        self._require_owner(caller)
        if self.reveal is not None:
            raise ConfigurationError(f"Batch reveal of launch '{self.launch_id}' is already configured")
        validate_reveal_dates(reveal.start_time, reveal.interval, now)
        self.reveal = RevealLedger(
            self.collection.collection_size, reveal.batch_size, reveal.start_time, reveal.interval
        )
        logger.info(f"[{self.launch_id}] batch reveal configured: {reveal.model_dump()}")

    def _require_reveal(self) -> RevealLedger:
        if self.reveal is None:
            raise ConfigurationError(f"Batch reveal of launch '{self.launch_id}' is not initialized")
        return self.reveal

    def set_reveal_batch_size(self, caller: Pubkey, batch_size: int) -> None:
        self._require_owner(caller)
        self._require_reveal().set_batch_size(batch_size)

    def set_reveal_start_time(self, caller: Pubkey, now: int, start_time: int) -> None:
        self._require_owner(caller)
        self._require_reveal().set_start_time(start_time, now)

    def set_reveal_interval(self, caller: Pubkey, now: int, interval: int) -> None:
        self._require_owner(caller)
        self._require_reveal().set_interval(interval, now)

    def seed_allowlist(self, caller: Pubkey, addresses: Sequence[Pubkey], amounts: Sequence[int]) -> None:
        self._require_owner(caller)
        if len(addresses) != len(amounts):
            raise ValidationError("Allowlist addresses and amounts must have the same length")
        if any(amount < 0 for amount in amounts):
            raise ValidationError("Allowlist amounts must be non-negative")
        for address, amount in zip(addresses, amounts):
            self.ledger.allowances[address] = amount
        logger.info(f"[{self.launch_id}] allowlist seeded for {len(addresses)} address(es)")

    # --- Mints ---

    def dev_mint(self, caller: Pubkey, now: int, quantity: int) -> None:
        self._require_project_owner(caller)
        if not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError("Quantity must be a positive integer")
        if self.ledger.minted_by_devs + quantity > self.collection.amount_for_devs:
            raise SupplyExhaustedError(
                f"Project owner allocation of {self.collection.amount_for_devs} would be exceeded"
            )
        self._check_collection_room(quantity)
        phase = self.current_phase(now)
        with self._transaction():
            self.ledger.minted_by_devs += quantity
            self.registry.mint(caller, quantity)
            self._emit(MintEvent(timestamp=now, to=str(caller), quantity=quantity, price=0, phase=phase))

    def mint_auction(self, caller: Pubkey, now: int, quantity: int, payment: int) -> MintReceipt:
        self._check_quantity(quantity)
        self._require_phase(now, Phase.dutch_auction)
        remaining = min(
            self.collection.amount_for_auction - self.ledger.minted_auction,
            self.collection.collection_size - self.total_supply_including_pending(),
        )
        if remaining <= 0:
            raise SupplyExhaustedError(f"Auction allocation of launch '{self.launch_id}' is sold out")
        quantity = min(quantity, remaining)
        self._check_address_limit(caller, quantity)
        price = self.pricer.price_at(now)
        cost = price * quantity
        self._check_payment(cost, payment)

        with self._transaction():
            self.pricer.record_purchase_price(price)
            self.ledger.minted_auction += quantity
            self.ledger.proceeds += cost
            self.registry.mint(caller, quantity)
            self._emit(MintEvent(timestamp=now, to=str(caller), quantity=quantity, price=price, phase=Phase.dutch_auction))
            refund = self._refund(caller, payment, cost)
        return MintReceipt(quantity=quantity, unit_price=price, total_cost=cost, refund=refund)

    def pre_commit(self, caller: Pubkey, now: int, quantity: int, payment: int) -> MintReceipt:
        self._require_phase(now, Phase.pre_commit)
        self.queue.check_enqueue(caller, quantity)
        self._check_collection_room(quantity)
        price = self.pricer.allowlist_price()
        cost = price * quantity
        self._check_payment(cost, payment)

        with self._transaction():
            self.queue.enqueue(caller, quantity)
            self.ledger.proceeds += cost
            self._emit(PreCommitEvent(timestamp=now, requester=str(caller), quantity=quantity, price=price))
            refund = self._refund(caller, payment, cost)
        return MintReceipt(quantity=quantity, unit_price=price, total_cost=cost, refund=refund)

    def settle_pending(self, caller: Pubkey, now: int, max_quantity: int) -> List[Allocation]:
        """Delivers queued pre-commits in FIFO order. Anyone may call this."""
        self._require_phase(now, Phase.allowlist, Phase.public_sale)
        if not isinstance(max_quantity, int) or max_quantity <= 0:
            raise ValidationError("Settlement quantity must be a positive integer")
        if self.ledger.outstanding == 0:
            logger.debug(f"[{self.launch_id}] settlement by {caller}: nothing pending")
            return []

        with self._transaction():
            allocations = self.queue.settle(max_quantity)
            for allocation in allocations:
                self.registry.mint(allocation.requester, allocation.quantity)
                self._emit(AllocationEvent(
                    timestamp=now,
                    to=str(allocation.requester),
                    quantity=allocation.quantity,
                    queue_index=allocation.queue_index,
                ))
        return allocations

    def mint_allowlist(self, caller: Pubkey, now: int, quantity: int, payment: int) -> MintReceipt:
        self._check_quantity(quantity)
        self._require_phase(now, Phase.allowlist)
        self.ledger.check_allowance(caller, quantity)
        used = self.ledger.pre_committed + self.ledger.minted_allowlist
        if used + quantity > self.collection.amount_for_allowlist:
            raise SupplyExhaustedError(
                f"Allowlist allocation has {self.collection.amount_for_allowlist - used} item(s) left"
            )
        self._check_collection_room(quantity)
        price = self.pricer.allowlist_price()
        cost = price * quantity
        self._check_payment(cost, payment)

        with self._transaction():
            self.ledger.consume_allowance(caller, quantity)
            self.ledger.minted_allowlist += quantity
            self.ledger.proceeds += cost
            self.registry.mint(caller, quantity)
            self._emit(MintEvent(timestamp=now, to=str(caller), quantity=quantity, price=price, phase=Phase.allowlist))
            refund = self._refund(caller, payment, cost)
        return MintReceipt(quantity=quantity, unit_price=price, total_cost=cost, refund=refund)

    def mint_public(self, caller: Pubkey, now: int, quantity: int, payment: int) -> MintReceipt:
        self._check_quantity(quantity)
        self._require_phase(now, Phase.public_sale)
        self._check_address_limit(caller, quantity)
        # Unminted project-owner allocation stays reserved.
        self._check_collection_room(quantity, reserved=self.collection.amount_for_devs - self.ledger.minted_by_devs)
        price = self.pricer.public_price()
        cost = price * quantity
        self._check_payment(cost, payment)

        with self._transaction():
            self.ledger.minted_public += quantity
            self.ledger.proceeds += cost
            self.registry.mint(caller, quantity)
            self._emit(MintEvent(timestamp=now, to=str(caller), quantity=quantity, price=price, phase=Phase.public_sale))
            refund = self._refund(caller, payment, cost)
        return MintReceipt(quantity=quantity, unit_price=price, total_cost=cost, refund=refund)

    # --- Reveal ---

    def reveal_next(self, caller: Pubkey, now: int) -> Optional[int]:
        """
        Reveals the next batch and returns its seed. With an oracle, files a randomness
        request instead and returns None; the batch is revealed when the request is fulfilled.
        """
        if self.reveal is None:
            raise RevealNotReadyError(f"Batch reveal is disabled for launch '{self.launch_id}'")
        if self.pending_request is not None:
            raise RevealNotReadyError(f"Randomness request {self.pending_request} is still pending")
        reveal = self.reveal
        if not reveal.has_next(self.registry.total_minted(), now):
            raise RevealNotReadyError(f"Batch {reveal.next_batch} of launch '{self.launch_id}' cannot be revealed yet")

        batch = reveal.next_batch
        if self.oracle is not None and not self.force_revealed:
            request_id = self.oracle.request_random_words(self.fulfill_random_words)
            self.pending_request = request_id
            self.pending_request_time = now
            self._emit(RevealRequestedEvent(timestamp=now, batch=batch, request_id=request_id))
            return None

        randomness = derive_randomness(caller, now, reveal.last_revealed, self.launch_id)
        seed = reveal.reveal_next(self.registry.total_minted(), now, randomness)
        self._emit(RevealEvent(timestamp=now, batch=batch, seed=seed))
        return seed

    def fulfill_random_words(self, request_id: int, words: List[int]) -> int:
        if self.pending_request is None or request_id != self.pending_request:
            raise RandomnessError(f"Randomness request {request_id} is not pending for launch '{self.launch_id}'")
        if not words:
            raise RandomnessError("Fulfilment carried no random words")
        reveal = self._require_reveal()
        batch = reveal.next_batch
        seed = reveal.advance(words[0])
        self.pending_request = None
        self._emit(RevealEvent(timestamp=self.pending_request_time, batch=batch, seed=seed))
        return seed

    def force_reveal(self, caller: Pubkey, now: int) -> int:
        """Reveals the next batch regardless of time and supply; cancels any pending oracle request."""
        self._require_owner(caller)
        reveal = self._require_reveal()
        if reveal.complete:
            raise RevealNotReadyError(f"Every batch of launch '{self.launch_id}' is already revealed")
        batch = reveal.next_batch
        randomness = derive_randomness(caller, now, reveal.last_revealed, self.launch_id)
        seed = reveal.advance(randomness)
        if self.pending_request is not None:
            logger.warning(f"[{self.launch_id}] force reveal supersedes randomness request {self.pending_request}")
        self.pending_request = None
        self.force_revealed = True
        self._emit(RevealEvent(timestamp=now, batch=batch, seed=seed, forced=True))
        return seed
