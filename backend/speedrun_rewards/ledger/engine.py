"""
The reward ledger aggregate.

``RewardLedger`` owns the budget ledger, the proof registry, every recipient
balance and every committed grant. All of them form one consistency domain:
each allocation batch, claim and administrative change runs under a single
re-entrant lock, validates completely before touching state, and emits one
audit record once committed.

Readers get an immutable ``LedgerStats`` snapshot (and a balance view) that
is swapped in after every commit, so ``stats()`` never waits on a writer.
"""

import hashlib
import threading
from collections import Counter
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple

from ..core.exceptions import (
    BudgetExceededError,
    CampaignPausedError,
    CategoryCapExceededError,
    DuplicateProofError,
    InsufficientFundsError,
    InvalidWeekError,
    LedgerHaltedError,
    MalformedBatchError,
    NotFoundError,
    NothingToClaimError,
    OverpayInvariantViolation,
    RewardLedgerError,
    UnauthorizedError,
    UnknownCategoryError,
    ValidationError,
)
from ..core.logging_config import get_batch_logger, get_logger
from .audit import AuditAction, AuditRecord, AuditSink, InMemoryAuditSink
from .budget import BudgetLedger
from .policy import CampaignPolicy
from .proofs import ProofRegistry
from .types import (
    BatchResult,
    ClaimResult,
    GrantRequest,
    GrantStatus,
    LedgerStats,
    RecipientBalance,
    RewardCategory,
    RewardGrant,
    ZERO,
    to_amount,
)

logger = get_logger(__name__)

# (recipient, amount, category, week, proof) after validation
_ValidGrant = Tuple[str, Decimal, RewardCategory, int, str]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _address(value: Any) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError("Address must be a non-empty string", details={"address": value})
    return value.strip().lower()


def make_reward_id(batch_id: str, proof: str) -> str:
    return hashlib.sha256(f"{batch_id}:{proof}".encode("utf-8")).hexdigest()


def make_batch_id(sequence: int, proofs: Sequence[str]) -> str:
    digest = hashlib.sha256("\n".join(proofs).encode("utf-8")).hexdigest()
    return f"batch-{sequence:06d}-{digest[:16]}"


class RewardLedger:
    """
    Budget, proofs, balances and grants of one campaign.

    Args:
        policy: Campaign policy (budget ceiling, weeks, category rules)
        owner: Address allowed to run administrative controls
        audit_sink: Where committed mutations are appended
        allocators: Extra addresses allowed to allocate
        settle_externally: Start new grants as PENDING until a payout
            relay confirms them
        clock: Source of timestamps
    """

    def __init__(
        self,
        policy: CampaignPolicy,
        owner: str,
        audit_sink: Optional[AuditSink] = None,
        allocators: Iterable[str] = (),
        settle_externally: bool = False,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self.policy = policy
        self.audit_sink: AuditSink = audit_sink if audit_sink is not None else InMemoryAuditSink()
        self.settle_externally = settle_externally
        self._clock = clock
        self._lock = threading.RLock()

        self._owner = _address(owner)
        self._allocators: Set[str] = {_address(a) for a in allocators}
        self._paused = False
        self._funds = ZERO
        self._budget = BudgetLedger(policy.max_budget)
        self._proofs = ProofRegistry()
        self._balances: Dict[str, RecipientBalance] = {}
        self._grants: Dict[str, RewardGrant] = {}
        self._grants_by_recipient: Dict[str, List[str]] = {}
        self._batches: Dict[str, List[str]] = {}
        self._week_counts: Counter = Counter()
        self._batch_sequence = 0
        self._audit_sequence = 0
        self._halted_reason: Optional[str] = None

        self._balance_view: Mapping[str, RecipientBalance] = {}
        self._snapshot = self._build_snapshot()

    # ------------------------------------------------------------------
    # Properties
    # ------------------------------------------------------------------

    @property
    def owner(self) -> str:
        return self._owner

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def halted(self) -> bool:
        return self._halted_reason is not None

    @property
    def allocators(self) -> frozenset:
        return frozenset(self._allocators)

    @property
    def audit_sequence(self) -> int:
        return self._audit_sequence

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def allocate(self, grants: Iterable[Any], caller: Optional[str] = None) -> BatchResult:
        """
        Commit a batch of grants atomically.

        Each item is a ``GrantRequest`` or a mapping with ``recipient``,
        ``amount``, ``category``, ``week`` and ``proof``. The whole batch is
        validated before anything changes; the first failing check rejects
        every grant in it.

        Raises:
            UnauthorizedError, MalformedBatchError, InvalidWeekError,
            UnknownCategoryError, CategoryCapExceededError,
            BudgetExceededError, DuplicateProofError, CampaignPausedError,
            LedgerHaltedError
        """
        items = list(grants)
        with self._lock:
            try:
                self._ensure_running()
                if caller is not None:
                    self._require_allocator(caller)
                valid = self._validate_batch(items)
            except RewardLedgerError as e:
                logger.warning(
                    f"Allocation rejected ({len(items)} grants): {e.message}",
                    extra={"error_code": e.code},
                )
                raise

            before = self._totals()
            sequence = self._batch_sequence + 1
            batch_id = make_batch_id(sequence, [g[4] for g in valid])
            awarded_at = self._clock()
            status = GrantStatus.PENDING if self.settle_externally else GrantStatus.CONFIRMED
            new_grants = [
                RewardGrant(
                    reward_id=make_reward_id(batch_id, proof),
                    recipient=recipient,
                    amount=amount,
                    category=category,
                    week=week,
                    proof=proof,
                    batch_id=batch_id,
                    awarded_at=awarded_at,
                    status=status,
                )
                for recipient, amount, category, week, proof in valid
            ]
            payload = {
                "batch_id": batch_id,
                "sequence": sequence,
                "grants": [g.to_dict() for g in new_grants],
            }
            self._apply_batch(payload)
            self._commit(AuditAction.BATCH_ALLOCATED, caller, batch_id, payload, before,
                         {g.recipient for g in new_grants})

        total = sum((g.amount for g in new_grants), ZERO)
        get_batch_logger(logger, batch_id).info(
            f"Allocated {len(new_grants)} grants totalling {total} in {batch_id}"
        )
        return BatchResult(
            batch_id=batch_id,
            sequence=sequence,
            applied_count=len(new_grants),
            total_amount=total,
            grants=tuple(new_grants),
        )

    def allocate_arrays(
        self,
        recipients: Sequence[Any],
        amounts: Sequence[Any],
        categories: Sequence[Any],
        weeks: Sequence[Any],
        proofs: Sequence[Any],
        caller: Optional[str] = None,
    ) -> BatchResult:
        """Parallel-array entry point, mirroring the campaign contract's ``allocateRewards``."""
        lengths = {
            "recipients": len(recipients),
            "amounts": len(amounts),
            "categories": len(categories),
            "weeks": len(weeks),
            "proofs": len(proofs),
        }
        if len(set(lengths.values())) != 1:
            logger.warning(f"Allocation rejected: array length mismatch {lengths}")
            raise MalformedBatchError("Array length mismatch", details={"lengths": lengths})
        return self.allocate(
            [GrantRequest(r, a, c, w, p) for r, a, c, w, p in zip(recipients, amounts, categories, weeks, proofs)],
            caller=caller,
        )

    def _validate_batch(self, items: List[Any]) -> List[_ValidGrant]:
        if not items:
            raise MalformedBatchError("Batch is empty", details={"problems": []})

        # 1. shape
        raw: List[Dict[str, Any]] = []
        problems: List[Dict[str, Any]] = []
        for index, item in enumerate(items):
            fields = _grant_fields(item)
            if fields is None:
                problems.append({"index": index, "reason": "not a grant"})
                raw.append({})
                continue
            recipient = fields.get("recipient")
            proof = fields.get("proof")
            amount = to_amount(fields.get("amount"))
            if not isinstance(recipient, str) or not recipient.strip():
                problems.append({"index": index, "reason": "missing recipient"})
            if not isinstance(proof, str) or not proof:
                problems.append({"index": index, "reason": "missing proof"})
            if amount is None or amount <= 0:
                problems.append({"index": index, "reason": "amount must be positive",
                                 "amount": str(fields.get("amount"))})
            raw.append(fields)
        if problems:
            raise MalformedBatchError(
                f"{len(problems)} malformed grant(s) in batch",
                details={"problems": problems},
            )

        # 2. weeks
        bad_weeks = [
            {"index": i, "week": f.get("week")}
            for i, f in enumerate(raw)
            if not self.policy.is_valid_week(f.get("week"))
        ]
        if bad_weeks:
            raise InvalidWeekError(
                f"Week must be between {self.policy.first_week} and {self.policy.last_week}",
                details={"grants": bad_weeks},
            )

        # 3. categories
        categories: List[RewardCategory] = []
        unknown = []
        for i, f in enumerate(raw):
            category = RewardCategory.coerce(f.get("category"))
            if category is None or self.policy.rule_for(category) is None:
                unknown.append({"index": i, "category": str(f.get("category"))})
            categories.append(category)
        if unknown:
            raise UnknownCategoryError("Unknown reward category", details={"grants": unknown})

        valid: List[_ValidGrant] = [
            (f["recipient"].strip().lower(), to_amount(f["amount"]), category, f["week"], f["proof"])
            for f, category in zip(raw, categories)
        ]

        # 4. weekly caps, counting grants already committed
        requested = Counter((g[2], g[3]) for g in valid)
        over_cap = []
        for (category, week), count in requested.items():
            cap = self.policy.rule_for(category).max_per_week
            committed = self._week_counts[(category, week)]
            if committed + count > cap:
                over_cap.append({
                    "category": category.value,
                    "week": week,
                    "requested": count,
                    "committed": committed,
                    "cap": cap,
                })
        if over_cap:
            raise CategoryCapExceededError("Exceeds category limit", details={"violations": over_cap})

        # 5. budget
        total = sum((g[1] for g in valid), ZERO)
        if total > self._budget.headroom():
            raise BudgetExceededError(
                "Exceeds maximum budget",
                details={"requested": str(total), "remaining": str(self._budget.headroom())},
            )

        # 6. proofs
        duplicates = self._proofs.find_duplicates(g[4] for g in valid)
        if duplicates:
            raise DuplicateProofError(
                f"Proof already used: {duplicates[0]}",
                proofs=duplicates,
                details={"indexes": [i for i, g in enumerate(valid) if g[4] in duplicates]},
            )

        # 7. pause
        if self._paused:
            raise CampaignPausedError("Campaign is paused")

        return valid

    def _apply_batch(self, payload: Mapping[str, Any]) -> None:
        grants = [RewardGrant.from_dict(d) for d in payload["grants"]]
        # Aggregate reservation first: it is the authoritative budget check
        self._budget.reserve(sum((g.amount for g in grants), ZERO))
        for grant in grants:
            self._proofs.mark_used(grant.proof)
        batch_id = payload["batch_id"]
        self._batches[batch_id] = []
        for grant in grants:
            balance = self._balances.setdefault(grant.recipient, RecipientBalance())
            balance.earned += grant.amount
            balance.claimable += grant.amount
            self._grants[grant.reward_id] = grant
            self._grants_by_recipient.setdefault(grant.recipient, []).append(grant.reward_id)
            self._batches[batch_id].append(grant.reward_id)
            self._week_counts[(grant.category, grant.week)] += 1
        self._batch_sequence = int(payload["sequence"])

    # ------------------------------------------------------------------
    # Claims
    # ------------------------------------------------------------------

    def claim_all(self, recipient: str) -> ClaimResult:
        """
        Pay out everything the recipient can claim, exactly once.

        Raises:
            CampaignPausedError, NothingToClaimError, InsufficientFundsError,
            LedgerHaltedError
        """
        recipient = _address(recipient)
        with self._lock:
            self._ensure_running()
            self._ensure_claims_open()
            balance = self._balances.get(recipient)
            if balance is None or balance.claimable <= 0:
                logger.warning(f"Nothing to claim for {recipient}", extra={"recipient": recipient})
                raise NothingToClaimError("No rewards to claim", details={"recipient": recipient})
            reward_ids = [
                rid for rid in self._grants_by_recipient.get(recipient, [])
                if not self._grants[rid].claimed
            ]
            return self._pay(recipient, balance.claimable, reward_ids)

    def claim_grant(self, reward_id: str, recipient: str) -> ClaimResult:
        """Pay out a single grant to its recipient."""
        recipient = _address(recipient)
        with self._lock:
            self._ensure_running()
            self._ensure_claims_open()
            grant = self._grants.get(reward_id)
            if grant is None:
                raise NotFoundError(
                    f"Reward {reward_id} not found",
                    resource_type="reward",
                    resource_id=reward_id,
                )
            if grant.recipient != recipient:
                logger.warning(f"Claim of {reward_id} by non-recipient {recipient}")
                raise UnauthorizedError(
                    "Not reward recipient",
                    details={"reward_id": reward_id, "caller": recipient},
                )
            if grant.claimed:
                raise NothingToClaimError("Reward already claimed", details={"reward_id": reward_id})
            return self._pay(recipient, grant.amount, [reward_id])

    def _pay(self, recipient: str, amount: Decimal, reward_ids: List[str]) -> ClaimResult:
        if amount > self._funds:
            logger.warning(
                f"Claim of {amount} by {recipient} exceeds funds on hand {self._funds}",
                extra={"recipient": recipient, "error_code": InsufficientFundsError.code_default},
            )
            raise InsufficientFundsError(
                "Insufficient contract balance",
                details={"recipient": recipient, "claimable": str(amount), "balance_on_hand": str(self._funds)},
            )

        before = self._totals()
        payload = {
            "recipient": recipient,
            "amount": str(amount),
            "reward_ids": list(reward_ids),
            "paid_at": self._clock().isoformat(),
        }
        try:
            self._apply_claim(payload)
        except OverpayInvariantViolation as e:
            self._halt(e)
            raise
        self._commit(AuditAction.REWARD_CLAIMED, recipient, recipient, payload, before, {recipient})
        logger.info(f"Paid {amount} to {recipient} for {len(reward_ids)} grant(s)",
                    extra={"recipient": recipient})
        return ClaimResult(recipient=recipient, amount_paid=amount, reward_ids=tuple(reward_ids))

    def _apply_claim(self, payload: Mapping[str, Any]) -> None:
        recipient = payload["recipient"]
        amount = Decimal(payload["amount"])
        balance = self._balances.get(recipient)
        if balance is None or balance.claimable < amount:
            raise OverpayInvariantViolation(
                "Claim exceeds the recipient's claimable balance",
                details={"recipient": recipient, "amount": str(amount)},
            )
        self._budget.record_paid(amount)
        balance.claimable -= amount
        balance.claimed += amount
        self._funds -= amount
        paid_at = datetime.fromisoformat(payload["paid_at"])
        for reward_id in payload["reward_ids"]:
            self._grants[reward_id] = self._grants[reward_id].with_status(
                GrantStatus.PAID, claimed=True, paid_at=paid_at
            )

    # ------------------------------------------------------------------
    # Administrative controls
    # ------------------------------------------------------------------

    def pause(self, caller: str) -> bool:
        """Pause the campaign. Returns False when it already was."""
        return self._set_paused(True, caller)

    def unpause(self, caller: str) -> bool:
        """Resume the campaign. Returns False when it was not paused."""
        return self._set_paused(False, caller)

    def _set_paused(self, paused: bool, caller: str) -> bool:
        with self._lock:
            self._ensure_running()
            self._require_owner(caller)
            if self._paused == paused:
                logger.debug(f"Campaign already {'paused' if paused else 'running'}")
                return False
            before = self._totals()
            self._paused = paused
            action = AuditAction.CAMPAIGN_PAUSED if paused else AuditAction.CAMPAIGN_UNPAUSED
            self._commit(action, caller, None, {}, before)
        logger.info(f"Campaign {'paused' if paused else 'unpaused'} by {caller}")
        return True

    def fund(self, amount: Any, funder: Optional[str] = None) -> Decimal:
        """Deposit funds that claims are paid from. Returns the new balance on hand."""
        value = to_amount(amount)
        if value is None or value <= 0:
            raise ValidationError("Funding amount must be positive", details={"amount": str(amount)})
        with self._lock:
            self._ensure_running()
            before = self._totals()
            payload = {"amount": str(value), "funder": funder}
            self._apply_fund(payload)
            self._commit(AuditAction.FUNDS_DEPOSITED, funder, funder, payload, before)
            on_hand = self._funds
        logger.info(f"Deposited {value}; balance on hand {on_hand}")
        return on_hand

    def _apply_fund(self, payload: Mapping[str, Any]) -> None:
        self._funds += Decimal(payload["amount"])

    def emergency_withdraw(self, caller: str) -> Decimal:
        """
        Sweep every unit on hand to the owner.

        Allocated, paid and claimable figures are left as they are, so
        outstanding claims fail with InsufficientFundsError until the
        campaign is funded again. Allowed while halted.
        """
        with self._lock:
            self._require_owner(caller)
            if self._funds <= 0:
                raise InsufficientFundsError("No funds to withdraw", details={"balance_on_hand": str(self._funds)})
            before = self._totals()
            amount = self._funds
            payload = {"amount": str(amount), "to": self._owner}
            self._apply_withdrawal(payload)
            self._commit(AuditAction.EMERGENCY_WITHDRAWAL, caller, self._owner, payload, before)
            stranded = self._budget.total_allocated - self._budget.total_paid
        logger.warning(f"Emergency withdrawal of {amount} to {self._owner}; {stranded} still claimable")
        return amount

    def _apply_withdrawal(self, payload: Mapping[str, Any]) -> None:
        self._funds -= Decimal(payload["amount"])

    def add_allocator(self, address: str, caller: str) -> bool:
        return self._change_allocator(address, caller, add=True)

    def remove_allocator(self, address: str, caller: str) -> bool:
        return self._change_allocator(address, caller, add=False)

    def _change_allocator(self, address: str, caller: str, add: bool) -> bool:
        address = _address(address)
        with self._lock:
            self._ensure_running()
            self._require_owner(caller)
            if (address in self._allocators) == add:
                return False
            before = self._totals()
            payload = {"address": address}
            if add:
                self._allocators.add(address)
            else:
                self._allocators.discard(address)
            action = AuditAction.ALLOCATOR_ADDED if add else AuditAction.ALLOCATOR_REMOVED
            self._commit(action, caller, address, payload, before)
        logger.info(f"Allocator {address} {'added' if add else 'removed'}")
        return True

    def transfer_ownership(self, new_owner: str, caller: str) -> None:
        new_owner = _address(new_owner)
        with self._lock:
            self._ensure_running()
            self._require_owner(caller)
            before = self._totals()
            payload = {"previous": self._owner, "owner": new_owner}
            self._owner = new_owner
            self._commit(AuditAction.OWNERSHIP_TRANSFERRED, caller, new_owner, payload, before)
        logger.info(f"Ownership transferred to {new_owner}")

    # ------------------------------------------------------------------
    # Settlement state
    # ------------------------------------------------------------------

    def confirm_batch(self, batch_id: str, reference: Optional[str] = None,
                      caller: Optional[str] = None) -> int:
        """Mark a batch's unpaid grants CONFIRMED. Returns how many changed."""
        return self._settle(batch_id, GrantStatus.CONFIRMED, caller,
                            {"batch_id": batch_id, "reference": reference})

    def fail_batch(self, batch_id: str, reason: str, caller: Optional[str] = None) -> int:
        """
        Mark a batch's pending grants FAILED.

        The budget reservation and recipient balances stay as they are;
        reconciling a failed payout happens outside the ledger.
        """
        return self._settle(batch_id, GrantStatus.FAILED, caller,
                            {"batch_id": batch_id, "reason": reason})

    def _settle(self, batch_id: str, status: GrantStatus, caller: Optional[str],
                payload: Dict[str, Any]) -> int:
        with self._lock:
            self._ensure_running()
            if caller is not None:
                self._require_allocator(caller)
            if batch_id not in self._batches:
                raise NotFoundError(f"Batch {batch_id} not found", resource_type="batch", resource_id=batch_id)
            before = self._totals()
            changed = self._apply_settlement(status, payload)
            if changed:
                action = AuditAction.BATCH_CONFIRMED if status == GrantStatus.CONFIRMED else AuditAction.BATCH_FAILED
                self._commit(action, caller, batch_id, payload, before)
        if changed:
            get_batch_logger(logger, batch_id).info(f"{changed} grant(s) in {batch_id} now {status.value}")
        return changed

    def _apply_settlement(self, status: GrantStatus, payload: Mapping[str, Any]) -> int:
        if status == GrantStatus.CONFIRMED:
            movable = (GrantStatus.PENDING, GrantStatus.FAILED)
            changes: Dict[str, Any] = {"settlement_ref": payload.get("reference")}
        else:
            movable = (GrantStatus.PENDING,)
            changes = {}
        changed = 0
        for reward_id in self._batches[payload["batch_id"]]:
            grant = self._grants[reward_id]
            if grant.status in movable:
                self._grants[reward_id] = grant.with_status(status, **changes)
                changed += 1
        return changed

    # ------------------------------------------------------------------
    # Read views
    # ------------------------------------------------------------------

    def stats(self) -> LedgerStats:
        return self._snapshot

    def available_rewards(self, recipient: str) -> Decimal:
        balance = self._balance_view.get(_address(recipient))
        return balance.claimable if balance else ZERO

    def balance_of(self, recipient: str) -> RecipientBalance:
        balance = self._balance_view.get(_address(recipient))
        return balance.copy() if balance else RecipientBalance()

    def grants_for(self, recipient: str) -> List[RewardGrant]:
        recipient = _address(recipient)
        with self._lock:
            return [self._grants[rid] for rid in self._grants_by_recipient.get(recipient, [])]

    def get_grant(self, reward_id: str) -> Optional[RewardGrant]:
        with self._lock:
            return self._grants.get(reward_id)

    def batch_grants(self, batch_id: str) -> List[RewardGrant]:
        with self._lock:
            if batch_id not in self._batches:
                raise NotFoundError(f"Batch {batch_id} not found", resource_type="batch", resource_id=batch_id)
            return [self._grants[rid] for rid in self._batches[batch_id]]

    def pending_grants(self) -> List[RewardGrant]:
        with self._lock:
            return [g for g in self._grants.values() if g.status == GrantStatus.PENDING]

    def is_proof_used(self, proof: str) -> bool:
        with self._lock:
            return self._proofs.is_used(proof)

    def committed_count(self, category: Any, week: int) -> int:
        resolved = RewardCategory.coerce(category)
        with self._lock:
            return self._week_counts[(resolved, week)] if resolved else 0

    def is_allocator(self, address: str) -> bool:
        address = _address(address)
        return address == self._owner or address in self._allocators

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def replay(self, records: Iterable[AuditRecord]) -> int:
        """
        Re-apply audit records to this ledger without emitting new ones.

        Records must continue the ledger's own sequence. Returns the number
        applied.
        """
        applied = 0
        with self._lock:
            for record in records:
                if record.sequence != self._audit_sequence + 1:
                    raise ValidationError(
                        "Audit records out of sequence",
                        details={"expected": self._audit_sequence + 1, "got": record.sequence},
                    )
                self._apply_record(record)
                self._audit_sequence = record.sequence
                applied += 1
            self._balance_view = {r: b.copy() for r, b in self._balances.items()}
            self._snapshot = self._build_snapshot()
        return applied

    def _apply_record(self, record: AuditRecord) -> None:
        payload = record.payload
        action = record.action
        if action == AuditAction.BATCH_ALLOCATED:
            self._apply_batch(payload)
        elif action == AuditAction.REWARD_CLAIMED:
            self._apply_claim(payload)
        elif action == AuditAction.FUNDS_DEPOSITED:
            self._apply_fund(payload)
        elif action == AuditAction.EMERGENCY_WITHDRAWAL:
            self._apply_withdrawal(payload)
        elif action == AuditAction.CAMPAIGN_PAUSED:
            self._paused = True
        elif action == AuditAction.CAMPAIGN_UNPAUSED:
            self._paused = False
        elif action == AuditAction.BATCH_CONFIRMED:
            self._apply_settlement(GrantStatus.CONFIRMED, payload)
        elif action == AuditAction.BATCH_FAILED:
            self._apply_settlement(GrantStatus.FAILED, payload)
        elif action == AuditAction.ALLOCATOR_ADDED:
            self._allocators.add(payload["address"])
        elif action == AuditAction.ALLOCATOR_REMOVED:
            self._allocators.discard(payload["address"])
        elif action == AuditAction.OWNERSHIP_TRANSFERRED:
            self._owner = payload["owner"]

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _ensure_running(self) -> None:
        if self._halted_reason is not None:
            raise LedgerHaltedError("Ledger halted", details={"reason": self._halted_reason})

    def _ensure_claims_open(self) -> None:
        if self._paused and self.policy.claims_blocked_when_paused:
            raise CampaignPausedError("Campaign is paused")

    def _require_owner(self, caller: Optional[str]) -> None:
        if caller is None or _address(caller) != self._owner:
            logger.warning(f"Owner-only operation refused for {caller}")
            raise UnauthorizedError("Caller is not the owner", details={"caller": caller})

    def _require_allocator(self, caller: str) -> None:
        if not self.is_allocator(caller):
            raise UnauthorizedError("Caller may not allocate rewards", details={"caller": caller})

    def _halt(self, error: OverpayInvariantViolation) -> None:
        self._halted_reason = error.message
        logger.critical(
            f"Ledger halted: {error.message}",
            extra={"error_code": error.code, "details": error.details},
        )

    def _totals(self) -> Dict[str, str]:
        return {
            "balance_on_hand": str(self._funds),
            "total_allocated": str(self._budget.total_allocated),
            "total_paid": str(self._budget.total_paid),
        }

    def _commit(
        self,
        action: AuditAction,
        actor: Optional[str],
        reference: Optional[str],
        payload: Mapping[str, Any],
        before: Dict[str, str],
        touched: Iterable[str] = (),
    ) -> AuditRecord:
        record = AuditRecord(
            sequence=self._audit_sequence + 1,
            action=action,
            created_at=self._clock(),
            actor=actor,
            reference=reference,
            payload=dict(payload),
            before=before,
            after=self._totals(),
        )
        try:
            self.audit_sink.append(record)
        except Exception as e:
            # State already changed; without its record the log cannot rebuild it
            self._halted_reason = f"audit append failed: {e}"
            logger.critical(f"Audit append failed for {action.value}: {e}")
            raise
        self._audit_sequence = record.sequence

        view = dict(self._balance_view)
        for recipient in touched:
            view[recipient] = self._balances[recipient].copy()
        self._balance_view = view
        self._snapshot = self._build_snapshot()
        return record

    def _build_snapshot(self) -> LedgerStats:
        return LedgerStats(
            balance_on_hand=self._funds,
            max_budget=self._budget.max_budget,
            total_allocated=self._budget.total_allocated,
            total_paid=self._budget.total_paid,
            remaining_budget=self._budget.headroom(),
            paused=self._paused,
            grant_count=len(self._grants),
            batch_count=len(self._batches),
        )


def _grant_fields(item: Any) -> Optional[Dict[str, Any]]:
    if isinstance(item, GrantRequest):
        return {
            "recipient": item.recipient,
            "amount": item.amount,
            "category": item.category,
            "week": item.week,
            "proof": item.proof,
        }
    if isinstance(item, Mapping):
        return dict(item)
    return None
