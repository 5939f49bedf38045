"""
Matching Engine - automatic pass of statement reconciliation.

Assigns each parsed statement line one outcome:
1. auto_reconciled: a debit matched a ledger expense by check number,
   or (without check number) by amount and settlement date
2. pending_review: a debit nothing matched
3. not_identified: credits, which the automatic pass never matches
"""

from collections import defaultdict
from dataclasses import dataclass
from decimal import Decimal, ROUND_CEILING, ROUND_HALF_EVEN
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

import structlog

from ..config import Settings, get_settings
from ..models import (
    LedgerStatus,
    LedgerTransaction,
    LedgerTransactionType,
    MatchDecision,
    MatchRule,
    ParsedTransaction,
    StatementReconciliationStatus,
)
from ..utils.check_numbers import normalize_check_number

logger = structlog.get_logger()

EXCLUDED_CHECK_STATUSES = (LedgerStatus.REVERSED, LedgerStatus.CANCELLED)

_CENT = Decimal("0.01")


def to_cents(amount: Decimal) -> int:
    return int(Decimal(amount).quantize(_CENT, rounding=ROUND_HALF_EVEN) * 100)


@dataclass
class IndexedCandidate:
    """A ledger entry with its position in the snapshot."""
    position: int
    transaction: LedgerTransaction


class CandidateIndex:
    """
    Lookup tables over a candidate snapshot.

    Buckets keep snapshot order, so the first entry that satisfies a rule
    is the same one a linear scan of the snapshot would find.
    """

    def __init__(self, candidates: Iterable[LedgerTransaction]):
        self.by_check: Dict[Tuple[Optional[str], str], List[IndexedCandidate]] = defaultdict(list)
        self.by_amount: Dict[Tuple[Optional[str], int], List[IndexedCandidate]] = defaultdict(list)
        self.size = 0

        for position, txn in enumerate(candidates):
            if txn.is_reconciled or txn.type != LedgerTransactionType.EXPENSE:
                continue
            entry = IndexedCandidate(position=position, transaction=txn)
            check_key = normalize_check_number(txn.check_number)
            if check_key:
                self.by_check[(txn.cash_register_id, check_key)].append(entry)
            self.by_amount[(txn.cash_register_id, to_cents(txn.amount))].append(entry)
            self.size += 1

    def check_bucket(self, cash_register_id: str, check_key: str) -> List[IndexedCandidate]:
        return self.by_check.get((cash_register_id, check_key), [])

    def amount_buckets(
        self,
        cash_register_id: str,
        amount: Decimal,
        span: int,
    ) -> List[IndexedCandidate]:
        """Entries whose cent value lies within span cents of amount, in snapshot order."""
        cents = to_cents(amount)
        entries: List[IndexedCandidate] = []
        for key in range(cents - span, cents + span + 1):
            entries.extend(self.by_amount.get((cash_register_id, key), []))
        entries.sort(key=lambda e: e.position)
        return entries


class MatchingEngine:
    """
    Automatic pass over a statement.

    Rules are evaluated per debit; the first rule that applies decides:
    - Check-number rule when the line carries a check number
    - Amount+date rule otherwise
    Within a rule the first candidate in snapshot order wins. Ambiguity
    is reported on the decision but is not an error.
    """

    def __init__(self, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.tolerance = self.settings.amount_tolerance
        self.consume_matched = self.settings.consume_matched_candidates
        self._span = int((self.tolerance * 100).to_integral_value(rounding=ROUND_CEILING))

    def match(
        self,
        transactions: Sequence[ParsedTransaction],
        cash_register_id: str,
        candidates: Sequence[LedgerTransaction],
    ) -> List[MatchDecision]:
        """
        Decide the outcome of every statement line.

        Args:
            transactions: Parsed statement lines
            cash_register_id: Cash register the statement is imported into
            candidates: Snapshot of unreconciled expense entries

        Returns:
            One MatchDecision per transaction, in input order
        """
        index = CandidateIndex(candidates)
        consumed: Set[str] = set()
        decisions: List[MatchDecision] = []

        for txn in transactions:
            decision = self.decide(txn, cash_register_id, index, consumed)
            if decision.is_match and self.consume_matched:
                consumed.add(decision.matched_transaction_id)
            decisions.append(decision)

        stats = {
            "total": len(decisions),
            "candidates": index.size,
            "auto_reconciled": sum(1 for d in decisions if d.is_match),
            "pending_review": sum(
                1 for d in decisions if d.status == StatementReconciliationStatus.PENDING_REVIEW
            ),
            "not_identified": sum(
                1 for d in decisions if d.status == StatementReconciliationStatus.NOT_IDENTIFIED
            ),
            "ambiguous": sum(1 for d in decisions if d.is_ambiguous),
        }
        logger.info("Matching complete", cash_register_id=cash_register_id, **stats)

        return decisions

    def decide(
        self,
        txn: ParsedTransaction,
        cash_register_id: str,
        index: CandidateIndex,
        consumed: Optional[Set[str]] = None,
    ) -> MatchDecision:
        if not txn.is_debit:
            return MatchDecision(status=StatementReconciliationStatus.NOT_IDENTIFIED)

        consumed = consumed or set()
        if txn.check_number:
            rule = MatchRule.CHECK_NUMBER
            found = self._match_by_check(txn, cash_register_id, index, consumed)
        else:
            rule = MatchRule.AMOUNT_DATE
            found = self._match_by_amount_and_date(txn, cash_register_id, index, consumed)

        if not found:
            return MatchDecision(status=StatementReconciliationStatus.PENDING_REVIEW)

        winner = found[0]
        if len(found) > 1:
            logger.warning(
                "Ambiguous match, first candidate taken",
                fitid=txn.fitid,
                rule=rule.value,
                matched_id=winner.id,
                candidates=[c.id for c in found],
            )

        return MatchDecision(
            status=StatementReconciliationStatus.AUTO_RECONCILED,
            matched_transaction_id=winner.id,
            rule=rule,
            candidate_count=len(found),
        )

    def _match_by_check(
        self,
        txn: ParsedTransaction,
        cash_register_id: str,
        index: CandidateIndex,
        consumed: Set[str],
    ) -> List[LedgerTransaction]:
        """Same normalized check, same register, amount within tolerance, not reversed/cancelled."""
        check_key = normalize_check_number(txn.check_number)
        if not check_key:
            return []

        return [
            entry.transaction
            for entry in index.check_bucket(cash_register_id, check_key)
            if entry.transaction.id not in consumed
            and self.settings.within_tolerance(entry.transaction.amount, txn.amount)
            and entry.transaction.status not in EXCLUDED_CHECK_STATUSES
        ]

    def _match_by_amount_and_date(
        self,
        txn: ParsedTransaction,
        cash_register_id: str,
        index: CandidateIndex,
        consumed: Set[str],
    ) -> List[LedgerTransaction]:
        """Same amount within tolerance, same register, settled that day, paid, without check."""
        return [
            entry.transaction
            for entry in index.amount_buckets(cash_register_id, txn.amount, self._span)
            if entry.transaction.id not in consumed
            and self.settings.within_tolerance(entry.transaction.amount, txn.amount)
            and entry.transaction.settlement_date == txn.transaction_date
            and entry.transaction.status == LedgerStatus.PAID
            and not entry.transaction.check_number
        ]
