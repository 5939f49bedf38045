"""
Candidate ranking for manual review of statement lines.
"""

from decimal import Decimal
from typing import List, Optional

import structlog
from rapidfuzz import fuzz

from ..config import Settings, get_settings
from ..errors import NotFoundError
from ..models import (
    CandidateSuggestion,
    LedgerStatus,
    LedgerTransaction,
    StatementTransaction,
)
from ..repositories.base import Repositories
from ..utils.check_numbers import check_numbers_match

logger = structlog.get_logger()

HIDDEN_STATUSES = (LedgerStatus.PAID, LedgerStatus.REVERSED, LedgerStatus.CANCELLED)


class CandidateSuggester:
    """
    Ranks open ledger entries for a statement line.

    Order: value and check match, value match, check match, closest
    amount, then description similarity.
    """

    def __init__(self, repositories: Repositories, settings: Optional[Settings] = None):
        self.settings = settings or get_settings()
        self.repositories = repositories

    async def suggest(
        self,
        clinic_id: str,
        statement_transaction_id: str,
        query: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> List[CandidateSuggestion]:
        line = await self.repositories.statement_transactions.get(clinic_id, statement_transaction_id)
        if line is None:
            raise NotFoundError("statement_transaction", statement_transaction_id)

        entries = [
            e for e in await self.repositories.ledger.list_unreconciled(clinic_id)
            if e.status not in HIDDEN_STATUSES
        ]
        if query:
            entries = [e for e in entries if self._matches_query(e, query)]

        suggestions = [self._score(line, e) for e in entries]
        suggestions.sort(key=lambda s: (
            not s.perfect_match,
            not s.value_match,
            not s.check_match,
            Decimal(s.amount_difference),
            -s.text_similarity,
        ))

        limit = limit or self.settings.suggestion_limit
        logger.debug(
            "Suggested candidates",
            statement_transaction_id=statement_transaction_id,
            found=len(suggestions),
        )
        return suggestions[:limit]

    def _matches_query(self, entry: LedgerTransaction, query: str) -> bool:
        """Fuzzy description match or check number substring."""
        needle = query.strip().lower()
        if not needle:
            return True
        if entry.check_number and needle in entry.check_number.lower():
            return True
        if not entry.description:
            return False
        score = fuzz.partial_ratio(needle, entry.description.lower()) / 100.0
        return score >= self.settings.search_similarity_threshold

    def _score(self, line: StatementTransaction, entry: LedgerTransaction) -> CandidateSuggestion:
        difference = abs(abs(entry.amount) - abs(line.amount))
        similarity = 0.0
        if line.description and entry.description:
            similarity = fuzz.token_set_ratio(
                line.description.lower(),
                entry.description.lower(),
            ) / 100.0

        return CandidateSuggestion(
            transaction_id=entry.id,
            description=entry.description,
            amount=str(entry.amount),
            check_number=entry.check_number,
            value_match=self.settings.within_tolerance(abs(entry.amount), abs(line.amount)),
            check_match=check_numbers_match(line.check_number, entry.check_number),
            amount_difference=str(difference),
            text_similarity=similarity,
        )
