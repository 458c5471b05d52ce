"""
Recurring Materializer

Turns due recurring rules into concrete transactions, at most once per
rule per calendar month.

DESIGN DECISION: Claim first, write second.

For each due rule the materializer:
1. Claims the month with mark_rule_processed (an atomic conditional
   update on backends that support one). Losing the claim means another
   run already posted this month; the rule is skipped.
2. Makes sure the owning family exists.
3. Inserts the transaction, marked is_recurring with the rule's id.
4. On failure in 2 or 3, releases the claim so a later run can retry.

A failing rule never aborts the batch. Only failing to list the active
rules fails the whole run.
"""

from datetime import date
from typing import Optional

import structlog

from family_ledger.audit import AuditLogger, create_correlation_id
from family_ledger.config import AppSettings, get_settings
from family_ledger.models.categories import TransactionKind
from family_ledger.models.ledger import (
    PaymentMethod,
    ProcessResult,
    RecurringRule,
    Transaction,
)
from family_ledger.recurring.schedule import ShortMonthPolicy, is_due
from family_ledger.services.storage import (
    FamilyStorageInterface,
    RecurringRuleStorageInterface,
    TransactionStorageInterface,
)
from family_ledger.utils.dates import today_in


logger = structlog.get_logger(__name__)


class RecurringProcessingError(Exception):
    """The recurring run could not start (active rules unavailable)."""
    pass


class RecurringMaterializer:
    """
    Posts this month's instance of every due recurring rule.

    Idempotent: calling process_due any number of times in a month posts
    each rule at most once.
    """

    def __init__(
        self,
        rule_storage: RecurringRuleStorageInterface,
        transaction_storage: TransactionStorageInterface,
        family_storage: FamilyStorageInterface,
        audit_logger: Optional[AuditLogger] = None,
        settings: Optional[AppSettings] = None,
    ):
        self._rules = rule_storage
        self._transactions = transaction_storage
        self._families = family_storage
        self._audit = audit_logger or AuditLogger()
        self._settings = settings or get_settings().app

    @property
    def policy(self) -> ShortMonthPolicy:
        return ShortMonthPolicy(self._settings.short_month_policy)

    def build_transaction(self, rule: RecurringRule, today: date) -> Transaction:
        """The transaction a rule posts on the given day."""
        memo = f"{self._settings.recurring_memo_prefix} {rule.memo or ''}".strip()
        payment_method = rule.payment_method
        if payment_method is None and rule.kind == TransactionKind.SPENDING:
            payment_method = PaymentMethod(self._settings.default_payment_method)

        return Transaction(
            kind=rule.kind,
            amount=rule.amount,
            category=rule.category,
            memo=memo[:self._settings.max_memo_length],
            user_name=rule.user_name,
            family_code=rule.family_code,
            payment_method=payment_method,
            entry_date=today,
            is_recurring=True,
            recurring_id=rule.id,
        )

    async def _materialize(
        self,
        rule: RecurringRule,
        today: date,
        correlation_id,
    ) -> Optional[Transaction]:
        """
        Claim, then post one rule.

        Returns:
            The posted transaction, or None if the month was already claimed

        Raises:
            Exception: Whatever the family or transaction write raised,
                       after the claim has been released
        """
        claimed = await self._rules.mark_rule_processed(rule.id, today)
        if not claimed:
            logger.info("recurring_claim_lost", rule_id=str(rule.id), run_date=today.isoformat())
            return None

        try:
            transaction = self.build_transaction(rule, today)
            await self._families.find_or_create_family(rule.family_code, rule.user_name)
            await self._transactions.save_transaction(transaction)
        except Exception:
            released = await self._rules.release_rule_claim(
                rule.id, today, rule.last_processed
            )
            logger.warning(
                "recurring_claim_released",
                rule_id=str(rule.id),
                released=released,
            )
            raise

        await self._audit.log_transaction_saved(transaction, correlation_id)
        await self._audit.log_rule_materialized(rule, transaction, correlation_id)
        return transaction

    async def process_due(self, today: Optional[date] = None) -> ProcessResult:
        """
        Post every due rule for today.

        Args:
            today: Run date (defaults to today in the configured timezone)

        Returns:
            ProcessResult with processed / skipped / failed counts

        Raises:
            RecurringProcessingError: If the active rules cannot be listed
        """
        today = today or today_in(self._settings.timezone)
        correlation_id = create_correlation_id()
        log = logger.bind(run_date=today.isoformat(), correlation_id=str(correlation_id))

        try:
            rules = await self._rules.list_active_rules()
        except Exception as e:
            log.error("recurring_run_failed", error=str(e))
            await self._audit.log_run_failed(str(e), correlation_id)
            raise RecurringProcessingError(f"Failed to list active recurring rules: {e}") from e

        await self._audit.log_run_started(today.isoformat(), len(rules), correlation_id)
        result = ProcessResult(run_date=today)

        for rule in rules:
            if not is_due(rule, today, self.policy):
                result.skipped += 1
                continue

            try:
                transaction = await self._materialize(rule, today, correlation_id)
            except Exception as e:
                result.failed += 1
                result.failed_rule_ids.append(rule.id)
                log.error(
                    "recurring_rule_failed",
                    rule_id=str(rule.id),
                    family_code=rule.family_code,
                    error=str(e),
                )
                await self._audit.log_rule_failed(rule, str(e), correlation_id)
                continue

            if transaction is None:
                result.skipped += 1
                continue

            result.processed += 1
            result.processed_rule_ids.append(rule.id)
            log.info(
                "recurring_rule_materialized",
                rule_id=str(rule.id),
                transaction_id=str(transaction.id),
                amount=transaction.amount,
            )

        await self._audit.log_run_completed(
            today.isoformat(),
            result.processed,
            result.skipped,
            result.failed,
            correlation_id,
        )
        log.info(
            "recurring_run_completed",
            processed=result.processed,
            skipped=result.skipped,
            failed=result.failed,
        )
        return result
