"""Management command to replay billing dead letters (unapplied effects and Razorpay events)."""
from __future__ import annotations

from typing import Iterable, Optional

from django.core.management.base import BaseCommand, CommandError
from django.utils import timezone

from billing.exceptions import EffectApplicationFailure
from billing.models import BillingEventDeadLetter, PaymentTransaction
from billing.services.credit_grants import apply_effect
from billing.services.verification import record_effect_failure
from billing.tasks import process_razorpay_event_async
from billing.tasks_webhooks import HandlerResult

_WEBHOOK_SUCCESS_STATUSES = {
    HandlerResult.PROCESSED,
    HandlerResult.IGNORED,
    HandlerResult.ALREADY_PROCESSED,
    "skipped",
}


class Command(BaseCommand):
    help = "Replay stored billing dead letters through the normal processing pipeline."

    def add_arguments(self, parser) -> None:
        parser.add_argument(
            "--kind",
            choices=BillingEventDeadLetter.Kind.values,
            default=None,
            help="Replay only dead letters of this kind.",
        )
        parser.add_argument(
            "--reference",
            dest="references",
            action="append",
            help="Replay only the given transaction id or event id. Can be supplied multiple times.",
        )
        parser.add_argument(
            "--limit",
            type=int,
            default=None,
            help="Maximum number of dead letters to replay in this run.",
        )
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Preview dead letters that would be replayed without performing any changes.",
        )

    def handle(self, *args, **options) -> None:
        kind: Optional[str] = options.get("kind")
        references: Optional[Iterable[str]] = options.get("references")
        limit: Optional[int] = options.get("limit")
        dry_run: bool = options.get("dry_run")

        queryset = BillingEventDeadLetter.objects.order_by("created_at")
        if kind:
            queryset = queryset.filter(kind=kind)
        if references:
            queryset = queryset.filter(reference__in=list(references))

        dead_letters = list(queryset[:limit] if limit is not None else queryset)
        total = len(dead_letters)
        if total == 0:
            self.stdout.write(self.style.WARNING("No dead letters matched the requested filters."))
            return

        processed = 0
        failed = 0

        for dead_letter in dead_letters:
            self.stdout.write(f"Replaying {dead_letter.kind} {dead_letter.reference}")
            if dry_run:
                continue

            if dead_letter.kind == BillingEventDeadLetter.Kind.EFFECT_APPLICATION:
                succeeded = self._replay_effect(dead_letter)
            else:
                succeeded = self._replay_webhook_event(dead_letter)

            if succeeded:
                processed += 1
            else:
                failed += 1

        if dry_run:
            self.stdout.write(
                self.style.WARNING(f"Dry run complete. {total} dead letters would be replayed.")
            )
            return

        summary = f"Replay complete: {processed} succeeded, {failed} failed, {total} total."
        if failed:
            raise CommandError(summary)
        self.stdout.write(self.style.SUCCESS(summary))

    def _replay_effect(self, dead_letter: BillingEventDeadLetter) -> bool:
        payment = PaymentTransaction.objects.filter(pk=dead_letter.reference).first()
        if payment is None:
            self._mark_attempt(dead_letter, "Payment transaction no longer exists.")
            return False

        try:
            apply_effect(payment)
        except EffectApplicationFailure as exc:
            record_effect_failure(payment, str(exc.__cause__ or exc))
            return False

        dead_letter.delete()
        return True

    def _replay_webhook_event(self, dead_letter: BillingEventDeadLetter) -> bool:
        payload = dict(dead_letter.payload or {})
        payload.setdefault("id", dead_letter.reference)
        payload.setdefault("event", dead_letter.event_type)

        # A direct run re-raises the task's retry exception instead of scheduling it.
        try:
            result = process_razorpay_event_async.run(payload)
        except Exception as exc:
            self.stderr.write(f"Replay of event {dead_letter.reference} failed: {exc}")
            self._mark_attempt(dead_letter, str(exc))
            return False

        if result.get("status") in _WEBHOOK_SUCCESS_STATUSES:
            dead_letter.delete()
            return True
        return False

    @staticmethod
    def _mark_attempt(dead_letter: BillingEventDeadLetter, reason: str) -> None:
        dead_letter.retry_count += 1
        dead_letter.last_attempt_at = timezone.now()
        dead_letter.failure_reason = reason
        dead_letter.save(update_fields=["retry_count", "last_attempt_at", "failure_reason"])
