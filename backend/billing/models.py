"""Billing models for payment transactions, project credits, subscriptions and webhook logging."""
import uuid

from django.conf import settings
from django.core.exceptions import ValidationError
from django.core.validators import MinValueValidator
from django.db import models
from django.db.models import F, Q


def _default_currency() -> str:
    """Resolve default billing currency from settings."""
    return getattr(settings, "BILLING_CURRENCY", "INR").upper()


class SubscriptionPlan(models.Model):
    """Purchasable subscription plan; prices are stored in minor currency units."""

    class Interval(models.TextChoices):
        MONTH = "month", "Monthly"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    price = models.PositiveIntegerField(help_text="Price per interval in minor currency units (e.g. paise).")
    currency = models.CharField(max_length=3, default=_default_currency)
    interval_type = models.CharField(max_length=20, choices=Interval.choices, default=Interval.MONTH)
    is_active = models.BooleanField(default=True)
    features = models.JSONField(default=list, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "billing_subscription_plan"
        verbose_name = "Subscription plan"
        verbose_name_plural = "Subscription plans"
        ordering = ["price"]

    def __str__(self):
        return f"{self.name} ({self.price} {self.currency}/{self.interval_type})"


class PaymentTransaction(models.Model):
    """A checkout attempt and its lifecycle, keyed by the Razorpay order id."""

    class PaymentType(models.TextChoices):
        PROJECT_CREDIT = "project_credit", "Project credit"
        SUBSCRIPTION = "subscription", "Subscription"

    class Status(models.TextChoices):
        CREATED = "created", "Created"
        COMPLETED = "completed", "Completed"
        FAILED = "failed", "Failed"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        on_delete=models.PROTECT,
        related_name="payment_transactions",
        help_text="User who initiated the checkout.",
    )
    payment_type = models.CharField(max_length=32, choices=PaymentType.choices)
    amount = models.PositiveIntegerField(
        validators=[MinValueValidator(1)],
        help_text="Charged amount in minor currency units.",
    )
    currency = models.CharField(max_length=3, default=_default_currency)
    razorpay_order_id = models.CharField(
        max_length=64,
        blank=True,
        null=True,
        help_text="Order identifier issued by Razorpay; immutable once set.",
    )
    razorpay_payment_id = models.CharField(
        max_length=64,
        blank=True,
        null=True,
        help_text="Payment identifier confirmed by Razorpay.",
    )
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.CREATED)
    failure_reason = models.TextField(blank=True)
    metadata = models.JSONField(default=dict, blank=True)
    effect_applied_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="Set in the same database transaction that granted the credit or subscription.",
    )
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "payment_transactions"
        verbose_name = "Payment transaction"
        verbose_name_plural = "Payment transactions"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(
                fields=["razorpay_order_id"],
                condition=Q(razorpay_order_id__isnull=False),
                name="unique_payment_transaction_order_id",
            ),
            models.UniqueConstraint(
                fields=["razorpay_payment_id"],
                condition=Q(razorpay_payment_id__isnull=False),
                name="unique_payment_transaction_payment_id",
            ),
            models.CheckConstraint(condition=Q(amount__gt=0), name="payment_transaction_amount_positive"),
        ]
        indexes = [
            models.Index(fields=["user", "status"], name="payment_txn_user_status_idx"),
            models.Index(fields=["status", "effect_applied_at"], name="payment_txn_effect_idx"),
        ]

    def delete(self, *args, **kwargs):
        raise ValidationError("Payment transactions are never deleted.")

    @property
    def is_completed(self) -> bool:
        return self.status == self.Status.COMPLETED

    def __str__(self):
        return f"PaymentTransaction<{self.payment_type}:{self.razorpay_order_id or self.id}:{self.status}>"


class ProjectCredit(models.Model):
    """Per-user project credit balance. Mutated only through atomic conditional updates."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="project_credit",
    )
    available_credits = models.PositiveIntegerField(default=0)
    total_purchased_credits = models.PositiveIntegerField(default=0)
    used_credits = models.PositiveIntegerField(default=0)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "project_credits"
        verbose_name = "Project credit balance"
        verbose_name_plural = "Project credit balances"
        constraints = [
            models.CheckConstraint(
                condition=Q(available_credits__gte=0),
                name="project_credit_available_non_negative",
            ),
            models.CheckConstraint(
                condition=Q(available_credits=F("total_purchased_credits") - F("used_credits")),
                name="project_credit_balance_conserved",
            ),
        ]

    def __str__(self):
        return f"ProjectCredit<{self.user_id}:{self.available_credits}>"


class UserSubscription(models.Model):
    """The single subscription row of a user; refreshed in place on every subscription payment."""

    class Status(models.TextChoices):
        ACTIVE = "active", "Active"
        EXPIRED = "expired", "Expired"
        CANCELLED = "cancelled", "Cancelled"

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    user = models.OneToOneField(
        settings.AUTH_USER_MODEL,
        on_delete=models.CASCADE,
        related_name="subscription",
    )
    plan = models.ForeignKey(
        SubscriptionPlan,
        on_delete=models.PROTECT,
        related_name="subscriptions",
    )
    status = models.CharField(max_length=16, choices=Status.choices, default=Status.ACTIVE)
    current_period_start = models.DateTimeField()
    current_period_end = models.DateTimeField()
    razorpay_subscription_id = models.CharField(max_length=64, blank=True, null=True)
    last_payment_transaction = models.ForeignKey(
        PaymentTransaction,
        on_delete=models.SET_NULL,
        null=True,
        blank=True,
        related_name="+",
        help_text="Payment that started the current period.",
    )
    cancelled_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "user_subscriptions"
        verbose_name = "User subscription"
        verbose_name_plural = "User subscriptions"
        ordering = ["-current_period_end"]
        constraints = [
            models.CheckConstraint(
                condition=Q(current_period_end__gt=F("current_period_start")),
                name="user_subscription_period_ordered",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "current_period_end"], name="user_sub_status_end_idx"),
        ]

    def __str__(self):
        return f"UserSubscription<{self.user_id}:{self.status}>"


class WebhookEventLog(models.Model):
    """Receipt log keyed by Razorpay event id, used to drop duplicate deliveries."""

    class Status(models.TextChoices):
        RECEIVED = "received", "Received"
        PROCESSING = "processing", "Processing"
        PROCESSED = "processed", "Processed"
        IGNORED = "ignored", "Ignored"
        FAILED = "failed", "Failed"

    id = models.BigAutoField(primary_key=True)
    event_id = models.CharField(max_length=255, unique=True)
    payload_hash = models.CharField(
        max_length=64,
        blank=True,
        help_text="SHA-256 of the delivered body.",
    )
    event_type = models.CharField(max_length=255, blank=True)
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.RECEIVED,
    )
    last_error = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    handled = models.BooleanField(
        default=False,
        help_text="Set once processing finished; handled events are never processed again.",
    )
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        db_table = "billing_webhook_event_log"
        verbose_name = "Webhook event log"
        verbose_name_plural = "Webhook event logs"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["status"], name="webhook_event_status_idx"),
            models.Index(fields=["event_type"], name="webhook_event_type_idx"),
        ]

    def __str__(self):
        return f"WebhookEventLog<{self.event_id}:{self.status}>"


class BillingEventDeadLetter(models.Model):
    """Work that could not be completed inline and needs reconciliation."""

    class Kind(models.TextChoices):
        EFFECT_APPLICATION = "effect_application", "Effect application"
        WEBHOOK_EVENT = "webhook_event", "Webhook event"

    id = models.BigAutoField(primary_key=True)
    kind = models.CharField(max_length=32, choices=Kind.choices)
    reference = models.CharField(
        max_length=255,
        help_text="Payment transaction id or webhook event id, depending on kind.",
    )
    event_type = models.CharField(max_length=255, blank=True)
    payload = models.JSONField(default=dict, blank=True, help_text="Data needed to replay the work.")
    failure_reason = models.TextField(help_text="Last error seen while applying the work.")
    retry_count = models.PositiveIntegerField(default=0)
    last_attempt_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the work was last attempted.",
    )
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "billing_event_dead_letter"
        verbose_name = "Billing dead-letter event"
        verbose_name_plural = "Billing dead-letter events"
        ordering = ["-created_at"]
        constraints = [
            models.UniqueConstraint(fields=["kind", "reference"], name="unique_dead_letter_kind_reference"),
        ]

    def __str__(self):
        return f"BillingEventDeadLetter<{self.kind}:{self.reference}>"
