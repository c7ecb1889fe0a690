import uuid

import django.core.validators
import django.db.models.deletion
from django.conf import settings
from django.db import migrations, models

import billing.models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        migrations.swappable_dependency(settings.AUTH_USER_MODEL),
    ]

    operations = [
        migrations.CreateModel(
            name="SubscriptionPlan",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("name", models.CharField(max_length=100, unique=True)),
                ("description", models.TextField(blank=True)),
                (
                    "price",
                    models.PositiveIntegerField(help_text="Price per interval in minor currency units (e.g. paise)."),
                ),
                ("currency", models.CharField(default=billing.models._default_currency, max_length=3)),
                (
                    "interval_type",
                    models.CharField(choices=[("month", "Monthly")], default="month", max_length=20),
                ),
                ("is_active", models.BooleanField(default=True)),
                ("features", models.JSONField(blank=True, default=list)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
            ],
            options={
                "verbose_name": "Subscription plan",
                "verbose_name_plural": "Subscription plans",
                "db_table": "billing_subscription_plan",
                "ordering": ["price"],
            },
        ),
        migrations.CreateModel(
            name="PaymentTransaction",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "payment_type",
                    models.CharField(
                        choices=[("project_credit", "Project credit"), ("subscription", "Subscription")],
                        max_length=32,
                    ),
                ),
                (
                    "amount",
                    models.PositiveIntegerField(
                        help_text="Charged amount in minor currency units.",
                        validators=[django.core.validators.MinValueValidator(1)],
                    ),
                ),
                ("currency", models.CharField(default=billing.models._default_currency, max_length=3)),
                (
                    "razorpay_order_id",
                    models.CharField(
                        blank=True,
                        help_text="Order identifier issued by Razorpay; immutable once set.",
                        max_length=64,
                        null=True,
                    ),
                ),
                (
                    "razorpay_payment_id",
                    models.CharField(
                        blank=True,
                        help_text="Payment identifier confirmed by Razorpay.",
                        max_length=64,
                        null=True,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[("created", "Created"), ("completed", "Completed"), ("failed", "Failed")],
                        default="created",
                        max_length=16,
                    ),
                ),
                ("failure_reason", models.TextField(blank=True)),
                ("metadata", models.JSONField(blank=True, default=dict)),
                (
                    "effect_applied_at",
                    models.DateTimeField(
                        blank=True,
                        help_text="Set in the same database transaction that granted the credit or subscription.",
                        null=True,
                    ),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.ForeignKey(
                        help_text="User who initiated the checkout.",
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="payment_transactions",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Payment transaction",
                "verbose_name_plural": "Payment transactions",
                "db_table": "payment_transactions",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["user", "status"], name="payment_txn_user_status_idx"),
                    models.Index(fields=["status", "effect_applied_at"], name="payment_txn_effect_idx"),
                ],
                "constraints": [
                    models.UniqueConstraint(
                        condition=models.Q(("razorpay_order_id__isnull", False)),
                        fields=("razorpay_order_id",),
                        name="unique_payment_transaction_order_id",
                    ),
                    models.UniqueConstraint(
                        condition=models.Q(("razorpay_payment_id__isnull", False)),
                        fields=("razorpay_payment_id",),
                        name="unique_payment_transaction_payment_id",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(("amount__gt", 0)),
                        name="payment_transaction_amount_positive",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="ProjectCredit",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("available_credits", models.PositiveIntegerField(default=0)),
                ("total_purchased_credits", models.PositiveIntegerField(default=0)),
                ("used_credits", models.PositiveIntegerField(default=0)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="project_credit",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "Project credit balance",
                "verbose_name_plural": "Project credit balances",
                "db_table": "project_credits",
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("available_credits__gte", 0)),
                        name="project_credit_available_non_negative",
                    ),
                    models.CheckConstraint(
                        condition=models.Q(
                            ("available_credits", models.F("total_purchased_credits") - models.F("used_credits"))
                        ),
                        name="project_credit_balance_conserved",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="UserSubscription",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "status",
                    models.CharField(
                        choices=[("active", "Active"), ("expired", "Expired"), ("cancelled", "Cancelled")],
                        default="active",
                        max_length=16,
                    ),
                ),
                ("current_period_start", models.DateTimeField()),
                ("current_period_end", models.DateTimeField()),
                ("razorpay_subscription_id", models.CharField(blank=True, max_length=64, null=True)),
                ("cancelled_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "last_payment_transaction",
                    models.ForeignKey(
                        blank=True,
                        help_text="Payment that started the current period.",
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="+",
                        to="billing.paymenttransaction",
                    ),
                ),
                (
                    "plan",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="subscriptions",
                        to="billing.subscriptionplan",
                    ),
                ),
                (
                    "user",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.CASCADE,
                        related_name="subscription",
                        to=settings.AUTH_USER_MODEL,
                    ),
                ),
            ],
            options={
                "verbose_name": "User subscription",
                "verbose_name_plural": "User subscriptions",
                "db_table": "user_subscriptions",
                "ordering": ["-current_period_end"],
                "indexes": [
                    models.Index(fields=["status", "current_period_end"], name="user_sub_status_end_idx"),
                ],
                "constraints": [
                    models.CheckConstraint(
                        condition=models.Q(("current_period_end__gt", models.F("current_period_start"))),
                        name="user_subscription_period_ordered",
                    ),
                ],
            },
        ),
        migrations.CreateModel(
            name="WebhookEventLog",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                ("event_id", models.CharField(max_length=255, unique=True)),
                (
                    "payload_hash",
                    models.CharField(
                        blank=True,
                        help_text="SHA-256 of the delivered body.",
                        max_length=64,
                    ),
                ),
                ("event_type", models.CharField(blank=True, max_length=255)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("received", "Received"),
                            ("processing", "Processing"),
                            ("processed", "Processed"),
                            ("ignored", "Ignored"),
                            ("failed", "Failed"),
                        ],
                        default="received",
                        max_length=20,
                    ),
                ),
                ("last_error", models.TextField(blank=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                (
                    "handled",
                    models.BooleanField(default=False, help_text="Set once processing finished; handled events are never processed again."),
                ),
                ("processed_at", models.DateTimeField(blank=True, null=True)),
            ],
            options={
                "verbose_name": "Webhook event log",
                "verbose_name_plural": "Webhook event logs",
                "db_table": "billing_webhook_event_log",
                "ordering": ["-created_at"],
                "indexes": [
                    models.Index(fields=["status"], name="webhook_event_status_idx"),
                    models.Index(fields=["event_type"], name="webhook_event_type_idx"),
                ],
            },
        ),
        migrations.CreateModel(
            name="BillingEventDeadLetter",
            fields=[
                ("id", models.BigAutoField(primary_key=True, serialize=False)),
                (
                    "kind",
                    models.CharField(
                        choices=[("effect_application", "Effect application"), ("webhook_event", "Webhook event")],
                        max_length=32,
                    ),
                ),
                (
                    "reference",
                    models.CharField(
                        help_text="Payment transaction id or webhook event id, depending on kind.",
                        max_length=255,
                    ),
                ),
                ("event_type", models.CharField(blank=True, max_length=255)),
                (
                    "payload",
                    models.JSONField(blank=True, default=dict, help_text="Data needed to replay the work."),
                ),
                ("failure_reason", models.TextField(help_text="Last error seen while applying the work.")),
                ("retry_count", models.PositiveIntegerField(default=0)),
                (
                    "last_attempt_at",
                    models.DateTimeField(blank=True, help_text="When the work was last attempted.", null=True),
                ),
                ("created_at", models.DateTimeField(auto_now_add=True)),
            ],
            options={
                "verbose_name": "Billing dead-letter event",
                "verbose_name_plural": "Billing dead-letter events",
                "db_table": "billing_event_dead_letter",
                "ordering": ["-created_at"],
                "constraints": [
                    models.UniqueConstraint(fields=("kind", "reference"), name="unique_dead_letter_kind_reference"),
                ],
            },
        ),
    ]
