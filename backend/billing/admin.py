from django.contrib import admin
from django.urls import reverse
from django.utils.html import format_html

from .models import (
    BillingEventDeadLetter,
    PaymentTransaction,
    ProjectCredit,
    SubscriptionPlan,
    UserSubscription,
    WebhookEventLog,
)


@admin.register(SubscriptionPlan)
class SubscriptionPlanAdmin(admin.ModelAdmin):
    list_display = ("name", "price", "currency", "interval_type", "is_active", "updated_at")
    list_filter = ("is_active", "interval_type")
    search_fields = ("name",)
    readonly_fields = ("created_at", "updated_at")


@admin.register(PaymentTransaction)
class PaymentTransactionAdmin(admin.ModelAdmin):
    """Read-only audit trail for checkout attempts."""

    list_display = (
        "id",
        "user_link",
        "payment_type",
        "amount",
        "currency",
        "status",
        "razorpay_order_id",
        "effect_applied_at",
        "created_at",
    )
    search_fields = (
        "id",
        "razorpay_order_id",
        "razorpay_payment_id",
        "user__email",
    )
    list_filter = ("status", "payment_type", "created_at")
    readonly_fields = (
        "id",
        "user",
        "payment_type",
        "amount",
        "currency",
        "razorpay_order_id",
        "razorpay_payment_id",
        "status",
        "failure_reason",
        "metadata",
        "effect_applied_at",
        "created_at",
        "updated_at",
    )
    ordering = ("-created_at",)
    list_select_related = ("user",)

    @admin.display(description="User")
    def user_link(self, obj):
        url = reverse("admin:accounts_user_change", args=[obj.user_id])
        return format_html('<a href="{}">{}</a>', url, obj.user.email or obj.user_id)

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(ProjectCredit)
class ProjectCreditAdmin(admin.ModelAdmin):
    list_display = ("user", "available_credits", "total_purchased_credits", "used_credits", "updated_at")
    search_fields = ("user__email", "user__username")
    readonly_fields = ("available_credits", "total_purchased_credits", "used_credits", "created_at", "updated_at")
    raw_id_fields = ("user",)

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(UserSubscription)
class UserSubscriptionAdmin(admin.ModelAdmin):
    list_display = ("user", "plan", "status", "current_period_start", "current_period_end", "cancelled_at")
    list_filter = ("status", "plan")
    search_fields = ("user__email", "razorpay_subscription_id")
    readonly_fields = ("last_payment_transaction", "created_at", "updated_at")
    raw_id_fields = ("user",)


@admin.register(WebhookEventLog)
class WebhookEventLogAdmin(admin.ModelAdmin):
    list_display = ("event_id", "event_type", "status", "handled", "created_at", "processed_at")
    search_fields = ("event_id", "event_type")
    list_filter = ("status", "handled", "event_type")
    readonly_fields = (
        "event_id",
        "event_type",
        "payload_hash",
        "status",
        "last_error",
        "handled",
        "created_at",
        "processed_at",
    )
    ordering = ("-created_at",)


@admin.register(BillingEventDeadLetter)
class BillingEventDeadLetterAdmin(admin.ModelAdmin):
    list_display = ("kind", "reference", "event_type", "retry_count", "last_attempt_at", "created_at")
    search_fields = ("reference", "event_type")
    list_filter = ("kind", "event_type")
    readonly_fields = ("payload", "failure_reason", "retry_count", "last_attempt_at", "created_at")
    ordering = ("-created_at",)
