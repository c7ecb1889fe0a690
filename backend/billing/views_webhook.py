"""Razorpay webhook endpoint."""
from __future__ import annotations

import json
import logging
from typing import Any, Dict, Optional

from django.conf import settings
from django.http import HttpResponse
from django.utils.decorators import method_decorator
from django.views.decorators.csrf import csrf_exempt
from rest_framework.response import Response
from rest_framework.views import APIView

from billing.models import WebhookEventLog
from billing.services.signatures import verify_webhook_signature
from billing.services.webhook_events import hash_raw_body, reserve_event
from billing.tasks import process_razorpay_event_async

logger = logging.getLogger(__name__)


@method_decorator(csrf_exempt, name="dispatch")
class RazorpayWebhookView(APIView):
    """Verify a Razorpay webhook delivery and queue it for the billing worker.

    The signature covers the raw request body, so the body is read before DRF
    parses anything. A delivery whose event was already handled is
    acknowledged with 200 and not queued again.
    """

    authentication_classes = []
    permission_classes = []
    http_method_names = ["post"]

    def post(self, request, *args, **kwargs):
        secret = getattr(settings, "RAZORPAY_WEBHOOK_SECRET", "")
        if not secret:
            logger.error("RAZORPAY_WEBHOOK_SECRET is not set; rejecting Razorpay webhook.")
            return HttpResponse(status=500)

        body = request.body
        if not verify_webhook_signature(body, request.headers.get("X-Razorpay-Signature", ""), secret):
            logger.warning("Razorpay webhook signature verification failed.")
            return HttpResponse(status=400)

        event = _decode_event(body)
        if event is None:
            logger.error("Razorpay webhook body is not a JSON event.")
            return HttpResponse(status=400)

        event_id = request.headers.get("X-Razorpay-Event-Id") or event.get("id")
        event_type = event["event"]
        if event_id:
            event["id"] = event_id
        else:
            logger.warning("Razorpay event %s arrived without an id; it is not deduplicated.", event_type)

        log_entry, already_handled = reserve_event(
            event_id, event_type, hash_raw_body(body), status=WebhookEventLog.Status.RECEIVED
        )
        if already_handled:
            logger.info("Razorpay event %s (%s) already handled as %s.", event_id, event_type, log_entry.status)
            return Response({"status": log_entry.status}, status=200)

        process_razorpay_event_async.delay(event)
        logger.info("Queued Razorpay event %s (%s).", event_id, event_type)
        return Response({"status": "queued"}, status=202)


def _decode_event(body: bytes) -> Optional[Dict[str, Any]]:
    try:
        event = json.loads(body.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return None
    if not isinstance(event, dict) or not event.get("event"):
        return None
    return event
