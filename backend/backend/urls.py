"""
Root URL configuration: billing and project APIs, the contract-signed
notification hook, liveness and Prometheus metrics.
"""
import os

from django.contrib import admin
from django.http import HttpResponse
from django.urls import include, path
from prometheus_client import REGISTRY, CollectorRegistry, generate_latest, multiprocess

from projects.views import ContractSignedNotificationView

# Gunicorn workers share metrics through PROMETHEUS_MULTIPROC_DIR.
if os.environ.get('PROMETHEUS_MULTIPROC_DIR'):
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY


def health_check(request):
    return HttpResponse("OK", content_type="text/plain")


def billing_metrics(request):
    payload = generate_latest(registry)
    return HttpResponse(payload, content_type="text/plain; version=0.0.4")


urlpatterns = [
    path('admin/', admin.site.urls),
    path('api/billing/', include('billing.urls', namespace='billing')),
    path('api/projects/', include('projects.urls', namespace='projects')),
    path(
        'api/notifications/contract-signed/',
        ContractSignedNotificationView.as_view(),
        name='notify-contract-signed',
    ),
    path('health/', health_check, name='health_check'),
    path('metrics/billing/', billing_metrics, name='billing_metrics'),
]
