import random
import threading
from unittest.mock import patch

import pytest
from django.db import connection

from billing.models import PaymentTransaction, ProjectCredit
from billing.services import credit_gate
from billing.services.credit_gate import release_credit, try_consume_credit
from billing.services.credit_grants import grant_project_credit
from billing.services.verification import settle_completed_order
from billing.tests.helpers import create_order_transaction, create_user


def _balance(user):
    account = ProjectCredit.objects.get(user=user)
    return account.available_credits, account.total_purchased_credits, account.used_credits


@pytest.mark.django_db
def test_gate_blocks_without_credit_and_creates_row_lazily(user):
    assert not ProjectCredit.objects.filter(user=user).exists()

    assert try_consume_credit(user.pk) is False

    assert _balance(user) == (0, 0, 0)


@pytest.mark.django_db
def test_credit_purchase_then_consumption(user):
    ProjectCredit.objects.create(user=user)
    create_order_transaction(user, order_id="order_credit")

    result = settle_completed_order("order_credit", user.pk, "pay_credit")

    assert result.effect_applied is True
    assert _balance(user) == (1, 1, 0)

    assert try_consume_credit(user.pk) is True
    assert _balance(user) == (0, 1, 1)

    assert try_consume_credit(user.pk) is False
    assert _balance(user) == (0, 1, 1)


@pytest.mark.django_db
def test_release_credit_returns_consumed_credit(user):
    assert release_credit(user.pk) is False

    grant_project_credit(user.pk)
    try_consume_credit(user.pk)

    assert release_credit(user.pk) is True
    assert _balance(user) == (1, 1, 0)
    assert release_credit(user.pk) is False


@pytest.mark.django_db
def test_conservation_holds_across_random_operations(user):
    rng = random.Random(20240611)
    ProjectCredit.objects.create(user=user)
    operations = {
        "grant": lambda: grant_project_credit(user.pk),
        "consume": lambda: try_consume_credit(user.pk),
        "release": lambda: release_credit(user.pk),
    }

    for _ in range(200):
        operations[rng.choice(["grant", "consume", "consume", "release"])]()
        available, purchased, used = _balance(user)
        assert available == purchased - used
        assert available >= 0


@pytest.mark.django_db
def test_repeated_settlement_grants_once(user):
    create_order_transaction(user)

    settle_completed_order("order_abc", user.pk, "pay_123")
    settle_completed_order("order_abc", user.pk, "pay_123")

    assert _balance(user) == (1, 1, 0)
    assert PaymentTransaction.objects.get().status == PaymentTransaction.Status.COMPLETED


@pytest.mark.django_db(transaction=True)
def test_concurrent_consumers_cannot_share_the_last_credit():
    if connection.vendor != "postgresql":
        pytest.skip("Row-level concurrency needs PostgreSQL.")

    user = create_user("racer")
    grant_project_credit(user.pk)

    barrier = threading.Barrier(2)
    results = []
    lock = threading.Lock()

    def consume():
        try:
            barrier.wait()
            outcome = try_consume_credit(user.pk)
            with lock:
                results.append(outcome)
        finally:
            connection.close()

    threads = [threading.Thread(target=consume) for _ in range(2)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(results) == [False, True]
    assert _balance(user) == (0, 1, 1)


@pytest.mark.django_db
def test_consumer_holding_a_stale_balance_cannot_take_the_last_credit(user):
    grant_project_credit(user.pk)
    real_ensure = credit_gate.ensure_credit_account
    competitor = {}

    # The first caller has already seen one available credit when the second one spends it.
    def ensure_then_let_competitor_run(user_id):
        account = real_ensure(user_id)
        if "result" not in competitor:
            competitor["result"] = None
            competitor["result"] = try_consume_credit(user_id)
        return account

    with patch("billing.services.credit_gate.ensure_credit_account", side_effect=ensure_then_let_competitor_run):
        first = try_consume_credit(user.pk)

    assert competitor["result"] is True
    assert first is False
    assert _balance(user) == (0, 1, 1)
