from fastapi.testclient import TestClient
from sqlalchemy.orm import Session

from earnings_engine import crud
from earnings_engine.services.payment.ledger import TransactionLedger

from tests.utils.auth import get_creator_authentication_headers
from tests.utils.earnings import connect_account, record_payment
from tests.utils.provider import retryable_error


def fund(db, provider, creator_id="creator_1", amount=50000):
    return record_payment(db, TransactionLedger(provider), creator_id=creator_id, amount=amount)


def test_requires_authentication(client: TestClient) -> None:
    response = client.get("/api/v1/payouts/balance")

    assert response.status_code == 401


def test_rejects_invalid_token(client: TestClient) -> None:
    response = client.get(
        "/api/v1/payouts/balance", headers={"Authorization": "Bearer not-a-jwt"}
    )

    assert response.status_code == 401
    assert response.json()["detail"] == "Could not validate credentials"


def test_get_balance(client: TestClient, db: Session, provider) -> None:
    """
    Tests that a creator sees their own available balance.
    """
    fund(db, provider, amount=10000)
    fund(db, provider, creator_id="creator_2", amount=10000)

    response = client.get(
        "/api/v1/payouts/balance", headers=get_creator_authentication_headers("creator_1")
    )

    assert response.status_code == 200
    assert response.json() == {"creator_id": "creator_1", "balance": 8000}


def test_get_fee_info(client: TestClient) -> None:
    response = client.get(
        "/api/v1/payouts/fee-info", headers=get_creator_authentication_headers("creator_1")
    )

    assert response.status_code == 200
    content = response.json()
    assert content["creator_id"] == "creator_1"
    assert content["platform_fee_percentage"] == 20
    assert content["is_elite_founding"] is False


def test_initiate_payout(client: TestClient, db: Session, provider) -> None:
    """
    Tests a successful payout request and the resulting history entry.
    """
    fund(db, provider)
    connect_account(db, "creator_1")
    headers = get_creator_authentication_headers("creator_1")

    response = client.post("/api/v1/payouts/", headers=headers, json={"amount": 15000})

    assert response.status_code == 201
    content = response.json()
    assert content["amount"] == 15000
    assert content["status"] == "pending"
    assert content["creator_id"] == "creator_1"

    history = client.get("/api/v1/payouts/history", headers=headers)
    assert history.status_code == 200
    assert [p["id"] for p in history.json()] == [content["id"]]

    detail = client.get(f"/api/v1/payouts/{content['id']}", headers=headers)
    assert detail.status_code == 200
    assert detail.json()["stripe_transfer_id"] == content["stripe_transfer_id"]


def test_payout_of_another_creator_is_hidden(client: TestClient, db: Session, provider) -> None:
    fund(db, provider)
    connect_account(db, "creator_1")
    created = client.post(
        "/api/v1/payouts/",
        headers=get_creator_authentication_headers("creator_1"),
        json={"amount": 1000},
    ).json()

    response = client.get(
        f"/api/v1/payouts/{created['id']}",
        headers=get_creator_authentication_headers("creator_2"),
    )

    assert response.status_code == 404


def test_payout_without_account(client: TestClient, db: Session, provider) -> None:
    fund(db, provider)

    response = client.post(
        "/api/v1/payouts/",
        headers=get_creator_authentication_headers("creator_1"),
        json={"amount": 1000},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Creator must connect a payout account first"


def test_payout_above_balance(client: TestClient, db: Session, provider) -> None:
    fund(db, provider, amount=10000)
    connect_account(db, "creator_1")

    response = client.post(
        "/api/v1/payouts/",
        headers=get_creator_authentication_headers("creator_1"),
        json={"amount": 9000},
    )

    assert response.status_code == 400
    assert response.json()["detail"] == "Insufficient balance. Available: 80.00"


def test_payout_amount_must_be_positive(client: TestClient) -> None:
    response = client.post(
        "/api/v1/payouts/",
        headers=get_creator_authentication_headers("creator_1"),
        json={"amount": 0},
    )

    assert response.status_code == 422


def test_provider_outage_queues_payout(client: TestClient, db: Session, provider) -> None:
    """
    Tests that a provider failure returns 502 without leaking provider details.
    """
    fund(db, provider)
    connect_account(db, "creator_1")
    provider.transfer_error = retryable_error("upstream 503 from api.stripe.com")

    response = client.post(
        "/api/v1/payouts/",
        headers=get_creator_authentication_headers("creator_1"),
        json={"amount": 1000},
    )

    assert response.status_code == 502
    assert "stripe.com" not in response.json()["detail"]
    assert crud.failover_record.count(db) == 1
    assert crud.creator_payout.get_all(db) == []


def test_second_payout_rejected_while_retry_queued(
    client: TestClient, db: Session, provider
) -> None:
    """
    Tests that a creator cannot start a payout while an earlier one awaits retry.
    """
    fund(db, provider)
    connect_account(db, "creator_1")
    provider.transfer_error = retryable_error()
    headers = get_creator_authentication_headers("creator_1")
    client.post("/api/v1/payouts/", headers=headers, json={"amount": 40000})
    provider.transfer_error = None

    response = client.post("/api/v1/payouts/", headers=headers, json={"amount": 40000})

    assert response.status_code == 400
    assert response.json()["detail"] == "A previous payout is still being retried"
    assert len(provider.transfer_calls) == 1


def test_get_own_earnings_and_transactions(client: TestClient, db: Session, provider) -> None:
    """
    Tests that a creator sees only their own earnings breakdown and history.
    """
    mine = fund(db, provider, amount=999)
    fund(db, provider, creator_id="creator_2", amount=10000)
    headers = get_creator_authentication_headers("creator_1")

    earnings = client.get("/api/v1/payouts/earnings", headers=headers)
    history = client.get("/api/v1/payouts/transactions", headers=headers)

    assert earnings.status_code == 200
    assert earnings.json()["creator_id"] == "creator_1"
    assert earnings.json()["total_earnings"] == 799
    assert earnings.json()["by_category"]["subscription"] == 799
    assert history.status_code == 200
    assert [t["id"] for t in history.json()] == [mine.id]
