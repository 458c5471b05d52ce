"""Tests for the HTTP API, using Flask's test client on in-memory storage."""

from datetime import timedelta
from uuid import uuid4

import pytest

from family_ledger.api import create_app
from family_ledger.orchestrator import StorageBundle, create_app_components
from family_ledger.services.storage import InMemoryStorage, StorageError


@pytest.fixture
def client(components):
    app = create_app(components)
    app.config["TESTING"] = True
    return app.test_client()


def spending_body(**overrides) -> dict:
    body = {
        "amount": 12000,
        "category": "식비 - 외식",
        "userName": "민수",
        "familyCode": "kim2024",
        "memo": "점심",
    }
    body.update(overrides)
    return body


class BrokenListingStore(InMemoryStorage):
    async def list_transactions(self, kind, **kwargs):
        raise StorageError("sheet unavailable")


class TestAuth:

    def test_join(self, client):
        response = client.post("/api/auth", json={"familyCode": "kim2024", "userName": "민수"})
        body = response.get_json()

        assert response.status_code == 200
        assert body["success"] is True
        assert body["data"]["user"] == {"name": "민수", "familyCode": "kim2024"}
        assert body["data"]["family"]["users"] == ["민수"]

    def test_missing_fields(self, client):
        response = client.post("/api/auth", json={"familyCode": "kim2024"})
        assert response.status_code == 400
        assert response.get_json()["success"] is False

    def test_invalid_name(self, client):
        response = client.post("/api/auth", json={"familyCode": "kim2024", "userName": "민수!"})
        body = response.get_json()
        assert response.status_code == 400
        assert body["details"][0]["field"] == "userName"

    def test_full_family(self, client):
        for name in ("민수", "지영"):
            client.post("/api/auth", json={"familyCode": "kim2024", "userName": name})
        response = client.post("/api/auth", json={"familyCode": "kim2024", "userName": "철수"})
        assert response.status_code == 409

    def test_non_json_body(self, client):
        response = client.post("/api/auth", data="familyCode=kim2024")
        assert response.status_code == 400


class TestTransactions:

    def test_create_and_list_spending(self, client, components):
        created = client.post("/api/spending", json=spending_body())
        assert created.status_code == 201
        data = created.get_json()["data"]
        assert data["date"] == components.today().isoformat()
        assert data["isRecurring"] is False

        listed = client.get("/api/spending?familyCode=kim2024")
        assert [t["id"] for t in listed.get_json()["data"]] == [data["id"]]
        assert client.get("/api/income?familyCode=kim2024").get_json()["data"] == []

    def test_create_income(self, client):
        response = client.post(
            "/api/income",
            json=spending_body(category="급여 - 정규급여", amount=3000000),
        )
        assert response.status_code == 201
        assert response.get_json()["data"]["kind"] == "income"

    def test_list_requires_family(self, client):
        assert client.get("/api/spending").status_code == 400

    def test_list_by_several_families_and_range(self, client, components):
        today = components.today()
        client.post("/api/spending", json=spending_body())
        client.post("/api/spending", json=spending_body(familyCode="park77", userName="지영"))

        response = client.get(
            f"/api/spending?familyCodes=kim2024,park77&from={today.isoformat()}&to={today.isoformat()}"
        )
        assert len(response.get_json()["data"]) == 2

    def test_bad_date_filter(self, client):
        assert client.get("/api/spending?familyCode=kim2024&from=yesterday").status_code == 400

    def test_schema_error_details(self, client):
        response = client.post("/api/spending", json=spending_body(amount=-5))
        body = response.get_json()
        assert response.status_code == 400
        assert body["details"][0]["loc"] == ["amount"]

    def test_future_date_rejected(self, client, components):
        tomorrow = components.today() + timedelta(days=1)
        response = client.post("/api/spending", json=spending_body(date=tomorrow.isoformat()))
        assert response.status_code == 400
        assert response.get_json()["details"][0]["issueType"] == "future_date"

    def test_wrong_catalog(self, client):
        response = client.post("/api/income", json=spending_body())
        assert response.status_code == 400

    def test_delete(self, client):
        created = client.post("/api/spending", json=spending_body()).get_json()["data"]

        response = client.delete(f"/api/spending?id={created['id']}")
        assert response.status_code == 200
        assert response.get_json()["data"] == {"id": created["id"]}
        assert client.delete(f"/api/spending?id={created['id']}").status_code == 404

    def test_delete_requires_uuid(self, client):
        assert client.delete("/api/spending?id=42").status_code == 400
        assert client.delete("/api/spending").status_code == 400

    def test_storage_failure_is_500(self, app_settings):
        store = BrokenListingStore()
        components = create_app_components(
            settings=app_settings,
            storage=StorageBundle(store, store, store, store),
        )
        response = create_app(components).test_client().get("/api/spending?familyCode=kim2024")
        assert response.status_code == 500
        assert response.get_json()["success"] is False


class TestRecurring:

    def rule_body(self, **overrides) -> dict:
        body = {
            "amount": 500000,
            "category": "주거비 - 월세/관리비",
            "memo": "월세",
            "userName": "민수",
            "familyCode": "kim2024",
            "dayOfMonth": 1,
        }
        body.update(overrides)
        return body

    def test_create_list_and_delete(self, client):
        created = client.post("/api/recurring-rules", json=self.rule_body())
        assert created.status_code == 201
        rule_id = created.get_json()["data"]["id"]

        listed = client.get("/api/recurring-rules?familyCode=kim2024").get_json()["data"]
        assert [r["id"] for r in listed] == [rule_id]
        assert "nextDueDate" in listed[0]

        assert client.delete(f"/api/recurring-rules?id={rule_id}").status_code == 200
        assert client.get("/api/recurring-rules?familyCode=kim2024").get_json()["data"] == []
        assert client.delete(f"/api/recurring-rules?id={uuid4()}").status_code == 404

    def test_list_requires_family(self, client):
        assert client.get("/api/recurring-rules").status_code == 400

    def test_day_out_of_range(self, client):
        assert client.post("/api/recurring-rules", json=self.rule_body(dayOfMonth=32)).status_code == 400

    def test_process_is_idempotent(self, client, components):
        client.post("/api/recurring-rules", json=self.rule_body())

        first = client.post("/api/recurring-process").get_json()["data"]
        second = client.post("/api/recurring-process").get_json()["data"]

        assert first["processed"] == 1
        assert first["runDate"] == components.today().isoformat()
        assert second["processed"] == 0
        spending = client.get("/api/spending?familyCode=kim2024").get_json()["data"]
        assert len(spending) == 1
        assert spending[0]["memo"] == "[정기] 월세"
        assert spending[0]["isRecurring"] is True


class TestSummary:

    def test_current_month(self, client):
        client.post("/api/spending", json=spending_body())
        client.post("/api/income", json=spending_body(category="급여 - 정규급여", amount=100000))

        data = client.get("/api/summary?familyCode=kim2024").get_json()["data"]
        assert data["totalSpending"] == 12000
        assert data["totalIncome"] == 100000
        assert data["balance"] == 88000

    def test_explicit_empty_month(self, client):
        data = client.get("/api/summary?familyCodes=kim2024&month=2020-01").get_json()["data"]
        assert data["totalSpending"] == 0
        assert data["month"] == 1

    def test_bad_month(self, client):
        assert client.get("/api/summary?familyCode=kim2024&month=2025-13").status_code == 400
