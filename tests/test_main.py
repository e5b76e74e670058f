from decimal import Decimal

import pytest
from fastapi.testclient import TestClient

from main import app
from models import ExpenseRecord, Split
from storage import storage

client = TestClient(app)


def create_member(name):
    response = client.post("/api/members", json={"name": name})
    assert response.status_code == 201
    return response.json()["id"]


@pytest.fixture
def trio():
    ids = [create_member(name) for name in ("Alice", "Bob", "Carol")]
    response = client.post("/api/groups", json={"name": "Trip", "member_ids": ids})
    assert response.status_code == 201
    return response.json()["id"], ids


def debts_of(payload):
    return [(d["from_member_id"], d["to_member_id"], Decimal(d["amount"]))
            for d in payload["debts"]]


def test_health():
    assert client.get("/api/health").json() == {"status": "healthy"}


def test_equal_split_when_no_splits_given(trio):
    group_id, (a, b, c) = trio

    response = client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Dinner", "amount": "90", "payer_id": a, "category": "Food"})
    assert response.status_code == 201

    balances = client.get(f"/api/groups/{group_id}/balances").json()

    nets = {bal["member_id"]: Decimal(bal["net_balance"]) for bal in balances["balances"]}
    assert nets == {a: Decimal("60"), b: Decimal("-30"), c: Decimal("-30")}
    assert debts_of(balances) == [(b, a, Decimal("30")), (c, a, Decimal("30"))]
    assert Decimal(balances["group_total"]) == Decimal("90")


def test_explicit_splits_must_add_up(trio):
    group_id, (a, b, c) = trio

    response = client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Taxi", "amount": "100.00", "payer_id": a,
        "splits": [{"member_id": a, "share_amount": "50.00"},
                   {"member_id": b, "share_amount": "49.99"}]})

    assert response.status_code == 400
    assert client.get(f"/api/groups/{group_id}/expenses").json() == []


def test_shares_finer_than_a_cent_never_reach_the_balances(trio):
    group_id, (a, b, c) = trio

    for _ in range(3):
        response = client.post(f"/api/groups/{group_id}/expenses", json={
            "description": "Taxi", "amount": "100", "payer_id": a,
            "splits": [{"member_id": a, "share_amount": "50"},
                       {"member_id": b, "share_amount": "49.991"}]})
        assert response.status_code == 400

    response = client.get(f"/api/groups/{group_id}/balances")

    assert response.status_code == 200
    assert debts_of(response.json()) == []


def test_split_with_non_member_is_rejected(trio):
    group_id, (a, b, c) = trio
    outsider = create_member("Dave")

    response = client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Taxi", "amount": "10", "payer_id": a,
        "splits": [{"member_id": outsider, "share_amount": "10"}]})

    assert response.status_code == 400


def test_payer_must_be_member(trio):
    group_id, _ = trio
    outsider = create_member("Dave")

    response = client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Taxi", "amount": "10", "payer_id": outsider})

    assert response.status_code == 400


def test_settlement_clears_debt_and_is_idempotent(trio):
    group_id, (a, b, c) = trio
    client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Hotel", "amount": "90", "payer_id": a})

    for _ in range(2):
        response = client.post(f"/api/groups/{group_id}/settlements", json={
            "from_member_id": b, "to_member_id": a, "amount": "30",
            "idempotency_key": "bob-pays-alice"})
        assert response.status_code == 201
        assert response.json()["category"] == "Settlement"

    balances = client.get(f"/api/groups/{group_id}/balances").json()

    assert debts_of(balances) == [(c, a, Decimal("30"))]
    assert Decimal(balances["group_total"]) == Decimal("90")


def test_settlement_with_self_is_rejected(trio):
    group_id, (a, b, c) = trio

    response = client.post(f"/api/groups/{group_id}/settlements", json={
        "from_member_id": a, "to_member_id": a, "amount": "5"})

    assert response.status_code == 400


def test_member_settlements_across_groups(trio):
    group_id, (a, b, c) = trio
    other = client.post("/api/groups", json={"name": "Flat", "member_ids": [a, b]}).json()["id"]

    client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Hotel", "amount": "90", "payer_id": a})
    client.post(f"/api/groups/{other}/expenses", json={
        "description": "Rent", "amount": "100", "payer_id": b})

    report = client.get(f"/api/members/{b}/settlements").json()

    assert [(d["group_id"], d["from_member_id"], d["to_member_id"], Decimal(d["amount"]))
            for d in report["debts"]] == [
        (group_id, b, a, Decimal("30")),
        (other, a, b, Decimal("50")),
    ]
    nets = {bal["member_id"]: Decimal(bal["net_balance"]) for bal in report["balances"]}
    assert nets == {a: Decimal("10"), b: Decimal("20"), c: Decimal("-30")}


def test_delete_expense(trio):
    group_id, (a, b, c) = trio
    expense_id = client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Snacks", "amount": "9", "payer_id": c}).json()["id"]

    assert client.delete(f"/api/groups/{group_id}/expenses/{expense_id}").status_code == 200
    assert client.delete(f"/api/groups/{group_id}/expenses/{expense_id}").status_code == 404


def test_list_expenses_by_category(trio):
    group_id, (a, b, c) = trio
    client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Bus", "amount": "3", "payer_id": a, "category": "Transportation"})
    client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Pizza", "amount": "30", "payer_id": b, "category": "Food"})

    food = client.get(f"/api/groups/{group_id}/expenses", params={"category": "Food"}).json()

    assert [e["description"] for e in food] == ["Pizza"]


def test_unknown_group_is_404():
    assert client.get("/api/groups/nope/balances").status_code == 404


def test_corrupt_data_is_reported_as_integrity_error(trio):
    group_id, (a, b, c) = trio
    # written behind the API's back, so the membership check never ran
    storage.add_expense(group_id, ExpenseRecord(
        description="Ghost dinner", payer_id="ghost", amount=Decimal("10"),
        splits=[Split(member_id=a, share_amount=Decimal("10"))]))

    response = client.get(f"/api/groups/{group_id}/balances")

    assert response.status_code == 500
    assert response.json()["error"] == "referential_integrity"


def test_csv_export(trio):
    group_id, (a, b, c) = trio
    client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Dinner", "amount": "90", "payer_id": a})

    response = client.get(f"/api/groups/{group_id}/export/csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    text = response.content.decode("utf-8-sig")
    assert "Dinner" in text
    assert "Bob,Alice,$30.00" in text
    assert "Carol,Alice,$30.00" in text


def test_pdf_export(trio):
    group_id, _ = trio

    response = client.get(f"/api/groups/{group_id}/export/pdf")

    assert response.status_code == 200
    assert response.content.startswith(b"%PDF")


def test_update_amount_splits_again_between_same_members(trio):
    group_id, (a, b, c) = trio
    expense_id = client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Hotel", "amount": "90", "payer_id": a}).json()["id"]

    response = client.put(f"/api/expenses/{expense_id}", json={"amount": "120"})

    assert response.status_code == 200
    assert [Decimal(s["share_amount"]) for s in response.json()["splits"]] == [Decimal("40")] * 3
    balances = client.get(f"/api/groups/{group_id}/balances").json()
    assert debts_of(balances) == [(b, a, Decimal("40")), (c, a, Decimal("40"))]


def test_update_description_keeps_splits(trio):
    group_id, (a, b, c) = trio
    expense_id = client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Hotel", "amount": "90", "payer_id": a,
        "splits": [{"member_id": b, "share_amount": "90"}]}).json()["id"]

    response = client.put(f"/api/expenses/{expense_id}", json={
        "description": "Hotel, two nights", "category": "Travel"})

    assert response.status_code == 200
    body = response.json()
    assert body["description"] == "Hotel, two nights"
    assert body["category"] == "Travel"
    assert [s["member_id"] for s in body["splits"]] == [b]


def test_update_with_mismatched_splits_is_rejected(trio):
    group_id, (a, b, c) = trio
    expense_id = client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Hotel", "amount": "90", "payer_id": a}).json()["id"]

    response = client.put(f"/api/expenses/{expense_id}", json={
        "amount": "100", "splits": [{"member_id": b, "share_amount": "90"}]})

    assert response.status_code == 400
    stored = client.get(f"/api/groups/{group_id}/expenses").json()
    assert Decimal(stored[0]["amount"]) == Decimal("90")


def test_settlements_cannot_be_edited(trio):
    group_id, (a, b, c) = trio
    settlement_id = client.post(f"/api/groups/{group_id}/settlements", json={
        "from_member_id": b, "to_member_id": a, "amount": "5"}).json()["id"]

    assert client.put(f"/api/expenses/{settlement_id}", json={"amount": "50"}).status_code == 400
    assert client.put("/api/expenses/missing", json={"amount": "50"}).status_code == 404


def test_member_expenses_by_type_with_summary(trio):
    group_id, (a, b, c) = trio
    client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Hotel", "amount": "90", "payer_id": a})
    client.post(f"/api/groups/{group_id}/expenses", json={
        "description": "Pizza", "amount": "30", "payer_id": b,
        "splits": [{"member_id": b, "share_amount": "15"},
                   {"member_id": c, "share_amount": "15"}]})

    def descriptions(kind):
        body = client.get(f"/api/members/{b}/expenses", params={"type": kind}).json()
        return [e["description"] for e in body["expenses"]]

    assert descriptions("all") == ["Pizza", "Hotel"]
    assert descriptions("paid") == ["Pizza"]
    assert descriptions("owe") == ["Hotel"]

    summary = client.get(f"/api/members/{b}/expenses").json()["summary"]
    assert {k: Decimal(v) for k, v in summary.items()} == {
        "total_paid": Decimal("30"),
        "total_owed": Decimal("45"),
        "net_balance": Decimal("-15"),
        "you_owe": Decimal("15"),
        "you_are_owed": Decimal("0"),
    }


def test_member_expenses_pagination(trio):
    group_id, (a, b, c) = trio
    for description in ("Bus", "Lunch", "Museum"):
        client.post(f"/api/groups/{group_id}/expenses", json={
            "description": description, "amount": "9", "payer_id": a})

    body = client.get(f"/api/members/{a}/expenses", params={"page": 2, "limit": 2}).json()

    assert [e["description"] for e in body["expenses"]] == ["Bus"]
    assert body["pagination"] == {
        "current_page": 2, "total_pages": 2, "total_expenses": 3,
        "has_next": False, "has_prev": True,
    }


def test_member_expenses_rejects_unknown_type(trio):
    _, (a, b, c) = trio
    assert client.get(f"/api/members/{a}/expenses", params={"type": "lent"}).status_code == 400
