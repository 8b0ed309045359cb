from sqlalchemy import func, select

from stockroom.core.config import settings
from stockroom.models.audit_log import AuditLog
from stockroom.models.stock import StockMovement
from stockroom.models.transfer import Transfer
from stockroom.services import transfer_service


def _create_branch(client, code: str) -> str:
    res = client.post("/branches", json={"name": f"Branch {code}", "code": code})
    assert res.status_code == 200, res.text
    return res.json()["id"]


def _create_indomie(client) -> dict:
    for code, name in (("PCS", "Pieces"), ("DUS", "Carton")):
        unit_res = client.post("/units", json={"code": code, "name": name})
        assert unit_res.status_code == 200, unit_res.text
    res = client.post(
        "/items",
        json={
            "name": "Indomie Goreng",
            "code": "IDM-GRG",
            "recorded_buy_price": 2800,
            "variants": [
                {"code": "IDM-PCS", "unit": "PCS", "conversion_amount": 1, "sell_price": 3500},
                {"code": "IDM-DUS", "unit": "DUS", "conversion_amount": 40, "sell_price": 128000},
            ],
        },
    )
    assert res.status_code == 200, res.text
    by_unit = {variant["unit"]: variant["id"] for variant in res.json()["variants"]}
    return {"item_id": res.json()["id"], "pcs_id": by_unit["PCS"], "dus_id": by_unit["DUS"]}


def _set_stock(client, branch_id: str, item: dict, pcs: int) -> None:
    res = client.post(
        "/transactions/adjustments",
        json={
            "branch_id": branch_id,
            "items": [{"item_id": item["item_id"], "variant_id": item["pcs_id"], "actual_qty": pcs}],
        },
    )
    assert res.status_code == 200, res.text


def _stock(client, branch_id: str, item_id: str) -> int:
    res = client.get(f"/stock/{branch_id}/items/{item_id}")
    assert res.status_code == 200, res.text
    return res.json()["quantity"]


def _setup(client) -> tuple[str, str, dict]:
    branch_a = _create_branch(client, "AA")
    branch_b = _create_branch(client, "BB")
    item = _create_indomie(client)
    _set_stock(client, branch_a, item, 100)
    return branch_a, branch_b, item


def _transfer(client, branch_from: str, branch_to: str, lines: list[dict], **extra):
    return client.post(
        "/transactions/transfers",
        json={"from_branch_id": branch_from, "to_branch_id": branch_to, "items": lines, **extra},
        headers={"X-Actor-Id": "clerk-1"},
    )


def test_transfer_in_cartons_moves_base_units_and_reports_negative_stock(test_context):
    client, _ = test_context
    branch_a, branch_b, item = _setup(client)

    res = _transfer(
        client,
        branch_a,
        branch_b,
        [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 20}],
        notes="restock B",
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["status"] == "committed"
    assert body["created_by"] == "clerk-1"
    assert body["items"][0]["qty"] == 20
    assert body["items"][0]["conversion_amount"] == 40
    assert body["items"][0]["base_qty"] == 800
    assert [(a["branch_id"], a["quantity"]) for a in body["alerts"]] == [(branch_a, -700)]

    assert _stock(client, branch_a, item["item_id"]) == -700
    assert _stock(client, branch_b, item["item_id"]) == 800


def test_stock_view_shows_display_quantities_per_variant(test_context):
    client, _ = test_context
    branch_a, branch_b, item = _setup(client)
    _transfer(client, branch_a, branch_b, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 20}])

    source = client.get(f"/stock/{branch_a}/items/{item['item_id']}").json()
    assert source["is_negative"] is True
    dus = next(v for v in source["variants"] if v["unit"] == "DUS")
    assert dus["quantity"] == -17.5
    assert dus["whole"] == -17
    assert dus["remainder"] == -20
    assert dus["is_exact"] is False

    destination = client.get(f"/stock/{branch_b}/items/{item['item_id']}").json()
    dus = next(v for v in destination["variants"] if v["unit"] == "DUS")
    assert (dus["whole"], dus["remainder"], dus["is_exact"]) == (20, 0, True)
    pcs = next(v for v in destination["variants"] if v["unit"] == "PCS")
    assert pcs["quantity"] == 800.0


def test_transfer_deltas_sum_to_zero_across_branches(test_context):
    client, session_local = test_context
    branch_a, branch_b, item = _setup(client)
    before = _stock(client, branch_a, item["item_id"]) + _stock(client, branch_b, item["item_id"])

    res = _transfer(
        client,
        branch_a,
        branch_b,
        [
            {"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 2},
            {"item_id": item["item_id"], "variant_id": item["pcs_id"], "qty": 7},
        ],
    )
    assert res.status_code == 200, res.text
    after = _stock(client, branch_a, item["item_id"]) + _stock(client, branch_b, item["item_id"])
    assert before == after
    assert _stock(client, branch_a, item["item_id"]) == 100 - 87

    db = session_local()
    try:
        movement_total = db.execute(
            select(func.sum(StockMovement.qty_delta)).where(StockMovement.reference_id == res.json()["id"])
        ).scalar_one()
    finally:
        db.close()
    assert movement_total == 0


def test_void_restores_both_ledgers_and_second_void_is_rejected(test_context):
    client, session_local = test_context
    branch_a, branch_b, item = _setup(client)
    res = _transfer(client, branch_a, branch_b, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 20}])
    transfer_id = res.json()["id"]

    void_res = client.post(f"/transactions/transfers/{transfer_id}/void", headers={"X-Actor-Id": "manager-2"})
    assert void_res.status_code == 200, void_res.text
    assert void_res.json()["status"] == "voided"
    assert void_res.json()["voided_by"] == "manager-2"
    assert void_res.json()["voided_at"] is not None
    assert _stock(client, branch_a, item["item_id"]) == 100
    assert _stock(client, branch_b, item["item_id"]) == 0

    second = client.post(f"/transactions/transfers/{transfer_id}/void")
    assert second.status_code == 409, second.text
    assert second.json()["error"]["code"] == "already_voided"
    assert _stock(client, branch_a, item["item_id"]) == 100
    assert _stock(client, branch_b, item["item_id"]) == 0

    db = session_local()
    try:
        actions = db.execute(
            select(AuditLog.action).where(AuditLog.target_id == transfer_id)
        ).scalars().all()
    finally:
        db.close()
    assert sorted(actions) == ["transfer.create", "transfer.void"]


def test_void_uses_snapshotted_conversion_amount(test_context):
    client, _ = test_context
    branch_a, branch_b, item = _setup(client)
    res = _transfer(client, branch_a, branch_b, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 2}])
    assert res.status_code == 200, res.text

    patch_res = client.patch(
        f"/items/{item['item_id']}/variants/{item['dus_id']}",
        json={"conversion_amount": 48},
    )
    assert patch_res.status_code == 200, patch_res.text

    void_res = client.post(f"/transactions/transfers/{res.json()['id']}/void")
    assert void_res.status_code == 200, void_res.text
    assert _stock(client, branch_a, item["item_id"]) == 100
    assert _stock(client, branch_b, item["item_id"]) == 0


def test_same_branch_transfer_is_rejected(test_context):
    client, _ = test_context
    branch_a, _, item = _setup(client)

    res = _transfer(client, branch_a, branch_a, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 1}])
    assert res.status_code == 400, res.text
    assert res.json()["error"]["code"] == "same_branch"


def test_duplicate_variant_lines_are_rejected(test_context):
    client, _ = test_context
    branch_a, branch_b, item = _setup(client)
    line = {"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 1}

    res = _transfer(client, branch_a, branch_b, [line, {**line, "qty": 2}])
    assert res.status_code == 409, res.text
    error = res.json()["error"]
    assert error["code"] == "duplicate_line"
    assert error["details"] == [{"variant_id": item["dus_id"]}]


def test_invalid_lines_are_rejected(test_context):
    client, _ = test_context
    branch_a, branch_b, item = _setup(client)

    empty = _transfer(client, branch_a, branch_b, [])
    assert empty.status_code == 400, empty.text
    assert empty.json()["error"]["code"] == "empty_lines"

    zero = _transfer(client, branch_a, branch_b, [{"item_id": item["item_id"], "variant_id": item["pcs_id"], "qty": 0}])
    assert zero.status_code == 400, zero.text
    assert zero.json()["error"]["code"] == "non_positive_qty"

    unknown_branch = _transfer(
        client,
        branch_a,
        "nowhere",
        [{"item_id": item["item_id"], "variant_id": item["pcs_id"], "qty": 1}],
    )
    assert unknown_branch.status_code == 400, unknown_branch.text
    assert unknown_branch.json()["error"]["code"] == "branch_not_found"


def test_bad_line_aborts_whole_transfer(test_context):
    client, session_local = test_context
    branch_a, branch_b, item = _setup(client)

    res = _transfer(
        client,
        branch_a,
        branch_b,
        [
            {"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 1},
            {"item_id": item["item_id"], "variant_id": "not-a-variant", "qty": 1},
        ],
    )
    assert res.status_code == 400, res.text
    assert res.json()["error"]["code"] == "variant_not_in_item"
    assert _stock(client, branch_a, item["item_id"]) == 100
    assert _stock(client, branch_b, item["item_id"]) == 0

    db = session_local()
    try:
        assert db.execute(select(func.count(Transfer.id))).scalar_one() == 0
    finally:
        db.close()


def test_deleted_item_cannot_be_transferred(test_context):
    client, _ = test_context
    branch_a, branch_b, item = _setup(client)
    assert client.delete(f"/items/{item['item_id']}").status_code == 204

    res = _transfer(client, branch_a, branch_b, [{"item_id": item["item_id"], "variant_id": item["pcs_id"], "qty": 1}])
    assert res.status_code == 400, res.text
    assert res.json()["error"]["code"] == "inactive_item"


def test_variant_in_use_until_transfer_is_voided(test_context):
    client, _ = test_context
    branch_a, branch_b, item = _setup(client)
    res = _transfer(client, branch_a, branch_b, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 1}])
    transfer_id = res.json()["id"]

    in_use = client.delete(f"/items/{item['item_id']}/variants/{item['dus_id']}")
    assert in_use.status_code == 409, in_use.text
    assert in_use.json()["error"]["code"] == "variant_in_use"

    assert client.post(f"/transactions/transfers/{transfer_id}/void").status_code == 200
    assert client.delete(f"/items/{item['item_id']}/variants/{item['dus_id']}").status_code == 204


def test_list_and_get_transfers(test_context):
    client, _ = test_context
    branch_a, branch_b, item = _setup(client)
    branch_c = _create_branch(client, "CC")
    line = [{"item_id": item["item_id"], "variant_id": item["pcs_id"], "qty": 5}]

    first = _transfer(client, branch_a, branch_b, line).json()
    second = _transfer(client, branch_c, branch_a, line).json()
    _transfer(client, branch_b, branch_c, line)
    client.post(f"/transactions/transfers/{first['id']}/void")

    involving_a = client.get("/transactions/transfers", params={"branch_id": branch_a})
    assert involving_a.status_code == 200, involving_a.text
    assert {row["id"] for row in involving_a.json()["items"]} == {first["id"], second["id"]}
    assert involving_a.json()["pagination"]["total"] == 2

    voided = client.get("/transactions/transfers", params={"status": "voided"}).json()
    assert [row["id"] for row in voided["items"]] == [first["id"]]

    paged = client.get("/transactions/transfers", params={"limit": 2}).json()
    assert paged["pagination"] == {"total": 3, "limit": 2, "offset": 0, "count": 2, "has_next": True}

    detail = client.get(f"/transactions/transfers/{second['id']}")
    assert detail.status_code == 200, detail.text
    assert detail.json()["from_branch_id"] == branch_c

    missing = client.get("/transactions/transfers/unknown")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"


def test_movement_history_for_branch_item(test_context):
    client, _ = test_context
    branch_a, branch_b, item = _setup(client)
    res = _transfer(client, branch_a, branch_b, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 1}])
    client.post(f"/transactions/transfers/{res.json()['id']}/void")

    history = client.get(f"/stock/{branch_a}/items/{item['item_id']}/movements")
    assert history.status_code == 200, history.text
    reasons = sorted((row["reason"], row["qty_delta"]) for row in history.json()["items"])
    assert reasons == [("adjustment", 100), ("transfer_out", -40), ("transfer_void_out", 40)]

    outbound = client.get(
        f"/stock/{branch_a}/items/{item['item_id']}/movements",
        params={"reason": "transfer_out"},
    ).json()
    assert outbound["pagination"]["total"] == 1
    assert outbound["items"][0]["reference_id"] == res.json()["id"]


def test_oversized_quantities_are_rejected_before_touching_ledger(test_context, monkeypatch):
    client, session_local = test_context
    branch_a, branch_b, item = _setup(client)

    huge_line = {"item_id": item["item_id"], "variant_id": item["pcs_id"], "qty": 10**18}
    huge = _transfer(client, branch_a, branch_b, [huge_line])
    assert huge.status_code == 422, huge.text
    assert huge.json()["error"]["code"] == "validation_error"
    assert huge.json()["error"]["details"][0]["field"] == "items.0.qty"

    monkeypatch.setattr(settings, "max_line_base_qty", 1000)
    carton_line = {"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 30}
    over_limit = _transfer(client, branch_a, branch_b, [carton_line])
    assert over_limit.status_code == 400, over_limit.text
    error = over_limit.json()["error"]
    assert error["code"] == "qty_out_of_range"
    assert error["details"] == [{"qty": 30, "conversion_amount": 40, "base_qty": 1200}]

    assert _stock(client, branch_a, item["item_id"]) == 100
    assert _stock(client, branch_b, item["item_id"]) == 0
    db = session_local()
    try:
        assert db.execute(select(func.count(Transfer.id))).scalar_one() == 0
    finally:
        db.close()


def test_transfer_row_is_added_only_after_ledger_rows_are_locked(test_context, monkeypatch):
    client, _ = test_context
    branch_a, branch_b, item = _setup(client)
    pending_at_lock = []
    original_lock = transfer_service.lock_ledger_rows

    def recording_lock(db, keys):
        pending_at_lock.extend(obj for obj in db.new if isinstance(obj, Transfer))
        return original_lock(db, keys)

    monkeypatch.setattr(transfer_service, "lock_ledger_rows", recording_lock)
    res = _transfer(client, branch_a, branch_b, [{"item_id": item["item_id"], "variant_id": item["pcs_id"], "qty": 5}])
    assert res.status_code == 200, res.text
    assert pending_at_lock == []
    assert _stock(client, branch_b, item["item_id"]) == 5
