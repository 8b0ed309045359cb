from sqlalchemy import func, select

from stockroom.models.front_stock import FrontStockTransfer


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
            "variants": [
                {"code": "IDM-PCS", "unit": "PCS", "conversion_amount": 1},
                {"code": "IDM-DUS", "unit": "DUS", "conversion_amount": 40},
            ],
        },
    )
    assert res.status_code == 200, res.text
    by_unit = {variant["unit"]: variant["id"] for variant in res.json()["variants"]}
    return {"item_id": res.json()["id"], "pcs_id": by_unit["PCS"], "dus_id": by_unit["DUS"]}


def _setup(client) -> tuple[str, dict]:
    branch_id = _create_branch(client, "AA")
    item = _create_indomie(client)
    res = client.post(
        "/transactions/adjustments",
        json={
            "branch_id": branch_id,
            "items": [{"item_id": item["item_id"], "variant_id": item["pcs_id"], "actual_qty": 100}],
        },
    )
    assert res.status_code == 200, res.text
    return branch_id, item


def _move(client, branch_id: str, lines: list[dict], **extra):
    return client.post(
        "/stock/front-stock/transfers",
        json={"branch_id": branch_id, "items": lines, **extra},
        headers={"X-Actor-Id": "clerk-1"},
    )


def _level(client, branch_id: str, item_id: str) -> dict:
    res = client.get(f"/stock/{branch_id}/items/{item_id}")
    assert res.status_code == 200, res.text
    return res.json()


def _split(client, branch_id: str, item_id: str) -> tuple[int, int, int]:
    level = _level(client, branch_id, item_id)
    return level["quantity"], level["front_quantity"], level["rear_quantity"]


def test_moving_cartons_to_front_keeps_branch_total(test_context):
    client, _ = test_context
    branch_id, item = _setup(client)
    assert _split(client, branch_id, item["item_id"]) == (100, 0, 100)

    res = _move(
        client,
        branch_id,
        [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 2}],
        notes="fill shelf",
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["status"] == "committed"
    assert body["created_by"] == "clerk-1"
    assert body["notes"] == "fill shelf"
    assert body["items"][0]["conversion_amount"] == 40
    assert body["items"][0]["base_qty"] == 80
    assert body["alerts"] == []

    assert _split(client, branch_id, item["item_id"]) == (100, 80, 20)


def test_negative_quantity_moves_stock_back_to_rear(test_context):
    client, _ = test_context
    branch_id, item = _setup(client)
    _move(client, branch_id, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 2}])

    res = _move(client, branch_id, [{"item_id": item["item_id"], "variant_id": item["pcs_id"], "qty": -30}])
    assert res.status_code == 200, res.text
    assert res.json()["items"][0]["base_qty"] == -30
    assert _split(client, branch_id, item["item_id"]) == (100, 50, 50)


def test_moving_more_than_rear_holds_reports_rear_alert(test_context):
    client, _ = test_context
    branch_id, item = _setup(client)

    res = _move(client, branch_id, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 3}])
    assert res.status_code == 200, res.text
    alerts = res.json()["alerts"]
    assert [(a["bucket"], a["quantity"]) for a in alerts] == [("rear", -20)]
    assert alerts[0]["branch_id"] == branch_id
    assert _split(client, branch_id, item["item_id"]) == (100, 120, -20)


def test_void_restores_split_and_second_void_is_rejected(test_context):
    client, _ = test_context
    branch_id, item = _setup(client)
    res = _move(client, branch_id, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 2}])
    transfer_id = res.json()["id"]

    voided = client.post(f"/stock/front-stock/transfers/{transfer_id}/void", headers={"X-Actor-Id": "lead-1"})
    assert voided.status_code == 200, voided.text
    assert voided.json()["status"] == "voided"
    assert voided.json()["voided_by"] == "lead-1"
    assert _split(client, branch_id, item["item_id"]) == (100, 0, 100)

    again = client.post(f"/stock/front-stock/transfers/{transfer_id}/void")
    assert again.status_code == 409, again.text
    assert again.json()["error"]["code"] == "already_voided"
    assert _split(client, branch_id, item["item_id"]) == (100, 0, 100)


def test_invalid_front_stock_lines_are_rejected(test_context):
    client, session_local = test_context
    branch_id, item = _setup(client)
    line = {"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 1}

    empty = _move(client, branch_id, [])
    assert empty.status_code == 400, empty.text
    assert empty.json()["error"]["code"] == "empty_lines"

    zero = _move(client, branch_id, [{**line, "qty": 0}])
    assert zero.status_code == 400, zero.text
    assert zero.json()["error"]["code"] == "zero_qty"

    duplicate = _move(client, branch_id, [line, {**line, "qty": -1}])
    assert duplicate.status_code == 409, duplicate.text
    assert duplicate.json()["error"]["code"] == "duplicate_line"

    unknown_branch = _move(client, "nowhere", [line])
    assert unknown_branch.status_code == 400, unknown_branch.text
    assert unknown_branch.json()["error"]["code"] == "branch_not_found"

    too_large = _move(client, branch_id, [{**line, "qty": 10**18}])
    assert too_large.status_code == 422, too_large.text
    assert too_large.json()["error"]["code"] == "validation_error"

    assert _split(client, branch_id, item["item_id"]) == (100, 0, 100)
    db = session_local()
    try:
        assert db.execute(select(func.count(FrontStockTransfer.id))).scalar_one() == 0
    finally:
        db.close()


def test_front_stock_movements_leave_total_untouched(test_context):
    client, _ = test_context
    branch_id, item = _setup(client)
    _move(client, branch_id, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 2}])

    history = client.get(f"/stock/{branch_id}/items/{item['item_id']}/movements")
    assert history.status_code == 200, history.text
    rows = {row["reason"]: row for row in history.json()["items"]}
    assert rows["front_stock"]["qty_delta"] == 0
    assert rows["front_stock"]["front_qty_delta"] == 80
    assert rows["adjustment"]["front_qty_delta"] == 0


def test_stock_take_changes_rear_only(test_context):
    client, _ = test_context
    branch_id, item = _setup(client)
    _move(client, branch_id, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 2}])

    res = client.post(
        "/transactions/adjustments",
        json={
            "branch_id": branch_id,
            "items": [{"item_id": item["item_id"], "variant_id": item["pcs_id"], "actual_qty": 90}],
        },
    )
    assert res.status_code == 200, res.text
    assert _split(client, branch_id, item["item_id"]) == (90, 80, 10)


def test_front_stock_items_view(test_context):
    client, _ = test_context
    branch_id, item = _setup(client)
    _move(client, branch_id, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 2}])

    res = client.get("/stock/front-stock/items", params={"branch_id": branch_id})
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["pagination"]["total"] == 1
    row = body["items"][0]
    assert (row["item_id"], row["quantity"], row["front_quantity"], row["rear_quantity"]) == (
        item["item_id"],
        100,
        80,
        20,
    )
    dus = next(v for v in row["front_variants"] if v["unit"] == "DUS")
    assert (dus["whole"], dus["remainder"], dus["is_exact"]) == (2, 0, True)

    missing = client.get("/stock/front-stock/items", params={"branch_id": "nowhere"})
    assert missing.status_code == 404, missing.text
    assert missing.json()["error"]["code"] == "not_found"


def test_list_and_get_front_stock_transfers(test_context):
    client, _ = test_context
    branch_id, item = _setup(client)
    other_branch = _create_branch(client, "BB")
    line = [{"item_id": item["item_id"], "variant_id": item["pcs_id"], "qty": 5}]

    first = _move(client, branch_id, line).json()
    second = _move(client, branch_id, line).json()
    third = _move(client, other_branch, line).json()
    client.post(f"/stock/front-stock/transfers/{first['id']}/void")

    own = client.get("/stock/front-stock/transfers", params={"branch_id": branch_id})
    assert own.status_code == 200, own.text
    assert {row["id"] for row in own.json()["items"]} == {first["id"], second["id"]}

    voided = client.get("/stock/front-stock/transfers", params={"status": "voided"}).json()
    assert [row["id"] for row in voided["items"]] == [first["id"]]

    paged = client.get("/stock/front-stock/transfers", params={"limit": 2}).json()
    assert paged["pagination"] == {"total": 3, "limit": 2, "offset": 0, "count": 2, "has_next": True}

    detail = client.get(f"/stock/front-stock/transfers/{third['id']}")
    assert detail.status_code == 200, detail.text
    assert detail.json()["branch_id"] == other_branch

    missing = client.get("/stock/front-stock/transfers/unknown")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"


def test_variant_in_use_until_front_stock_transfer_is_voided(test_context):
    client, _ = test_context
    branch_id, item = _setup(client)
    res = _move(client, branch_id, [{"item_id": item["item_id"], "variant_id": item["dus_id"], "qty": 1}])
    transfer_id = res.json()["id"]

    in_use = client.delete(f"/items/{item['item_id']}/variants/{item['dus_id']}")
    assert in_use.status_code == 409, in_use.text
    assert in_use.json()["error"]["code"] == "variant_in_use"

    assert client.post(f"/stock/front-stock/transfers/{transfer_id}/void").status_code == 200
    assert client.delete(f"/items/{item['item_id']}/variants/{item['dus_id']}").status_code == 204
