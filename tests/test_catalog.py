from sqlalchemy import select

from stockroom.models.audit_log import AuditLog


def _create_unit(client, code: str, name: str):
    res = client.post("/units", json={"code": code, "name": name})
    assert res.status_code == 200, res.text
    return res.json()["id"]


def _create_indomie(client) -> dict:
    pcs_unit_id = _create_unit(client, "PCS", "Pieces")
    dus_unit_id = _create_unit(client, "DUS", "Carton")
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
    body = res.json()
    by_unit = {variant["unit"]: variant for variant in body["variants"]}
    return {
        "item_id": body["id"],
        "pcs_id": by_unit["PCS"]["id"],
        "dus_id": by_unit["DUS"]["id"],
        "pcs_unit_id": pcs_unit_id,
        "dus_unit_id": dus_unit_id,
        "body": body,
    }


def _variants(client, item_id: str) -> list[dict]:
    res = client.get(f"/items/{item_id}")
    assert res.status_code == 200, res.text
    return res.json()["variants"]


def test_create_item_records_variants_and_profit(test_context):
    client, session_local = test_context
    item = _create_indomie(client)
    body = item["body"]

    assert body["code"] == "IDM-GRG"
    assert body["stock"] is None
    variants = {variant["unit"]: variant for variant in body["variants"]}
    assert variants["PCS"]["is_base_unit"] is True
    assert variants["DUS"]["is_base_unit"] is False
    assert variants["PCS"]["recorded_profit_amount"] == 700.0
    assert variants["PCS"]["recorded_profit_percentage"] == 25.0
    assert variants["DUS"]["recorded_profit_amount"] == 16000.0
    assert variants["DUS"]["recorded_profit_percentage"] == 14.29

    db = session_local()
    try:
        actions = db.execute(select(AuditLog.action, AuditLog.actor_id)).all()
    finally:
        db.close()
    assert ("item.create", "system") in actions


def test_item_create_rejects_two_base_units(test_context):
    client, _ = test_context
    _create_unit(client, "PCS", "Pieces")
    _create_unit(client, "PAK", "Pack")

    res = client.post(
        "/items",
        json={
            "name": "Aqua 600ml",
            "code": "AQ-600",
            "variants": [
                {"code": "AQ-PCS", "unit": "PCS", "conversion_amount": 1},
                {"code": "AQ-PAK", "unit": "PAK", "conversion_amount": 1},
            ],
        },
    )
    assert res.status_code == 409, res.text
    assert res.json()["error"]["code"] == "duplicate_base_unit"
    assert client.get("/items").json()["pagination"]["total"] == 0


def test_item_create_requires_known_unit_and_unique_code(test_context):
    client, _ = test_context
    _create_indomie(client)

    unknown_unit_res = client.post(
        "/items",
        json={
            "name": "Sarimi",
            "code": "SRM",
            "variants": [{"code": "SRM-BOX", "unit": "BOX", "conversion_amount": 1}],
        },
    )
    assert unknown_unit_res.status_code == 400, unknown_unit_res.text
    assert unknown_unit_res.json()["error"]["code"] == "unknown_unit"

    duplicate_res = client.post(
        "/items",
        json={
            "name": "Indomie copy",
            "code": "idm-grg",
            "variants": [{"code": "X-PCS", "unit": "PCS", "conversion_amount": 1}],
        },
    )
    assert duplicate_res.status_code == 409, duplicate_res.text
    assert duplicate_res.json()["error"]["code"] == "duplicate_item_code"


def test_second_base_unit_variant_is_rejected_and_list_unchanged(test_context):
    client, _ = test_context
    item = _create_indomie(client)
    before = _variants(client, item["item_id"])

    res = client.post(
        f"/items/{item['item_id']}/variants",
        json={"code": "IDM-PCS-2", "unit": "PCS", "conversion_amount": 1, "sell_price": 3600},
    )
    assert res.status_code == 409, res.text
    assert res.json()["error"]["code"] == "duplicate_base_unit"
    assert _variants(client, item["item_id"]) == before


def test_updating_variant_to_base_unit_is_rejected_when_one_exists(test_context):
    client, _ = test_context
    item = _create_indomie(client)

    res = client.patch(
        f"/items/{item['item_id']}/variants/{item['dus_id']}",
        json={"conversion_amount": 1},
    )
    assert res.status_code == 409, res.text
    assert res.json()["error"]["code"] == "duplicate_base_unit"
    assert sum(1 for v in _variants(client, item["item_id"]) if v["is_base_unit"]) == 1


def test_variant_can_become_base_unit_after_old_base_is_removed(test_context):
    client, _ = test_context
    item = _create_indomie(client)

    remove_res = client.delete(f"/items/{item['item_id']}/variants/{item['pcs_id']}")
    assert remove_res.status_code == 204, remove_res.text

    update_res = client.patch(
        f"/items/{item['item_id']}/variants/{item['dus_id']}",
        json={"conversion_amount": 1, "code": "IDM-UNIT"},
    )
    assert update_res.status_code == 200, update_res.text
    assert update_res.json()["is_base_unit"] is True
    assert update_res.json()["recorded_profit_amount"] == 125200.0

    variants = _variants(client, item["item_id"])
    assert [v["code"] for v in variants] == ["IDM-UNIT"]


def test_duplicate_variant_code_within_item_is_rejected(test_context):
    client, _ = test_context
    item = _create_indomie(client)
    _create_unit(client, "PAK", "Pack")

    res = client.post(
        f"/items/{item['item_id']}/variants",
        json={"code": "idm-dus", "unit": "PAK", "conversion_amount": 5},
    )
    assert res.status_code == 409, res.text
    assert res.json()["error"]["code"] == "duplicate_variant_code"

    ok_res = client.post(
        f"/items/{item['item_id']}/variants",
        json={"code": "IDM-PAK", "unit": "pak", "conversion_amount": 5, "sell_price": 17000},
    )
    assert ok_res.status_code == 200, ok_res.text
    assert ok_res.json()["unit"] == "PAK"
    assert ok_res.json()["recorded_profit_amount"] == 3000.0


def test_last_variant_cannot_be_removed(test_context):
    client, _ = test_context
    _create_unit(client, "PCS", "Pieces")
    create_res = client.post(
        "/items",
        json={
            "name": "Teh Botol",
            "code": "TB-350",
            "variants": [{"code": "TB-PCS", "unit": "PCS", "conversion_amount": 1}],
        },
    )
    assert create_res.status_code == 200, create_res.text
    item_id = create_res.json()["id"]
    variant_id = create_res.json()["variants"][0]["id"]

    res = client.delete(f"/items/{item_id}/variants/{variant_id}")
    assert res.status_code == 409, res.text
    assert res.json()["error"]["code"] == "last_variant"


def test_variant_of_another_item_is_not_found(test_context):
    client, _ = test_context
    item = _create_indomie(client)
    other_res = client.post(
        "/items",
        json={
            "name": "Mie Sedaap",
            "code": "MSD",
            "variants": [{"code": "MSD-PCS", "unit": "PCS", "conversion_amount": 1}],
        },
    )
    assert other_res.status_code == 200, other_res.text

    res = client.patch(
        f"/items/{other_res.json()['id']}/variants/{item['dus_id']}",
        json={"sell_price": 1},
    )
    assert res.status_code == 400, res.text
    assert res.json()["error"]["code"] == "variant_not_in_item"


def test_buy_price_change_recomputes_profit(test_context):
    client, session_local = test_context
    item = _create_indomie(client)

    res = client.patch(
        f"/items/{item['item_id']}",
        json={"recorded_buy_price": 3000, "category_id": "cat-noodles"},
        headers={"X-Actor-Id": "clerk-7"},
    )
    assert res.status_code == 200, res.text
    body = res.json()
    assert body["category_id"] == "cat-noodles"
    variants = {variant["unit"]: variant for variant in body["variants"]}
    assert variants["PCS"]["recorded_profit_amount"] == 500.0
    assert variants["PCS"]["recorded_profit_percentage"] == 16.67
    assert variants["DUS"]["recorded_profit_amount"] == 8000.0

    clear_res = client.patch(f"/items/{item['item_id']}", json={"category_id": None})
    assert clear_res.status_code == 200, clear_res.text
    assert clear_res.json()["category_id"] is None

    db = session_local()
    try:
        actors = db.execute(
            select(AuditLog.actor_id).where(AuditLog.action == "item.update")
        ).scalars().all()
    finally:
        db.close()
    assert sorted(actors) == ["clerk-7", "system"]


def test_bulk_price_update(test_context):
    client, _ = test_context
    item = _create_indomie(client)

    res = client.patch(
        "/items/variants/bulk-price",
        json={"variant_ids": [item["pcs_id"], item["dus_id"], item["pcs_id"]], "sell_price": 4000},
    )
    assert res.status_code == 200, res.text
    assert res.json() == {"updated": 2}

    variants = {variant["unit"]: variant for variant in _variants(client, item["item_id"])}
    assert variants["PCS"]["sell_price"] == 4000.0
    assert variants["PCS"]["recorded_profit_percentage"] == 42.86
    assert variants["DUS"]["recorded_profit_amount"] == -108000.0

    missing_res = client.patch(
        "/items/variants/bulk-price",
        json={"variant_ids": [item["pcs_id"], "missing-variant"], "sell_price": 1},
    )
    assert missing_res.status_code == 400, missing_res.text
    assert missing_res.json()["error"]["details"] == [{"variant_id": "missing-variant"}]


def test_item_lookup_search_and_soft_delete(test_context):
    client, _ = test_context
    item = _create_indomie(client)

    by_code = client.get("/items/code/idm-grg")
    assert by_code.status_code == 200, by_code.text
    assert by_code.json()["id"] == item["item_id"]

    search = client.get("/items", params={"q": "goreng"})
    assert search.status_code == 200, search.text
    assert [row["id"] for row in search.json()["items"]] == [item["item_id"]]
    assert client.get("/items", params={"q": "sarimi"}).json()["pagination"]["total"] == 0

    delete_res = client.delete(f"/items/{item['item_id']}")
    assert delete_res.status_code == 204, delete_res.text

    missing = client.get(f"/items/{item['item_id']}")
    assert missing.status_code == 404
    assert missing.json()["error"]["code"] == "not_found"
    assert client.get("/items").json()["pagination"]["total"] == 0


def test_units_crud_and_in_use_rules(test_context):
    client, _ = test_context
    item = _create_indomie(client)

    duplicate = client.post("/units", json={"code": "pcs", "name": "Pieces again"})
    assert duplicate.status_code == 409, duplicate.text
    assert duplicate.json()["error"]["code"] == "duplicate_unit_code"

    rename = client.patch(f"/units/{item['pcs_unit_id']}", json={"name": "Piece"})
    assert rename.status_code == 200, rename.text
    assert rename.json()["name"] == "Piece"

    recode = client.patch(f"/units/{item['pcs_unit_id']}", json={"code": "PC"})
    assert recode.status_code == 409, recode.text
    assert recode.json()["error"]["code"] == "unit_in_use"

    delete_in_use = client.delete(f"/units/{item['dus_unit_id']}")
    assert delete_in_use.status_code == 409, delete_in_use.text
    assert delete_in_use.json()["error"]["code"] == "unit_in_use"

    box_id = _create_unit(client, "BOX", "Box")
    assert client.delete(f"/units/{box_id}").status_code == 204
    assert client.get(f"/units/{box_id}").status_code == 404
    _create_unit(client, "BOX", "Box")

    listed = client.get("/units", params={"q": "bo"})
    assert listed.status_code == 200, listed.text
    assert [row["code"] for row in listed.json()["items"]] == ["BOX"]


def test_conversion_amount_has_an_upper_bound(test_context):
    client, _ = test_context
    item = _create_indomie(client)
    _create_unit(client, "PAL", "Pallet")

    res = client.post(
        f"/items/{item['item_id']}/variants",
        json={"code": "IDM-PAL", "unit": "PAL", "conversion_amount": 10**12},
    )
    assert res.status_code == 422, res.text
    assert res.json()["error"]["details"][0]["field"] == "conversion_amount"

    update = client.patch(
        f"/items/{item['item_id']}/variants/{item['dus_id']}",
        json={"conversion_amount": 10**12},
    )
    assert update.status_code == 422, update.text
    assert [v["conversion_amount"] for v in _variants(client, item["item_id"]) if v["id"] == item["dus_id"]] == [40]
