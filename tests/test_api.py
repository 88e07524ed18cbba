from kitpack_service.app.crud.barcodes import barcodes_crud

HEADERS = {"X-User-Id": "7"}


def create(client, url, payload):
    response = client.post(url, json=payload, headers=HEADERS)
    assert response.status_code == 200, response.text
    return response.json()["data"]


def generate(client, object_id, quantity=1, object_type="COMPONENT"):
    data = create(client, "/api/barcodes/generate",
                  {"object_type": object_type, "object_id": object_id, "quantity": quantity})
    return [item["value"] for item in data]


def catalog(client):
    ids = {}
    for name in ("Motor", "Casing", "Assembly", "Bracket"):
        ids[name] = create(client, "/api/categories/", {"name": name})["id"]
    for name in ("Motor", "Casing", "Assembly", "Bracket"):
        ids[name + " part"] = create(client, "/api/components/",
                                     {"name": name, "category_id": ids[name]})["id"]
    return ids


def k1_kit(client, ids):
    return create(client, "/api/kits/", {
        "name": "K1",
        "components": [
            {"category_id": ids["Motor"], "component_id": ids["Motor part"]},
            {"category_id": ids["Casing"], "component_id": ids["Casing part"]},
        ],
    })


def assembly_kit(client, ids):
    return create(client, "/api/kits/", {
        "name": "Assembly kit",
        "components": [{
            "category_id": ids["Assembly"],
            "component_id": ids["Assembly part"],
            "children": [{"category_id": ids["Bracket"], "required_quantity": 2}],
        }],
    })


def test_health(client):
    assert client.get("/api/health").json() == {"status": "ok"}


def test_kit_structure_is_returned_nested_and_flat(client):
    ids = catalog(client)
    kit = assembly_kit(client, ids)

    detail = client.get(f"/api/kits/{kit['id']}").json()["data"]

    assert detail["component_count"] == 2
    assert detail["components"][0]["children"][0]["category_name"] == "Bracket"
    assert [row["level"] for row in detail["flattened"]] == [1, 2]
    assert client.get("/api/kits/").json()["data"]["total"] == 1


def test_duplicate_category_is_rejected(client):
    create(client, "/api/categories/", {"name": "Motor"})

    response = client.post("/api/categories/", json={"name": "motor"})

    assert response.status_code == 400
    body = response.json()
    assert body["status"] == "Failure"
    assert body["status_code"] == "205"


def test_kit_with_two_components_of_one_category_at_a_level_is_rejected(client):
    ids = catalog(client)

    response = client.post("/api/kits/", json={
        "name": "Broken",
        "components": [{"category_id": ids["Motor"]}, {"category_id": ids["Motor"]}],
    })

    assert response.status_code == 400
    assert response.json()["status_code"] == "603"
    assert client.get("/api/kits/").json()["data"]["total"] == 0


def test_box_packing_flow(client):
    ids = catalog(client)
    kit = k1_kit(client, ids)
    (box,) = generate(client, kit["id"], object_type="BOX")
    (motor,) = generate(client, ids["Motor part"])
    (casing,) = generate(client, ids["Casing part"])

    started = create(client, "/api/boxes/start", {"box_barcode": box, "kit_id": kit["id"]})
    assert started["status"] == "OPEN"
    assert started["total_required"] == 2

    scanned = create(client, "/api/boxes/scan", {"box_barcode": box, "barcode": motor})
    assert scanned["scan"]["requirement_name"] == "Motor"
    assert scanned["session"]["total_scanned"] == 1

    incomplete = client.post("/api/boxes/complete", json={"box_barcode": box})
    assert incomplete.status_code == 409
    assert incomplete.json()["status_code"] == "402"
    assert incomplete.json()["data"][0]["label"] == "Casing (1 more)"

    create(client, "/api/boxes/scan", {"box_barcode": box, "barcode": casing})
    done = create(client, "/api/boxes/complete", {"box_barcode": box})
    assert done["status"] == "COMPLETE"

    boxed = client.get("/api/barcodes/", params={"status": "BOXED"}).json()["data"]
    assert boxed["total"] == 3
    contents = client.get("/api/barcodes/", params={"box_barcode": box}).json()["data"]
    assert sorted(item["value"] for item in contents["barcodes"]) == sorted([motor, casing])

    closed = client.post("/api/boxes/remove-item", json={"box_barcode": box, "barcode": motor})
    assert closed.status_code == 409
    assert closed.json()["status_code"] == "501"


def test_scan_errors_use_the_envelope(client):
    ids = catalog(client)
    kit = k1_kit(client, ids)
    (box,) = generate(client, kit["id"], object_type="BOX")
    create(client, "/api/boxes/start", {"box_barcode": box})

    unknown = client.post("/api/boxes/scan", json={"box_barcode": box, "barcode": "NOPE"})
    wrong_type = client.post("/api/boxes/scan", json={"box_barcode": box, "barcode": box})
    invalid = client.post("/api/boxes/scan", json={"box_barcode": box})

    assert unknown.status_code == 404
    assert unknown.json()["status"] == "Failure"
    assert unknown.json()["status_code"] == "300"
    assert wrong_type.json()["status_code"] == "304"
    assert invalid.status_code == 422
    assert invalid.json()["status_code"] == "201"


def test_remove_item_and_history(client):
    ids = catalog(client)
    kit = k1_kit(client, ids)
    (box,) = generate(client, kit["id"], object_type="BOX")
    (motor,) = generate(client, ids["Motor part"])
    create(client, "/api/boxes/start", {"box_barcode": box})
    create(client, "/api/boxes/scan", {"box_barcode": box, "barcode": motor})

    removed = create(client, "/api/boxes/remove-item", {"box_barcode": box, "barcode": motor})
    status = client.get("/api/boxes/status", params={"box_barcode": box}).json()["data"]

    assert removed["status"] == "CREATED"
    assert status["scanned_barcodes"] == []

    history = client.get("/api/history/", params={"barcode": motor}).json()["data"]
    actions = {item["action"] for item in history["history"]}
    assert actions == {"GENERATE", "SCAN", "PACK", "UNSCAN", "UNPACK"}
    scan_row = next(item for item in history["history"] if item["action"] == "SCAN")
    assert scan_row["action_by"] == 7

    stats = client.get("/api/history/statistics").json()["data"]
    by_action = {item["key"]: item["count"] for item in stats["by_action"]}
    assert by_action["GENERATE"] == 2
    assert by_action["SCAN"] == 2


def test_kit_is_locked_while_a_box_is_open(client):
    ids = catalog(client)
    kit = k1_kit(client, ids)
    (box,) = generate(client, kit["id"], object_type="BOX")
    create(client, "/api/boxes/start", {"box_barcode": box})

    response = client.post("/api/kits/components",
                           json={"kit_id": kit["id"], "category_id": ids["Bracket"]})

    assert response.status_code == 409
    assert response.json()["status_code"] == "602"
    assert response.json()["data"] == {"boxes": [box]}
    assert client.get(f"/api/kits/{kit['id']}").json()["data"]["locked"] is True


def test_box_of_another_kit_is_rejected(client):
    ids = catalog(client)
    kit = k1_kit(client, ids)
    other = assembly_kit(client, ids)
    (box,) = generate(client, kit["id"], object_type="BOX")

    response = client.post("/api/boxes/start", json={"box_barcode": box, "kit_id": other["id"]})

    assert response.status_code == 400
    assert response.json()["status_code"] == "601"


def test_scan_batch_flow(client):
    ids = catalog(client)
    assembly_kit(client, ids)
    (assembly,) = generate(client, ids["Assembly part"])
    first, second = generate(client, ids["Bracket part"], quantity=2)

    preview = client.post("/api/barcodes/preview-scan", json={"barcode": assembly}).json()["data"]
    assert preview["requires_sub_components"] is True
    assert preview["allowed_events"] == ["SCAN"]

    batch = create(client, "/api/scans/batches", {})
    batch_id = batch["session_id"]
    many = create(client, f"/api/scans/batches/{batch_id}/scan-many",
                  {"barcodes": [assembly, first, "NOPE"]})
    assert many["accepted"] == 2
    assert many["rejected"] == 1
    assert many["results"][1]["outcome"]["parent_barcode"] == assembly

    incomplete = client.post(f"/api/scans/batches/{batch_id}/submit")
    assert incomplete.status_code == 409
    assert "Bracket (1 more)" in incomplete.json()["message"]

    create(client, f"/api/scans/batches/{batch_id}/scan", {"barcode": second})
    submitted = create(client, f"/api/scans/batches/{batch_id}/submit", {})
    assert submitted["status"] == "COMPLETE"

    loose = client.get("/api/barcodes/scanned-not-boxed").json()["data"]
    assert loose["total"] == 3

    unscanned = create(client, "/api/barcodes/unscan", {"barcode": second})
    assert unscanned["status"] == "CREATED"
    parent = client.post("/api/barcodes/unscan", json={"barcode": assembly})
    assert parent.status_code == 409
    assert parent.json()["status_code"] == "305"


def test_generate_retries_when_sequence_numbers_are_taken(client, monkeypatch):
    ids = catalog(client)
    (first,) = generate(client, ids["Motor part"])
    real = barcodes_crud._next_sequence
    calls = []

    def stale_then_real(db, prefix):
        calls.append(prefix)
        return 1 if len(calls) == 1 else real(db, prefix)

    monkeypatch.setattr(barcodes_crud, "_next_sequence", stale_then_real)
    (second,) = generate(client, ids["Motor part"])

    assert len(calls) == 2
    assert second != first
    assert second.startswith(calls[0])


def test_generate_conflict_is_retryable(client, monkeypatch):
    ids = catalog(client)
    generate(client, ids["Motor part"])
    monkeypatch.setattr(barcodes_crud, "_next_sequence", lambda db, prefix: 1)

    response = client.post("/api/barcodes/generate", headers=HEADERS,
                           json={"object_type": "COMPONENT", "object_id": ids["Motor part"]})

    assert response.status_code == 409
    assert response.json()["status_code"] == "502"
    assert response.headers["Retry-After"] == "1"
    listed = client.get("/api/barcodes/", params={"object_id": ids["Motor part"]}).json()["data"]
    assert listed["total"] == 1
