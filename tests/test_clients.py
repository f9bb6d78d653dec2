def test_lookup_is_case_insensitive(admin_client, backend):
    backend.seed(
        "clients",
        {"id": "cl-1", "name": "Ravi Kumar", "client_id": "ABC123", "is_deleted": False},
        {"id": "cl-2", "name": "ravi kumar", "client_id": "XYZ789", "is_deleted": True},
    )
    response = admin_client.get("/clients/lookup", params={"name": "RAVI KUMAR"})
    assert response.status_code == 200
    assert response.json()["client_id"] == "ABC123"


def test_lookup_missing_client(admin_client, backend):
    response = admin_client.get("/clients/lookup", params={"name": "Nobody"})
    assert response.status_code == 404
    assert response.json()["detail"] == "Client not found"


def test_existing_buyer_is_reused_and_filled_in(admin_client, backend):
    backend.seed("clients", {"id": "cl-1", "name": "Ravi Kumar", "client_id": "ABC123", "is_deleted": False,
                             "phone": None, "state": "Goa"})
    response = admin_client.post("/clients/buyers", params={"name": "ravi kumar"},
                                 json={"contact_number": "9876500000", "state": "Kerala"})
    assert response.status_code == 200
    assert response.json()["data"] == {"id": "cl-1", "client_id": "ABC123"}

    client = backend.rows("clients")[0]
    assert client["phone"] == "9876500000"
    assert client["state"] == "Goa"
    assert not backend.called("insert", "clients")


def test_new_buyer_is_logged(admin_client, backend):
    response = admin_client.post("/clients/buyers", params={"name": "  Meera Shah "}, json={})
    assert response.status_code == 200

    client = backend.rows("clients")[0]
    assert client["name"] == "Meera Shah"
    assert client["is_buyer"] is True
    assert client["buyer_approval_status"] == "PENDING"
    log = backend.rows("system_action_logs")[0]
    assert log["action_type"] == "client.created"
    assert log["entity_id"] == client["id"]


def test_unique_violation_without_existing_row(admin_client, backend):
    backend.fail_next("insert", "clients", 'duplicate key value violates unique constraint "clients_client_id_key"',
                      code="23505")
    response = admin_client.post("/clients/buyers", params={"name": "Meera Shah"}, json={})
    assert response.status_code == 409
    assert response.json()["toast"]["title"] == "Already exists"


def test_clerk_cannot_create_clients(clerk_client, backend):
    response = clerk_client.post("/clients/buyers", params={"name": "Meera Shah"}, json={})
    assert response.status_code == 403


def test_wildcards_in_name_match_literally(admin_client, backend):
    backend.seed("clients", {"id": "cl-1", "name": "RaviXK", "client_id": "ABC123", "is_deleted": False})

    response = admin_client.get("/clients/lookup", params={"name": "Ravi_K"})
    assert response.status_code == 404
    response = admin_client.get("/clients/lookup", params={"name": "%"})
    assert response.status_code == 404

    response = admin_client.post("/clients/buyers", params={"name": "Ravi_K"}, json={})
    assert response.status_code == 200
    assert response.json()["data"]["id"] != "cl-1"
    assert backend.called("insert", "clients")
    assert [c["name"] for c in backend.rows("clients")] == ["RaviXK", "Ravi_K"]
