import directory
from conftest import barber_payload
from security import verify_password


def test_register_returns_profile_without_credential(client, database):
    res = client.post("/create-account", json=barber_payload())
    assert res.status_code == 200
    body = res.json()
    assert body["firstName"] == "John"
    assert body["lastName"] == "Smith"
    assert body["email"] == "j@x.com"
    assert body["shopName"] == "Sharp Cuts"
    assert body["specialties"] == ["fade", "beard"]
    assert body["id"]
    assert "password" not in body
    assert "passwordHash" not in body

    stored = database["barber"].find_one({"email": "j@x.com"})
    assert stored["password_hash"] != "pw123"
    assert verify_password("pw123", stored["password_hash"])


def test_register_duplicate_email_is_rejected(client, database):
    assert client.post("/create-account", json=barber_payload()).status_code == 200

    res = client.post("/create-account", json=barber_payload(firstName="Johnny"))
    assert res.status_code == 400
    assert res.json() == {"error": "A barber with this email already exists"}
    assert database["barber"].count_documents({"email": "j@x.com"}) == 1


def test_register_requires_every_field(client, database):
    payload = barber_payload()
    del payload["shopName"]
    res = client.post("/create-account", json=payload)
    assert res.status_code == 400
    assert "shopName" in res.json()["error"]

    res = client.post("/create-account", json=barber_payload(address=""))
    assert res.status_code == 400
    assert database["barber"].count_documents({}) == 0


def test_login_by_email_returns_sanitized_profile(client):
    client.post("/create-account", json=barber_payload())

    res = client.post("/barber-login", json={"identifier": "j@x.com", "credential": "pw123"})
    assert res.status_code == 200
    body = res.json()
    assert body["firstName"] == "John"
    assert body["lastName"] == "Smith"
    assert body["email"] == "j@x.com"
    assert body["shopName"] == "Sharp Cuts"
    assert body["accessToken"]
    assert body["tokenType"] == "bearer"
    assert "password" not in body
    assert "phone" not in body


def test_login_by_first_or_last_name(client):
    client.post("/create-account", json=barber_payload())

    for identifier in ("John", "Smith"):
        res = client.post("/barber-login", json={"identifier": identifier, "credential": "pw123"})
        assert res.status_code == 200
        assert res.json()["email"] == "j@x.com"


def test_login_accepts_legacy_field_names(client):
    client.post("/create-account", json=barber_payload())

    res = client.post("/barber-login", json={"barbername": "j@x.com", "password": "pw123"})
    assert res.status_code == 200


def test_login_wrong_credential(client):
    client.post("/create-account", json=barber_payload())

    res = client.post("/barber-login", json={"identifier": "j@x.com", "credential": "nope"})
    assert res.status_code == 401
    assert res.json() == {"error": "Invalid username or password"}


def test_login_unknown_identifier(client):
    res = client.post("/barber-login", json={"identifier": "ghost@x.com", "credential": "pw123"})
    assert res.status_code == 401
    assert res.json() == {"error": "Invalid username or password"}


def test_list_barbers_derives_display_fields(client):
    client.post("/create-account", json=barber_payload())
    client.post(
        "/create-account",
        json=barber_payload(firstName="Ana", lastName="Lopez", email="ana@x.com", experience="Senior", specialties=[]),
    )

    res = client.get("/barbers")
    assert res.status_code == 200
    barbers = {b["name"]: b for b in res.json()}
    assert set(barbers) == {"John Smith", "Ana Lopez"}

    john = barbers["John Smith"]
    assert john["role"] == "3-5 yrs"
    assert john["experience"] == "3-5 yrs of experience"
    assert john["image"] == "https://placehold.co/300x300/e2e8f0/475569?text=John"
    assert john["specialties"] == ["fade", "beard"]
    assert "password" not in john and "passwordHash" not in john

    ana = barbers["Ana Lopez"]
    assert ana["role"] == "Senior Experience"
    assert ana["specialties"] == []


def test_get_barber(client):
    barber_id = client.post("/create-account", json=barber_payload()).json()["id"]

    res = client.get(f"/barbers/{barber_id}")
    assert res.status_code == 200
    assert res.json()["name"] == "John Smith"

    assert client.get("/barbers/not-an-id").status_code == 404
    assert client.get("/barbers/0123456789abcdef01234567").json() == {"error": "Barber not found"}


def test_register_race_on_same_email_is_a_conflict(client, database, monkeypatch):
    assert client.post("/create-account", json=barber_payload()).status_code == 200
    # Simulate a concurrent request that passed the existence check first
    monkeypatch.setattr(directory, "_find_by_email", lambda database, email: None)

    res = client.post("/create-account", json=barber_payload(firstName="Johnny"))
    assert res.status_code == 400
    assert res.json() == {"error": "A barber with this email already exists"}
    assert database["barber"].count_documents({"email": "j@x.com"}) == 1


def test_login_with_email_as_registered(client):
    client.post("/create-account", json=barber_payload(email="John@X.COM"))

    res = client.post("/barber-login", json={"identifier": "John@X.COM", "credential": "pw123"})
    assert res.status_code == 200
    assert res.json()["email"] == "John@x.com"

    res = client.post("/barber-login", json={"identifier": "John@x.com", "credential": "pw123"})
    assert res.status_code == 200


def test_resolve_display_name(client, database):
    first = client.post("/create-account", json=barber_payload()).json()
    second = client.post(
        "/create-account",
        json=barber_payload(firstName="Mary Ann", lastName="de la Cruz", email="mary@x.com"),
    ).json()

    assert directory.resolve_display_name(database, "John Smith") == first["id"]
    assert directory.resolve_display_name(database, "Mary Ann de la Cruz") == second["id"]
    assert directory.resolve_display_name(database, "John  Smith") is None
    assert directory.resolve_display_name(database, "John") is None
    assert directory.resolve_display_name(database, "Nobody Here") is None


def test_resolve_display_name_ambiguous(client, database):
    client.post("/create-account", json=barber_payload())
    client.post("/create-account", json=barber_payload(email="other@x.com"))

    assert directory.resolve_display_name(database, "John Smith") is None
