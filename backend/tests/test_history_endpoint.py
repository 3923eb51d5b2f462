SHIPMENT = {
    "origin": {"postalCode": "60601"},
    "destination": {"postalCode": "30301"},
    "lines": [{"weight": 500}],
    "modes": ["LTL"],
}


def _search(client, auth, destination="30301", **claims):
    shipment = {**SHIPMENT, "destination": {"postalCode": destination}}
    res = client.post("/api/v1/rates", json=shipment, headers=auth(**claims))
    assert res.status_code == 200
    return res.json()["quoteId"]


def test_users_see_only_their_own_quotes(client, auth):
    mine = _search(client, auth, user_id="u1")
    _search(client, auth, user_id="u2")

    res = client.get("/api/v1/quotes", headers=auth(user_id="u1"))
    assert res.status_code == 200
    quotes = res.json()["quotes"]
    assert [q["id"] for q in quotes] == [mine]
    assert [r["totalCost"] for r in quotes[0]["rates"]] == [38.75, 45.99, 52.50]

    admin = client.get("/api/v1/quotes", headers=auth(user_id="boss", role="admin")).json()
    assert len(admin["quotes"]) == 2


def test_quotes_filtered_and_paged(client, auth):
    _search(client, auth, destination="30301")
    _search(client, auth, destination="10001")

    res = client.get("/api/v1/quotes", params={"destinationPostal": "10001"}, headers=auth())
    assert [q["destinationPostal"] for q in res.json()["quotes"]] == ["10001"]

    res = client.get("/api/v1/quotes", params={"carrier": "usps"}, headers=auth())
    assert len(res.json()["quotes"]) == 2

    res = client.get("/api/v1/quotes", params={"limit": 1, "offset": 1}, headers=auth())
    body = res.json()
    assert (body["limit"], body["offset"], len(body["quotes"])) == (1, 1, 1)

    assert client.get("/api/v1/quotes", params={"limit": 500}, headers=auth()).status_code == 400


def test_read_single_quote_is_client_scoped(client, auth):
    quote_id = _search(client, auth)
    res = client.get(f"/api/v1/quotes/{quote_id}", headers=auth())
    assert res.status_code == 200
    assert len(res.json()["rates"]) == 3

    other = client.get(f"/api/v1/quotes/{quote_id}", headers=auth(client_id="other"))
    assert other.status_code == 404
    assert other.json()["errorCode"] == "QUOTE_NOT_FOUND"


def test_quota_counters(client, auth):
    res = client.get("/api/v1/quota", headers=auth())
    assert res.json() == {"clientId": "acme", "rateTokensRemaining": 3, "rateTokensUsed": 0}
    _search(client, auth)
    res = client.get("/api/v1/quota", headers=auth())
    assert (res.json()["rateTokensRemaining"], res.json()["rateTokensUsed"]) == (2, 1)


def test_top_up_requires_admin(client, auth):
    body = {"clientId": "acme", "tokens": 5}
    assert client.post("/api/v1/quota/top-up", json=body, headers=auth()).status_code == 403
    res = client.post("/api/v1/quota/top-up", json=body, headers=auth(role="admin"))
    assert res.status_code == 200
    assert res.json()["rateTokensRemaining"] == 8
