import uuid


async def test_create_business_invalid_webhook_url(client):
    r = await client.post("/businesses/", json={"name": "Acme", "webhook_url": "not-a-valid-url"})
    assert r.status_code == 422
    assert "valid url" in r.json()["detail"][0]["msg"].lower()


async def test_get_business_invalid_uuid(client):
    r = await client.get("/businesses/not-a-uuid")
    assert r.status_code == 422
    assert "valid uuid" in r.json()["detail"][0]["msg"].lower()


async def test_get_business_not_found(client):
    r = await client.get(f"/businesses/{uuid.uuid4()}")
    assert r.status_code == 404
    assert "Business not found" in r.json()["detail"]


async def test_webhook_settings_not_found(client):
    missing = uuid.uuid4()
    r = await client.get(f"/businesses/{missing}/webhook")
    assert r.status_code == 404

    r = await client.put(f"/businesses/{missing}/webhook", json={"webhook_url": "https://x.test/"})
    assert r.status_code == 404


async def test_put_webhook_requires_url(client):
    r = await client.post("/businesses/", json={"name": "Acme"})
    biz_id = r.json()["id"]

    r = await client.put(f"/businesses/{biz_id}/webhook", json={"webhook_url": "ftp://nope"})
    assert r.status_code == 422

    r = await client.put(f"/businesses/{biz_id}/webhook", json={})
    assert r.status_code == 422


async def test_test_webhook_not_configured(client, mock_http):
    r = await client.post("/businesses/", json={"name": "Acme"})
    biz_id = r.json()["id"]

    r = await client.post(f"/businesses/{biz_id}/webhook/test")
    assert r.status_code == 400
    assert r.json()["detail"] == "Webhook not configured"
    mock_http.post.assert_not_called()


async def test_ingest_unknown_business(client):
    r = await client.post(
        "/responses",
        json={"business_id": str(uuid.uuid4()), "survey_id": "s", "subject_id": "u", "score": 5},
    )
    assert r.status_code == 404


async def test_ingest_score_out_of_range(client):
    r = await client.post("/businesses/", json={"name": "Acme", "webhook_url": "https://x.test/"})
    biz_id = r.json()["id"]

    for score in (-1, 11):
        r = await client.post(
            "/responses",
            json={"business_id": biz_id, "survey_id": "s", "subject_id": "u", "score": score},
        )
        assert r.status_code == 422


async def test_delivery_not_found(client):
    r = await client.get(f"/deliveries/{uuid.uuid4()}")
    assert r.status_code == 404
    assert "Delivery not found" in r.json()["detail"]


async def test_deliveries_limit_bounds(client):
    r = await client.post("/businesses/", json={"name": "Acme"})
    biz_id = r.json()["id"]

    r = await client.get(f"/businesses/{biz_id}/webhook/deliveries?limit=0")
    assert r.status_code == 422
    r = await client.get(f"/businesses/{biz_id}/webhook/deliveries?limit=101")
    assert r.status_code == 422
