"""HTTP-level tests for the publish, reviews and confirmation endpoints."""

from agentregistry.tests.fakes import CHAIN_ID, mint_log, receipt, tx

SIGNER = "0x" + "5e" * 20


async def _publish(client, auth_header, agent, token, chain, tx_hash=None, token_id=42):
    tx_hash = tx_hash or tx(1)
    chain.script(tx_hash, receipt(tx_hash, logs=[mint_log(token_id)]))
    resp = await client.post(
        f"/api/v1/agents/{agent.id}/publish/confirm",
        json={"tx_hash": tx_hash, "chain_id": CHAIN_ID},
        headers=auth_header(token),
    )
    assert resp.status_code == 200, resp.text
    return resp.json()


# ---------------------------------------------------------------------------
# Publish prepare / agent card
# ---------------------------------------------------------------------------

async def test_prepare_publish_returns_token_uri(client, auth_header, make_agent):
    agent, token = await make_agent()

    resp = await client.post(f"/api/v1/agents/{agent.id}/publish", headers=auth_header(token))

    assert resp.status_code == 200
    data = resp.json()
    assert data["token_uri"].endswith(f"/api/v1/agents/{agent.id}/agentcard.json")
    assert data["agent_card"]["name"] == agent.name
    assert all(data["checks"].values())

    card = await client.get(f"/api/v1/agents/{agent.id}/agentcard.json")
    assert card.status_code == 200
    assert card.json()["endpoints"][0]["endpoint"] == agent.endpoint_url


async def test_prepare_publish_requires_endpoint(client, auth_header, make_agent):
    agent, token = await make_agent(endpoint_url=None)

    resp = await client.post(f"/api/v1/agents/{agent.id}/publish", headers=auth_header(token))

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "MISSING_ENDPOINT"


async def test_prepare_publish_requires_price(client, auth_header, make_agent):
    agent, token = await make_agent(price_per_call=0)
    resp = await client.post(f"/api/v1/agents/{agent.id}/publish", headers=auth_header(token))
    assert resp.json()["detail"]["code"] == "MISSING_PRICE"


async def test_prepare_publish_rejects_published_agent(
    client, auth_header, make_network, make_agent, chain
):
    await make_network()
    agent, token = await make_agent()
    await _publish(client, auth_header, agent, token, chain)

    resp = await client.post(f"/api/v1/agents/{agent.id}/publish", headers=auth_header(token))
    assert resp.json()["detail"]["code"] == "ALREADY_PUBLISHED"


async def test_prepare_publish_requires_auth(client, make_agent):
    agent, _ = await make_agent()
    resp = await client.post(f"/api/v1/agents/{agent.id}/publish")
    assert resp.status_code == 401


async def test_other_owners_agent_is_not_found(client, auth_header, make_agent):
    agent, _ = await make_agent()
    _, stranger_token = await make_agent()
    resp = await client.post(f"/api/v1/agents/{agent.id}/publish", headers=auth_header(stranger_token))
    assert resp.status_code == 404


async def test_agent_card_missing_before_prepare(client, make_agent):
    agent, _ = await make_agent()
    resp = await client.get(f"/api/v1/agents/{agent.id}/agentcard.json")
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Publish confirm
# ---------------------------------------------------------------------------

async def test_publish_confirm_success_then_idempotent(client, auth_header, make_network, make_agent, chain):
    await make_network()
    agent, token = await make_agent()

    first = await _publish(client, auth_header, agent, token, chain)
    assert first["status"] == "success"
    assert first["result_id"] == "42"
    assert first["operation"] == "publish"
    assert first["explorer_url"] == f"https://sepolia.basescan.org/tx/{tx(1)}"

    again = await client.post(
        f"/api/v1/agents/{agent.id}/publish/confirm",
        json={"tx_hash": tx(1), "chain_id": CHAIN_ID},
        headers=auth_header(token),
    )
    assert again.status_code == 200
    assert again.json()["status"] == "idempotent"
    assert again.json()["result_id"] == "42"


async def test_publish_confirm_conflict(client, auth_header, make_network, make_agent, chain):
    await make_network()
    agent, token = await make_agent()
    await _publish(client, auth_header, agent, token, chain)

    resp = await client.post(
        f"/api/v1/agents/{agent.id}/publish/confirm",
        json={"tx_hash": tx(2), "chain_id": CHAIN_ID},
        headers=auth_header(token),
    )

    assert resp.status_code == 409
    assert resp.json()["detail"]["kind"] == "conflict"


async def test_publish_confirm_unavailable_is_503(client, auth_header, make_network, make_agent):
    await make_network()
    agent, token = await make_agent()

    resp = await client.post(
        f"/api/v1/agents/{agent.id}/publish/confirm",
        json={"tx_hash": tx(9), "chain_id": CHAIN_ID},
        headers=auth_header(token),
    )

    assert resp.status_code == 503
    assert resp.json()["detail"]["kind"] == "service_unavailable"


async def test_publish_confirm_reverted_is_400(client, auth_header, make_network, make_agent, chain):
    await make_network()
    agent, token = await make_agent()
    chain.script(tx(1), receipt(tx(1), succeeded=False))

    resp = await client.post(
        f"/api/v1/agents/{agent.id}/publish/confirm",
        json={"tx_hash": tx(1), "chain_id": CHAIN_ID},
        headers=auth_header(token),
    )

    assert resp.status_code == 400
    assert resp.json()["detail"]["kind"] == "chain_rejected"


async def test_publish_confirm_rejects_malformed_hash(client, auth_header, make_network, make_agent):
    await make_network()
    agent, token = await make_agent()
    resp = await client.post(
        f"/api/v1/agents/{agent.id}/publish/confirm",
        json={"tx_hash": "0x1234", "chain_id": CHAIN_ID},
        headers=auth_header(token),
    )
    assert resp.status_code == 422


async def test_publish_confirm_rejects_zero_token_id(client, auth_header, make_network, make_agent, chain):
    await make_network()
    agent, token = await make_agent()
    chain.script(tx(1), receipt(tx(1), logs=[]))

    for token_id in ("0", "007"):
        resp = await client.post(
            f"/api/v1/agents/{agent.id}/publish/confirm",
            json={"tx_hash": tx(1), "chain_id": CHAIN_ID, "token_id": token_id},
            headers=auth_header(token),
        )
        assert resp.status_code == 422, token_id

    assert chain.receipt_calls == []
    listed = await client.get(f"/api/v1/agents/{agent.id}/confirmations", headers=auth_header(token))
    assert all(c["state"] == "unconfirmed" for c in listed.json()["confirmations"])


async def test_publish_confirm_unsupported_chain(client, auth_header, make_network, make_agent):
    await make_network()
    agent, token = await make_agent()
    resp = await client.post(
        f"/api/v1/agents/{agent.id}/publish/confirm",
        json={"tx_hash": tx(1), "chain_id": 1},
        headers=auth_header(token),
    )
    assert resp.status_code == 400
    assert resp.json()["detail"]["kind"] == "unsupported_chain"


# ---------------------------------------------------------------------------
# Reviews
# ---------------------------------------------------------------------------

async def test_reviews_prepare_requires_published_agent(client, auth_header, make_network, make_agent):
    await make_network()
    agent, token = await make_agent()

    resp = await client.post(
        f"/api/v1/agents/{agent.id}/reviews/prepare",
        json={"signer_address": SIGNER},
        headers=auth_header(token),
    )

    assert resp.status_code == 400
    assert resp.json()["detail"]["code"] == "NOT_PUBLISHED"


async def test_enable_reviews_flow(client, auth_header, make_network, make_agent, chain):
    await make_network()
    agent, token = await make_agent()
    await _publish(client, auth_header, agent, token, chain)

    not_prepared = await client.post(
        f"/api/v1/agents/{agent.id}/reviews/confirm",
        json={"tx_hash": tx(2), "chain_id": CHAIN_ID},
        headers=auth_header(token),
    )
    assert not_prepared.json()["detail"]["code"] == "REVIEWS_NOT_PREPARED"

    prepared = await client.post(
        f"/api/v1/agents/{agent.id}/reviews/prepare",
        json={"signer_address": SIGNER},
        headers=auth_header(token),
    )
    assert prepared.status_code == 200
    assert prepared.json()["token_id"] == "42"
    assert prepared.json()["chain_id"] == CHAIN_ID

    chain.script(tx(2), receipt(tx(2)))
    resp = await client.post(
        f"/api/v1/agents/{agent.id}/reviews/confirm",
        json={"tx_hash": tx(2), "chain_id": CHAIN_ID},
        headers=auth_header(token),
    )
    assert resp.status_code == 200
    assert resp.json()["status"] == "success"
    assert resp.json()["operation"] == "enable_reviews"
    assert resp.json()["result_id"] is None


async def test_review_confirm_needs_no_session(client, make_network, make_agent, make_review, chain):
    await make_network()
    agent, _ = await make_agent()
    review = await make_review(agent.id)
    chain.script(tx(3), receipt(tx(3)))

    resp = await client.patch(
        f"/api/v1/reviews/{review.id}/confirm", json={"tx_hash": tx(3), "chain_id": CHAIN_ID}
    )

    assert resp.status_code == 200
    assert resp.json()["operation"] == "review"
    assert resp.json()["entity_id"] == review.id


async def test_review_confirm_unknown_review(client, make_network):
    await make_network()
    resp = await client.patch(
        "/api/v1/reviews/does-not-exist/confirm", json={"tx_hash": tx(3), "chain_id": CHAIN_ID}
    )
    assert resp.status_code == 404


# ---------------------------------------------------------------------------
# Status, networks, health
# ---------------------------------------------------------------------------

async def test_confirmations_list(client, auth_header, make_network, make_agent, chain):
    await make_network()
    agent, token = await make_agent()
    await _publish(client, auth_header, agent, token, chain)

    resp = await client.get(f"/api/v1/agents/{agent.id}/confirmations", headers=auth_header(token))

    assert resp.status_code == 200
    [publish] = resp.json()["confirmations"]
    assert publish["operation"] == "publish"
    assert publish["state"] == "confirmed"
    assert publish["result_id"] == "42"
    assert publish["explorer_url"].endswith(tx(1))


async def test_networks_list_and_refresh(client, auth_header, make_network, make_agent, service):
    await make_network()
    _, token = await make_agent()

    resp = await client.get("/api/v1/networks")
    assert [n["chain_id"] for n in resp.json()["networks"]] == [CHAIN_ID]
    assert service.networks.loaded

    refresh = await client.post("/api/v1/networks/refresh", headers=auth_header(token))
    assert refresh.status_code == 200
    assert not service.networks.loaded


async def test_health(client):
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    assert resp.json()["status"] == "healthy"

    ready = await client.get("/api/v1/health/ready")
    assert ready.json()["status"] == "ready"
