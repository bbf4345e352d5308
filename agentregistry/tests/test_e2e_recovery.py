"""End to end: the SDK ledger survives a restart and a later resume confirms on the server."""

import httpx

from agentregistry.main import app
from agentregistry.tests.fakes import CHAIN_ID, mint_log, receipt, registered_log, tx
from agentregistry_sdk import (
    AgentRegistryClient,
    ConfirmationStatus,
    OperationType,
    PendingLedger,
    PendingOperationRunner,
)


def _sdk_client(token: str | None) -> AgentRegistryClient:
    return AgentRegistryClient(
        base_url="http://test", token=token, transport=httpx.ASGITransport(app=app)
    )


async def test_publish_recovers_after_restart(client, tmp_path, make_network, make_agent, chain):
    """``client`` is requested for its dependency overrides."""
    await make_network()
    agent, token = await make_agent()
    ledger_path = tmp_path / "pending.json"

    # Session 1: the node has no receipt yet, server answers 503, record is kept.
    async with _sdk_client(token) as sdk:
        runner = PendingOperationRunner(sdk, PendingLedger(ledger_path))
        task = await runner.submit(OperationType.PUBLISH, tx(1), CHAIN_ID, agent.id)
        result = await task

    assert result.status == ConfirmationStatus.ERROR
    assert result.cleared is False
    assert runner.status(OperationType.PUBLISH).status == ConfirmationStatus.ERROR

    # Restart: fresh ledger object over the same file, the transaction is now mined.
    chain.script(tx(1), receipt(tx(1), logs=[registered_log(42)]))
    ledger = PendingLedger(ledger_path)
    assert ledger.get_pending(OperationType.PUBLISH).tx_hash == tx(1)

    async with _sdk_client(token) as sdk:
        results = await PendingOperationRunner(sdk, ledger).resume_all()

    [resumed] = results
    assert resumed.status == ConfirmationStatus.SUCCESS
    assert resumed.result["result_id"] == "42"
    assert ledger.get_pending(OperationType.PUBLISH) is None

    async with _sdk_client(token) as sdk:
        confirmations = await sdk.get_confirmations(agent.id)
    assert confirmations["confirmations"][0]["state"] == "confirmed"


async def test_conflicting_pending_record_is_dropped(client, tmp_path, make_network, make_agent, chain):
    await make_network()
    agent, token = await make_agent()
    chain.script(tx(1), receipt(tx(1), logs=[mint_log(42)]))

    async with _sdk_client(token) as sdk:
        await sdk.confirm_publish(agent.id, tx(1), CHAIN_ID)

        ledger = PendingLedger(tmp_path / "pending.json")
        ledger.set_pending(OperationType.PUBLISH, tx(2), CHAIN_ID, agent.id)
        [result] = await PendingOperationRunner(sdk, ledger).resume_all()

    assert result.status == ConfirmationStatus.ERROR
    assert result.cleared is True
    assert ledger.get_all_pending() == []


async def test_review_resumes_without_session(client, tmp_path, make_network, make_agent, make_review, chain):
    await make_network()
    agent, _ = await make_agent()
    review = await make_review(agent.id)
    chain.script(tx(3), receipt(tx(3)))

    ledger = PendingLedger(tmp_path / "pending.json")
    ledger.set_pending(OperationType.REVIEW, tx(3), CHAIN_ID, review.id)
    ledger.set_pending(OperationType.PUBLISH, tx(4), CHAIN_ID, agent.id)

    async with _sdk_client(None) as sdk:
        results = await PendingOperationRunner(sdk, ledger).resume_all()

    by_op = {r.operation: r for r in results}
    assert by_op[OperationType.REVIEW].status == ConfirmationStatus.SUCCESS
    assert by_op[OperationType.PUBLISH].status == ConfirmationStatus.IDLE
    # Publish needs a session; it stays for the next resume.
    assert [r.operation for r in ledger.get_all_pending()] == [OperationType.PUBLISH]
