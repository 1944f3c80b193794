"""Tests for the session lifecycle and its credit side effects."""
import pytest

from plateada_server.db import ledger
from plateada_server.db import sessions as lifecycle
from plateada_server.db.connection import atomic
from plateada_server.db.models import SessionCreate
from plateada_server.errors import (
    IllegalTransitionError,
    InsufficientCreditsError,
    InvalidStatusError,
    NotFoundError,
    PermissionDeniedError,
)
from tests.factories import new_client, new_expert, new_session


async def _ledger(user_id):
    return [(t.amount, t.transaction_type, t.session_id) for t in await ledger.get_transactions(user_id)]


async def test_request_charges_one_credit(database):
    client = await new_client()
    _, expert = await new_expert()

    session, remaining = await lifecycle.create_session(
        client, SessionCreate(expert_id=expert.id, requested_date="2030-05-01")
    )

    assert remaining == 2
    assert session.status == "pending"
    assert session.credits_cost == 1
    assert session.requested_duration == "1 hora"
    assert await _ledger(client.id) == [
        (3, "welcome", None),
        (-1, "session_charge", session.id),
    ]


async def test_reject_refunds_the_charge(database):
    client = await new_client()
    expert_user, expert = await new_expert()
    session = await new_session(client, expert)

    rejected = await lifecycle.reject_session(session.id, actor_id=expert_user.id)

    assert rejected.status == "rejected"
    assert await ledger.get_balance(client.id) == 3
    assert (await _ledger(client.id))[-1] == (1, "session_refund", session.id)
    assert await ledger.get_ledger_total(client.id) == 3


async def test_refund_uses_stored_cost(database):
    client = await new_client()
    _, expert = await new_expert()
    session = await new_session(client, expert, credits_cost=2)
    assert await ledger.get_balance(client.id) == 1

    # Price changes after the request do not affect the refund
    await new_session(client, expert, credits_cost=1)
    await lifecycle.reject_session(session.id)

    assert await ledger.get_balance(client.id) == 2
    assert (await _ledger(client.id))[-1] == (2, "session_refund", session.id)


async def test_insufficient_credits_leaves_no_session(database):
    client = await new_client(welcome_credits=0)
    _, expert = await new_expert()

    with pytest.raises(InsufficientCreditsError) as exc_info:
        await new_session(client, expert)

    assert exc_info.value.credits == 0
    assert await lifecycle.list_client_sessions(client.id) == []
    with atomic() as tx:
        assert tx.execute("SELECT COUNT(*) AS n FROM sessions")[0]["n"] == 0
    assert await _ledger(client.id) == []


async def test_unknown_expert(database):
    client = await new_client()

    with pytest.raises(NotFoundError):
        await lifecycle.create_session(client, SessionCreate(expert_id="nope", requested_date="mañana"))

    assert await ledger.get_balance(client.id) == 3


async def test_accept_then_complete(database):
    client = await new_client()
    expert_user, expert = await new_expert()
    session = await new_session(client, expert)

    accepted = await lifecycle.accept_session(session.id, actor_id=expert_user.id)
    assert accepted.status == "accepted"
    assert accepted.completed_at is None

    completed = await lifecycle.complete_session(session.id, actor_id=client.id)
    assert completed.status == "completed"
    assert completed.completed_at is not None
    assert await ledger.get_balance(client.id) == 2


async def test_dispute_changes_status_without_refund(database):
    """Dispute resolution is not decided yet: no credit moves."""
    client = await new_client()
    expert_user, expert = await new_expert()
    session = await new_session(client, expert)
    await lifecycle.accept_session(session.id, actor_id=expert_user.id)

    disputed = await lifecycle.dispute_session(session.id, actor_id=client.id)

    assert disputed.status == "disputed"
    assert await ledger.get_balance(client.id) == 2
    assert [entry[1] for entry in await _ledger(client.id)] == ["welcome", "session_charge"]


@pytest.mark.parametrize("path, target", [
    ([], "completed"),
    ([], "disputed"),
    (["accepted"], "accepted"),
    (["accepted"], "rejected"),
    (["rejected"], "accepted"),
    (["rejected"], "rejected"),
    (["accepted", "completed"], "disputed"),
    (["accepted", "completed"], "accepted"),
    (["accepted", "disputed"], "completed"),
])
async def test_illegal_transitions(database, path, target):
    client = await new_client()
    _, expert = await new_expert()
    session = await new_session(client, expert)
    for status in path:
        await lifecycle.transition_session(session.id, status)
    balance = await ledger.get_balance(client.id)

    with pytest.raises(IllegalTransitionError) as exc_info:
        await lifecycle.transition_session(session.id, target)

    current = path[-1] if path else "pending"
    assert exc_info.value.details == {"current_status": current, "requested_status": target}
    assert (await lifecycle.get_session(session.id)).status == current
    assert await ledger.get_balance(client.id) == balance


async def test_double_reject_refunds_once(database):
    client = await new_client()
    _, expert = await new_expert()
    session = await new_session(client, expert)

    await lifecycle.reject_session(session.id)
    with pytest.raises(IllegalTransitionError):
        await lifecycle.reject_session(session.id)

    assert await ledger.get_balance(client.id) == 3
    refunds = [e for e in await _ledger(client.id) if e[1] == "session_refund"]
    assert len(refunds) == 1


@pytest.mark.parametrize("target", ["pending", "expired", "cancelled", ""])
async def test_unrequestable_status(database, target):
    client = await new_client()
    _, expert = await new_expert()
    session = await new_session(client, expert)

    with pytest.raises(InvalidStatusError):
        await lifecycle.transition_session(session.id, target)


async def test_unknown_session(database):
    with pytest.raises(NotFoundError):
        await lifecycle.accept_session("missing")


async def test_outsider_cannot_transition(database):
    client = await new_client()
    outsider = await new_client(display_name="Otra Persona")
    _, expert = await new_expert()
    session = await new_session(client, expert)

    with pytest.raises(PermissionDeniedError):
        await lifecycle.reject_session(session.id, actor_id=outsider.id)

    assert (await lifecycle.get_session(session.id)).status == "pending"
    assert await ledger.get_balance(client.id) == 2


@pytest.mark.parametrize("target", ["accepted", "rejected"])
async def test_client_cannot_answer_own_request(database, target):
    client = await new_client()
    _, expert = await new_expert()
    session = await new_session(client, expert)

    with pytest.raises(PermissionDeniedError):
        await lifecycle.transition_session(session.id, target, actor_id=client.id)

    assert (await lifecycle.get_session(session.id)).status == "pending"
    assert await ledger.get_balance(client.id) == 2


async def test_expert_cannot_dispute(database):
    client = await new_client()
    expert_user, expert = await new_expert()
    session = await new_session(client, expert)
    await lifecycle.accept_session(session.id, actor_id=expert_user.id)

    with pytest.raises(PermissionDeniedError):
        await lifecycle.dispute_session(session.id, actor_id=expert_user.id)

    assert (await lifecycle.get_session(session.id)).status == "accepted"


async def test_either_side_can_complete(database):
    client = await new_client()
    expert_user, expert = await new_expert()
    first = await new_session(client, expert)
    second = await new_session(client, expert)
    for session in (first, second):
        await lifecycle.accept_session(session.id, actor_id=expert_user.id)

    assert (await lifecycle.complete_session(first.id, actor_id=client.id)).status == "completed"
    assert (await lifecycle.complete_session(second.id, actor_id=expert_user.id)).status == "completed"


async def test_listings_carry_names(database):
    client = await new_client(display_name="Ana López")
    expert_user, expert = await new_expert(name="Ernesto Ruiz")
    first = await new_session(client, expert, requested_date="2030-05-01")
    second = await new_session(client, expert, requested_date="2030-05-02")

    client_sessions = await lifecycle.list_client_sessions(client.id)
    assert [s.id for s in client_sessions] == [second.id, first.id]
    assert client_sessions[0].expert_name == "Ernesto Ruiz"
    assert client_sessions[0].expert_service == "Clases de guitarra"

    expert_sessions = await lifecycle.list_expert_sessions(expert_user.id)
    assert {s.id for s in expert_sessions} == {first.id, second.id}
    assert expert_sessions[0].client_name == "Ana López"
    assert await lifecycle.list_expert_sessions(client.id) == []
