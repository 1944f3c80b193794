"""Tests for ratings and the expert rating aggregate."""
import asyncio
from decimal import ROUND_HALF_UP, Decimal

import pytest
from hypothesis import HealthCheck, given, settings, strategies as st

from plateada_server.db import experts as directory
from plateada_server.db import ratings as aggregator
from plateada_server.db import sessions as lifecycle
from plateada_server.db.connection import IntegrityError
from plateada_server.db.models import RatingScores
from plateada_server.errors import (
    DuplicateRatingError,
    PermissionDeniedError,
    SessionNotEligibleError,
    ValidationError,
)
from tests.factories import completed_session, new_client, new_expert, new_session


def scores(overall: int, quality: int = 5, clarity: int = 4, punctuality: int = 5) -> RatingScores:
    return RatingScores(quality=quality, clarity=clarity, punctuality=punctuality, overall=overall)


@pytest.mark.parametrize("values, expected", [
    ([], (0.0, 0)),
    ([5], (5.0, 1)),
    ([5, 4], (4.5, 2)),
    ([5, 4, 4], (4.3, 3)),
    ([1, 1, 1, 2], (1.3, 4)),  # 1.25 rounds half-up
    ([3, 3, 4, 4, 4, 4, 4, 4], (3.8, 8)),  # 3.75
])
def test_compute_aggregate(values, expected):
    assert aggregator.compute_aggregate(values) == expected


@given(st.lists(st.integers(min_value=1, max_value=5), min_size=1, max_size=200))
def test_aggregate_is_rounded_mean(values):
    rating, total = aggregator.compute_aggregate(values)

    exact = Decimal(sum(values)) / Decimal(len(values))
    assert total == len(values)
    assert 1.0 <= rating <= 5.0
    assert Decimal(str(rating)) == exact.quantize(Decimal("0.1"), rounding=ROUND_HALF_UP)
    assert aggregator.compute_aggregate(reversed(values)) == (rating, total)


async def test_first_rating_sets_aggregate(database):
    client = await new_client()
    expert_user, expert = await new_expert()
    session = await completed_session(client, expert_user, expert)

    rating = await aggregator.submit_rating(session.id, client.id, expert_user.id, scores(5), "Excelente")

    assert rating.overall == 5
    assert rating.comment == "Excelente"
    refreshed = await directory.get_expert_by_id(expert.id)
    assert refreshed.rating == 5.0
    assert refreshed.total_ratings == 1


async def test_aggregate_spans_sessions(database):
    expert_user, expert = await new_expert()
    for overall in (5, 4, 4):
        client = await new_client()
        session = await completed_session(client, expert_user, expert)
        await aggregator.submit_rating(session.id, client.id, expert_user.id, scores(overall))

    refreshed = await directory.get_expert_by_id(expert.id)
    assert (refreshed.rating, refreshed.total_ratings) == (4.3, 3)
    assert len(await aggregator.list_ratings_for(expert_user.id)) == 3


@pytest.mark.parametrize("path", [[], ["accepted"], ["rejected"], ["accepted", "disputed"]])
async def test_only_completed_sessions_can_be_rated(database, path):
    client = await new_client()
    expert_user, expert = await new_expert()
    session = await new_session(client, expert)
    for status in path:
        await lifecycle.transition_session(session.id, status)

    with pytest.raises(SessionNotEligibleError):
        await aggregator.submit_rating(session.id, client.id, expert_user.id, scores(5))

    assert (await directory.get_expert_by_id(expert.id)).total_ratings == 0


async def test_unknown_session_not_eligible(database):
    client = await new_client()
    expert_user, _ = await new_expert()

    with pytest.raises(SessionNotEligibleError):
        await aggregator.submit_rating("missing", client.id, expert_user.id, scores(5))


async def test_duplicate_rating_rejected(database):
    client = await new_client()
    expert_user, expert = await new_expert()
    session = await completed_session(client, expert_user, expert)
    await aggregator.submit_rating(session.id, client.id, expert_user.id, scores(5))

    with pytest.raises(DuplicateRatingError):
        await aggregator.submit_rating(session.id, client.id, expert_user.id, scores(1))

    refreshed = await directory.get_expert_by_id(expert.id)
    assert (refreshed.rating, refreshed.total_ratings) == (5.0, 1)


async def test_other_constraint_failures_are_not_duplicates(database):
    client = await new_client()
    expert_user, expert = await new_expert()
    session = await completed_session(client, expert_user, expert)
    out_of_range = RatingScores.model_construct(quality=9, clarity=4, punctuality=5, overall=5)

    with pytest.raises(IntegrityError):
        await aggregator.submit_rating(session.id, client.id, expert_user.id, out_of_range)

    refreshed = await directory.get_expert_by_id(expert.id)
    assert (refreshed.rating, refreshed.total_ratings) == (0.0, 0)


async def test_outsider_cannot_rate(database):
    client = await new_client()
    outsider = await new_client(display_name="Otra Persona")
    expert_user, expert = await new_expert()
    session = await completed_session(client, expert_user, expert)

    with pytest.raises(PermissionDeniedError):
        await aggregator.submit_rating(session.id, outsider.id, expert_user.id, scores(1))


async def test_cannot_rate_yourself(database):
    client = await new_client()
    expert_user, expert = await new_expert()
    session = await completed_session(client, expert_user, expert)

    with pytest.raises(ValidationError) as exc_info:
        await aggregator.submit_rating(session.id, client.id, client.id, scores(5))

    assert exc_info.value.details == {"fields": ["ratedId"]}


async def test_expert_rating_client_leaves_expert_aggregate(database):
    client = await new_client()
    expert_user, expert = await new_expert()
    session = await completed_session(client, expert_user, expert)

    await aggregator.submit_rating(session.id, expert_user.id, client.id, scores(3))

    assert (await directory.get_expert_by_id(expert.id)).total_ratings == 0
    assert [r.rater_id for r in await aggregator.list_ratings_for(client.id)] == [expert_user.id]


async def test_recompute_is_idempotent(database):
    client = await new_client()
    expert_user, expert = await new_expert()
    session = await completed_session(client, expert_user, expert)
    await aggregator.submit_rating(session.id, client.id, expert_user.id, scores(4))

    first = await aggregator.recompute_expert_rating(expert_user.id)
    second = await aggregator.recompute_expert_rating(expert_user.id)

    assert first == second == (4.0, 1)


@settings(max_examples=15, deadline=None, suppress_health_check=[HealthCheck.function_scoped_fixture])
@given(overall_scores=st.lists(st.integers(min_value=1, max_value=5), min_size=1, max_size=6))
def test_stored_aggregate_matches_ratings(database, overall_scores):
    async def scenario():
        expert_user, expert = await new_expert()
        for overall in overall_scores:
            client = await new_client()
            session = await completed_session(client, expert_user, expert)
            await aggregator.submit_rating(session.id, client.id, expert_user.id, scores(overall))

        refreshed = await directory.get_expert_by_id(expert.id)
        assert (refreshed.rating, refreshed.total_ratings) == aggregator.compute_aggregate(overall_scores)

    asyncio.run(scenario())
