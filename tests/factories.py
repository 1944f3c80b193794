"""Builders for users, expert profiles and sessions used across tests."""
import uuid
from typing import Optional

from plateada_server.db import create_user
from plateada_server.db import experts as directory
from plateada_server.db import sessions as lifecycle
from plateada_server.db.connection import atomic
from plateada_server.db.models import ExpertCreate, SessionCreate, User, UserCreate


def _email(prefix: str) -> str:
    return f"{prefix}-{uuid.uuid4().hex[:10]}@plateada.mx"


async def new_client(display_name: str = "Ana López", welcome_credits: int = 3) -> User:
    return await create_user(
        UserCreate(email=_email("cliente"), password="secreto123", display_name=display_name, role="client"),
        password_hash="not-a-real-hash",
        welcome_credits=welcome_credits,
    )


async def new_expert_account(name: str = "Rosa María Pérez") -> User:
    """Expert account without a profile yet."""
    return await create_user(
        UserCreate(email=_email("experto"), password="secreto123", display_name=name, role="expert"),
        password_hash="not-a-real-hash",
    )


async def new_expert(
    name: str = "Ernesto Ruiz",
    zone: str = "Centro",
    modality: str = "presencial",
    service_category: str = "clases",
    age: int = 65,
    status: Optional[str] = None,
    membership: Optional[str] = None,
    rating: Optional[float] = None,
):
    """Expert account with a profile. Returns (user, expert)."""
    user = await new_expert_account(name)
    expert = await directory.create_profile(user, ExpertCreate(
        name=name,
        age=age,
        service="Clases de guitarra",
        service_category=service_category,
        experience="40 años tocando",
        modality=modality,
        zone=zone,
        schedule="Mañanas",
    ))

    if status:
        await directory.set_status(user.id, status)
    if membership:
        await directory.set_membership(user.id, membership)
    if rating is not None:
        with atomic() as tx:
            tx.execute("UPDATE experts SET rating = ? WHERE id = ?", [rating, expert.id])

    return user, await directory.get_expert_by_id(expert.id)


async def new_session(client: User, expert, requested_date: str = "2030-05-01", credits_cost: int = 1):
    session, _ = await lifecycle.create_session(
        client,
        SessionCreate(expert_id=expert.id, requested_date=requested_date, requested_time="09:00"),
        credits_cost=credits_cost,
    )
    return session


async def completed_session(client: User, expert_user: User, expert):
    session = await new_session(client, expert)
    await lifecycle.accept_session(session.id, actor_id=expert_user.id)
    return await lifecycle.complete_session(session.id, actor_id=client.id)
