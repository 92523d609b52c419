# scripts/seed_dev_data.py
"""
Seed a development user, two personas, a room with a published post,
reply jobs for both personas, and a pending battle between them.
Run: python scripts/seed_dev_data.py
"""
from __future__ import annotations

import asyncio
import os
import sys
from datetime import datetime, timezone

sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), "..")))

from sqlalchemy import select
from db.session import get_db
from jobs.queue import enqueue
from models.job import JOB_GENERATE_REPLY
from models.user import User
from models.persona import Persona
from models.post import AuthoredBy, Post, PostStatus, Room
from models.battle import Battle

DEV_EMAIL = "dev@personaworlds.local"
ROOM_SLUG = "dev-lounge"

PERSONAS = [
    {
        "name": "Ada",
        "bio": "Backend engineer who likes measurable claims.",
        "tone": "analytical",
        "writing_samples": ["Show me the numbers first."],
        "do_not_say": ["synergy"],
        "catchphrases": ["Measure twice."],
        "preferred_language": "en",
        "formality": 2,
    },
    {
        "name": "Deniz",
        "bio": "Product designer, pragmatic and warm.",
        "tone": "friendly",
        "writing_samples": ["Kullanıcıya sor, sonra karar ver."],
        "do_not_say": [],
        "catchphrases": ["Ship small."],
        "preferred_language": "tr",
        "formality": 1,
    },
]


async def seed():
    async for db in get_db():
        # User
        stmt = select(User).where(User.email == DEV_EMAIL)
        user = (await db.execute(stmt)).scalar_one_or_none()
        if user:
            print(f"Seed user already exists: {user.id}")
        else:
            user = User(email=DEV_EMAIL)
            db.add(user)
            await db.flush()
            print(f"Created user: {user.id}")

        # Personas
        personas = []
        for profile in PERSONAS:
            stmt = select(Persona).where(Persona.user_id == user.id, Persona.name == profile["name"])
            persona = (await db.execute(stmt)).scalar_one_or_none()
            if not persona:
                persona = Persona(user_id=user.id, **profile)
                db.add(persona)
                await db.flush()
                print(f"Created persona: {persona.id} ({persona.name})")
            personas.append(persona)

        # Room
        stmt = select(Room).where(Room.slug == ROOM_SLUG)
        room = (await db.execute(stmt)).scalar_one_or_none()
        if not room:
            room = Room(slug=ROOM_SLUG, name="Dev Lounge", description="Local development room")
            db.add(room)
            await db.flush()
            print(f"Created room: {room.id}")

        # Published human post
        stmt = select(Post).where(Post.room_id == room.id, Post.user_id == user.id)
        post = (await db.execute(stmt)).scalars().first()
        if not post:
            post = Post(
                room_id=room.id,
                user_id=user.id,
                authored_by=AuthoredBy.HUMAN,
                status=PostStatus.PUBLISHED,
                content="Should small teams adopt a monorepo from day one?",
                published_at=datetime.now(timezone.utc),
            )
            db.add(post)
            await db.flush()
            print(f"Created post: {post.id}")

        # Reply jobs (deduplicated by the queue)
        for persona in personas:
            job = await enqueue(db, JOB_GENERATE_REPLY, subject_ref=post.id, actor_ref=persona.id)
            print(f"Reply job for {persona.name}: {job.id} ({job.status.value})")

        # Pending battle
        stmt = select(Battle).where(Battle.room_id == room.id)
        battle = (await db.execute(stmt)).scalars().first()
        if not battle:
            battle = Battle(
                room_id=room.id,
                topic="Monorepos help small teams ship faster",
                persona_a_id=personas[0].id,
                persona_b_id=personas[1].id,
            )
            db.add(battle)
            await db.flush()
            print(f"Created battle: {battle.id}")

        print("✅ Seed complete.")


if __name__ == "__main__":
    asyncio.run(seed())
