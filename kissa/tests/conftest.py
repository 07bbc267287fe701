"""
Shared fixtures: a fresh SQLite database per test, a service context wired to
it, fake collaborators and seeding helpers.
"""
import itertools

import pytest
import pytest_asyncio
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, create_async_engine, async_sessionmaker

from kissa.database.db import init_database
from kissa.database.models import (
    Checkin,
    CheckinPhoto,
    CheckinStatus,
    Place,
    PlaceCategory,
    PlacePermission,
    PlaceStatus,
    Region,
    RegionStatus,
    User,
    UserRole,
    UserStatus,
)
from kissa.services.context import ServiceContext
from kissa.services.email_service import EmailDeliveryError
from kissa.utils.datetime_utils import utcnow

TOKYO = (35.6762, 139.6503)


class FakeEmailNotifier:
    """Records invitations instead of sending them; can be told to fail."""

    def __init__(self):
        self.sent = []
        self.fail = False

    async def send_editor_invitation(self, **kwargs):
        if self.fail:
            raise EmailDeliveryError("SendGrid returned status 503: unavailable")
        self.sent.append(kwargs)
        return True


@pytest_asyncio.fixture
async def engine(tmp_path):
    """File-backed database so concurrent sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path}/test.db", echo=False)

    @event.listens_for(engine.sync_engine, "connect")
    def on_connect(dbapi_connection, connection_record):
        # SQLAlchemy emits BEGIN itself (see on_begin)
        dbapi_connection.isolation_level = None
        cursor = dbapi_connection.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

    @event.listens_for(engine.sync_engine, "begin")
    def on_begin(conn):
        # Writers queue on the database lock instead of failing mid-transaction
        conn.exec_driver_sql("BEGIN IMMEDIATE")

    await init_database(engine)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        engine, class_=AsyncSession, expire_on_commit=False, autoflush=False
    )


@pytest.fixture
def email_notifier():
    return FakeEmailNotifier()


@pytest.fixture
def ctx(session_factory, email_notifier):
    return ServiceContext(
        session_factory=session_factory,
        email_notifier=email_notifier,
        max_checkin_distance_meters=500,
        max_photos_per_checkin=5,
    )


class Seeder:
    """Inserts rows directly, bypassing the services."""

    def __init__(self, session_factory):
        self.session_factory = session_factory
        self._counter = itertools.count(1)

    async def _add(self, row):
        async with self.session_factory() as session:
            session.add(row)
            await session.commit()
            await session.refresh(row)
        return row

    async def user(self, role=UserRole.VISITOR, status=UserStatus.ACTIVE, email=None, name=None):
        n = next(self._counter)
        return await self._add(User(
            email=email or f"user{n}@example.com",
            name=name or f"User {n}",
            role=UserRole(role).value,
            status=UserStatus(status).value,
        ))

    async def region(self, owner, status=RegionStatus.PUBLISHED, name="Shibuya"):
        return await self._add(Region(
            name=name,
            status=RegionStatus(status).value,
            created_by=owner.id,
            latitude=TOKYO[0],
            longitude=TOKYO[1],
        ))

    async def place(
        self,
        region,
        creator,
        status=PlaceStatus.PUBLISHED,
        name="Kissa Tanpopo",
        latitude=TOKYO[0],
        longitude=TOKYO[1],
        category=PlaceCategory.CAFE,
        description=None,
    ):
        return await self._add(Place(
            region_id=region.id,
            name=name,
            description=description,
            category=PlaceCategory(category).value,
            latitude=latitude,
            longitude=longitude,
            address="1-2-3 Jinnan, Shibuya, Tokyo",
            status=PlaceStatus(status).value,
            created_by=creator.id,
        ))

    async def checkin(self, user, place, rating=None, status=CheckinStatus.ACTIVE, is_private=False):
        return await self._add(Checkin(
            user_id=user.id,
            place_id=place.id,
            rating=rating,
            user_latitude=place.latitude,
            user_longitude=place.longitude,
            is_private=is_private,
            status=CheckinStatus(status).value,
        ))

    async def photo(self, checkin, url="https://img.example.com/1.jpg", display_order=0):
        return await self._add(CheckinPhoto(
            checkin_id=checkin.id, url=url, display_order=display_order
        ))

    async def permission(self, place, user, invited_by, accepted=True, can_edit=True, can_delete=False):
        return await self._add(PlacePermission(
            place_id=place.id,
            user_id=user.id,
            invited_by=invited_by.id,
            can_edit=can_edit,
            can_delete=can_delete,
            accepted_at=utcnow() if accepted else None,
        ))

    async def get(self, model, row_id):
        async with self.session_factory() as session:
            return await session.get(model, row_id)


@pytest.fixture
def seed(session_factory):
    return Seeder(session_factory)


@pytest_asyncio.fixture
async def editor(seed):
    return await seed.user(role=UserRole.EDITOR, name="Editor Emi")


@pytest_asyncio.fixture
async def admin(seed):
    return await seed.user(role=UserRole.ADMIN, name="Admin Aki")


@pytest_asyncio.fixture
async def visitor(seed):
    return await seed.user(role=UserRole.VISITOR, name="Visitor Ren")


@pytest_asyncio.fixture
async def region(seed, editor):
    return await seed.region(editor)


@pytest_asyncio.fixture
async def place(seed, region, editor):
    return await seed.place(region, editor)


def tokyo_checkin(place_id, **overrides):
    data = {
        "place_id": place_id,
        "user_location": {"latitude": TOKYO[0], "longitude": TOKYO[1]},
    }
    data.update(overrides)
    return data
