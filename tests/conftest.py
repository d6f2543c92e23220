"""Configuration for pytest testing framework."""

from decimal import Decimal

import pytest
import pytest_asyncio

from schooldata.cache import RepositoryCache
from schooldata.config import DataAccessSettings
from schooldata.database import Database
from schooldata.depends import depends
from schooldata.models import Course, School, Status, Student
from schooldata.services.repository import UnitOfWork, UnitOfWorkManager


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest."""
    config.addinivalue_line("markers", "slow: timing-based cache expiration tests")


@pytest.fixture(autouse=True)
def reset_dependency_container():
    """Reset the dependency container around each test to ensure isolation."""
    depends.clear()
    yield
    depends.clear()


@pytest.fixture
def settings(tmp_path) -> DataAccessSettings:
    """Settings pointing at a fresh SQLite file for each test."""
    return DataAccessSettings(
        database_url=f"sqlite+aiosqlite:///{tmp_path / 'schooldata.db'}",
        cache_namespace=f"test-{tmp_path.name}",
    )


@pytest_asyncio.fixture
async def database(settings):
    db = Database(settings)
    await db.create_all()
    yield db
    await db.drop_all()
    await db.cleanup()


@pytest_asyncio.fixture
async def cache(settings):
    repository_cache = RepositoryCache(settings)
    yield repository_cache
    await repository_cache.cleanup()


@pytest_asyncio.fixture
async def uow(database, cache, settings):
    async with UnitOfWork(database, cache, settings) as unit:
        yield unit


@pytest_asyncio.fixture
async def manager(database, cache, settings):
    uow_manager = UnitOfWorkManager(database, cache, settings)
    yield uow_manager
    await uow_manager.cleanup()


@pytest.fixture
def make_uow(database, cache, settings):
    """Factory for additional units of work sharing the store and cache."""

    def factory() -> UnitOfWork:
        return UnitOfWork(database, cache, settings)

    return factory


@pytest_asyncio.fixture
async def seeded(make_uow) -> dict[str, int]:
    """Two schools, three students and one course, committed."""
    async with make_uow() as unit:
        schools = unit.repository(School)
        students = unit.repository(Student)
        north = await schools.add(School(name="North High", address="1 North Rd"))
        south = await schools.add(School(name="South High", address="2 South Rd"))
        john = await students.add(
            Student(first_name="John", last_name="Smith", age=30, balance=Decimal("10.50"), school_id=north),
        )
        johnny = await students.add(
            Student(first_name="Johnny", last_name="Walker", age=30, balance=Decimal("99"), school_id=south),
        )
        ada = await students.add(
            Student(
                first_name="Ada",
                last_name="Lovelace",
                age=21,
                balance=Decimal("5"),
                school_id=north,
                status=Status.UNVERIFIED,
            ),
        )
        algebra = await unit.repository(Course).add(Course(name="Algebra"))
        await unit.save_changes()
    return {
        "north": north,
        "south": south,
        "john": john,
        "johnny": johnny,
        "ada": ada,
        "algebra": algebra,
    }
