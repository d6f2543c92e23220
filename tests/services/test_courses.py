"""Tests for the course service."""

from datetime import UTC, datetime

import pytest

from schooldata.services import CourseService
from schooldata.services.repository import DuplicateKeyError


@pytest.fixture
def service(manager) -> CourseService:
    return CourseService(manager)


class TestCourseService:
    @pytest.mark.asyncio
    async def test_create_and_list(self, seeded, service):
        course_id = await service.create_course("Geometry", datetime(2026, 9, 1, tzinfo=UTC))

        courses = await service.get_courses()

        assert [course.name for course in courses] == ["Algebra", "Geometry"]
        assert [course.id for course in await service.get_courses(course_id)] == [course_id]

    @pytest.mark.asyncio
    async def test_duplicate_name_is_rejected(self, seeded, service):
        with pytest.raises(DuplicateKeyError) as exc_info:
            await service.create_course("Algebra")

        assert exc_info.value.entity_type == "Course"

    @pytest.mark.asyncio
    async def test_name_of_deleted_course_stays_taken(self, seeded, service):
        assert await service.soft_delete_course(seeded["algebra"]) is True
        assert await service.get_courses() == []

        with pytest.raises(DuplicateKeyError):
            await service.create_course("Algebra")

    @pytest.mark.asyncio
    async def test_soft_delete_absent_course(self, seeded, service):
        assert await service.soft_delete_course(404) is False

    @pytest.mark.asyncio
    async def test_update_renames_and_reschedules(self, seeded, service):
        # Cached before the update, so the update has to invalidate it.
        assert [course.name for course in await service.get_courses(seeded["algebra"])] == ["Algebra"]
        start = datetime(2027, 1, 10, tzinfo=UTC)

        assert await service.update_course(seeded["algebra"], name="Algebra II", start_date=start) is True

        (course,) = await service.get_courses(seeded["algebra"])
        assert course.name == "Algebra II"
        assert course.start_date.replace(tzinfo=UTC) == start

    @pytest.mark.asyncio
    async def test_update_absent_course(self, seeded, service):
        assert await service.update_course(404, name="Nowhere") is False

    @pytest.mark.asyncio
    async def test_update_deleted_course(self, seeded, service):
        await service.soft_delete_course(seeded["algebra"])

        assert await service.update_course(seeded["algebra"], name="Algebra II") is False

    @pytest.mark.asyncio
    async def test_update_to_taken_name_is_rejected(self, seeded, service):
        await service.create_course("Geometry")

        with pytest.raises(DuplicateKeyError):
            await service.update_course(seeded["algebra"], name="Geometry")

        assert sorted(course.name for course in await service.get_courses()) == ["Algebra", "Geometry"]

    @pytest.mark.asyncio
    async def test_update_keeping_own_name(self, seeded, service):
        assert await service.update_course(seeded["algebra"], name="Algebra") is True

    @pytest.mark.asyncio
    async def test_paged_courses_sorted_by_name(self, seeded, service):
        for name in ("Biology", "Chemistry", "Drama"):
            await service.create_course(name)

        page = await service.get_paged_courses(sort_by="name", is_descending=True, page_size=3, page_index=1)

        assert [course.name for course in page.items] == ["Drama", "Chemistry", "Biology"]
        assert page.total_pages == 2
        assert page.pagination.has_next

    @pytest.mark.asyncio
    async def test_start_date_sort_puts_unscheduled_first(self, seeded, service):
        await service.create_course("Geometry", datetime(2026, 9, 1, tzinfo=UTC))

        page = await service.get_paged_courses(sort_by="startdate")

        assert [course.name for course in page.items] == ["Algebra", "Geometry"]
