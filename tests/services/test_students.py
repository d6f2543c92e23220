"""Tests for the student service."""

from decimal import Decimal
from unittest.mock import AsyncMock, patch

import pytest

from schooldata.models import Status
from schooldata.services import StudentService
from schooldata.services.repository import NotFoundError, TransactionError, UnitOfWork, ValidationError


@pytest.fixture
def service(manager) -> StudentService:
    return StudentService(manager)


class TestListing:
    @pytest.mark.asyncio
    async def test_get_students_includes_school(self, seeded, service):
        students = await service.get_students()

        assert {student.first_name: student.school.name for student in students} == {
            "John": "North High",
            "Johnny": "South High",
            "Ada": "North High",
        }

    @pytest.mark.asyncio
    async def test_get_students_scoped_to_one(self, seeded, service):
        students = await service.get_students(seeded["johnny"])

        assert [student.last_name for student in students] == ["Walker"]

    @pytest.mark.asyncio
    async def test_get_students_unknown_id_is_empty(self, seeded, service):
        assert await service.get_students(404) == []

    @pytest.mark.asyncio
    async def test_get_student_absent(self, seeded, service):
        assert await service.get_student(404) is None


class TestPaging:
    @pytest.mark.asyncio
    async def test_composite_sort_and_page(self, seeded, service):
        page = await service.get_paged_students(sort_by="age,fullname", page_size=2, page_index=1)

        assert [student.first_name for student in page.items] == ["Ada", "John"]
        assert page.total_pages == 2
        assert page.total_items == 3

    @pytest.mark.asyncio
    async def test_descending_by_school_name(self, seeded, service):
        page = await service.get_paged_students(sort_by="schoolname", is_descending=True)

        assert [student.first_name for student in page.items] == ["Johnny", "John", "Ada"]
        assert page.total_pages == 1

    @pytest.mark.asyncio
    async def test_filter_by_school(self, seeded, service):
        page = await service.get_paged_students(school_id=seeded["north"], sort_by="balance")

        assert [student.first_name for student in page.items] == ["Ada", "John"]

    @pytest.mark.asyncio
    async def test_index_only_uses_default_page_size(self, seeded, service):
        page = await service.get_paged_students(page_index=1)

        assert len(page.items) == 3
        assert page.pagination.page_size == 5

    @pytest.mark.asyncio
    async def test_zero_page_size_is_empty(self, seeded, service):
        page = await service.get_paged_students(page_size=0)

        assert page.items == []
        assert page.total_pages == 0


class TestSearch:
    @pytest.mark.asyncio
    async def test_single_word_matches_any_field(self, seeded, service):
        found = await service.search_students("john")

        assert sorted(student.first_name for student in found) == ["John", "Johnny"]

    @pytest.mark.asyncio
    async def test_single_word_matches_school_name(self, seeded, service):
        found = await service.search_students("north")

        assert sorted(student.first_name for student in found) == ["Ada", "John"]

    @pytest.mark.asyncio
    async def test_phrase_matches_in_order(self, seeded, service):
        found = await service.search_students("John Smith")

        assert [student.id for student in found] == [seeded["john"]]

    @pytest.mark.asyncio
    async def test_blank_term(self, seeded, service):
        assert await service.search_students("  ") == []


class TestCreate:
    @pytest.mark.asyncio
    async def test_new_student_is_unverified(self, seeded, service):
        student_id = await service.create_student("Grace", "Hopper", seeded["south"], age=40, balance="12.25")

        student = await service.get_student(student_id)
        assert student.status == Status.UNVERIFIED
        assert student.balance == Decimal("12.25")
        assert student.school.name == "South High"

    @pytest.mark.asyncio
    async def test_unknown_school_is_rejected(self, seeded, service):
        with pytest.raises(NotFoundError) as exc_info:
            await service.create_student("Grace", "Hopper", 404)

        assert exc_info.value.entity_type == "School"
        assert len(await service.get_students()) == 3


class TestUpdate:
    @pytest.mark.asyncio
    async def test_update_is_visible(self, seeded, service):
        assert (await service.get_student(seeded["ada"])).city is None

        assert await service.update_student(seeded["ada"], city="Leeds", balance="7.25") is True

        student = await service.get_student(seeded["ada"])
        assert student.city == "Leeds"
        assert student.balance == Decimal("7.25")

    @pytest.mark.asyncio
    async def test_move_to_another_school(self, seeded, service):
        assert await service.update_student(seeded["ada"], school_id=seeded["south"]) is True

        assert (await service.get_student(seeded["ada"])).school.name == "South High"

    @pytest.mark.asyncio
    async def test_absent_student(self, seeded, service):
        assert await service.update_student(404, city="Leeds") is False

    @pytest.mark.asyncio
    async def test_deleted_student(self, seeded, service):
        await service.soft_delete_student(seeded["ada"])

        assert await service.update_student(seeded["ada"], city="Leeds") is False

    @pytest.mark.asyncio
    async def test_unknown_school_leaves_student_unchanged(self, seeded, service):
        with pytest.raises(NotFoundError) as exc_info:
            await service.update_student(seeded["ada"], school_id=404, city="Leeds")

        assert exc_info.value.entity_type == "School"
        student = await service.get_student(seeded["ada"])
        assert student.school_id == seeded["north"]
        assert student.city is None

    @pytest.mark.asyncio
    async def test_non_editable_field_is_rejected(self, seeded, service):
        with pytest.raises(ValidationError):
            await service.update_student(seeded["ada"], status=Status.ACTIVE)

        assert (await service.get_student(seeded["ada"])).status != Status.ACTIVE


class TestSoftDelete:
    @pytest.mark.asyncio
    async def test_deleted_student_is_hidden(self, seeded, service):
        assert await service.soft_delete_student(seeded["ada"]) is True

        assert await service.get_student(seeded["ada"]) is None
        assert sorted(student.first_name for student in await service.get_students()) == [
            "John",
            "Johnny",
        ]

    @pytest.mark.asyncio
    async def test_absent_student(self, seeded, service):
        assert await service.soft_delete_student(404) is False


class TestTransfer:
    @pytest.mark.asyncio
    async def test_transfer_moves_student(self, seeded, service):
        # Prime the cache so the transfer has to invalidate it.
        assert (await service.get_student(seeded["john"])).school_id == seeded["north"]

        assert await service.transfer_student(seeded["john"], seeded["south"]) is True

        student = await service.get_student(seeded["john"])
        assert student.school_id == seeded["south"]
        assert student.school.name == "South High"

    @pytest.mark.asyncio
    async def test_missing_school_leaves_student_unchanged(self, seeded, service, manager):
        with pytest.raises(NotFoundError) as exc_info:
            await service.transfer_student(seeded["john"], 404)

        assert exc_info.value.entity_type == "School"
        assert (await service.get_student(seeded["john"])).school_id == seeded["north"]
        assert manager.active_count == 0

    @pytest.mark.asyncio
    async def test_missing_student(self, seeded, service):
        with pytest.raises(NotFoundError) as exc_info:
            await service.transfer_student(404, seeded["south"])

        assert exc_info.value.entity_type == "Student"

    @pytest.mark.asyncio
    async def test_failure_after_update_rolls_back(self, seeded, service):
        """Test a failing commit leaves no trace of the saved update."""
        failure = TransactionError("disk full")

        with (
            patch.object(UnitOfWork, "commit", AsyncMock(side_effect=failure)),
            pytest.raises(TransactionError, match="disk full"),
        ):
            await service.transfer_student(seeded["john"], seeded["south"])

        student = await service.get_student(seeded["john"])
        assert student.school_id == seeded["north"]
        assert student.school.name == "North High"
