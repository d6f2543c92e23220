"""Student listing, search, enrolment in a school and transfers."""

import typing as t
from decimal import Decimal

from ..logger import logger
from ..models import School, Status, Student
from .repository import (
    NotFoundError,
    PagedResult,
    QueryBuilder,
    SortRegistry,
    UnitOfWorkManager,
    ValidationError,
    search,
)

STUDENT_INCLUDE = ("school",)

STUDENT_EDITABLE_FIELDS = frozenset(
    {
        "first_name",
        "last_name",
        "date_of_birth",
        "age",
        "balance",
        "email",
        "phone_number",
        "city",
        "school_id",
    },
)

STUDENT_SORT_REGISTRY = SortRegistry(
    {
        "id": lambda student: student.id,
        "fullname": lambda student: student.full_name,
        "age": lambda student: student.age,
        "schoolname": lambda student: student.school.name if student.school else None,
        "balance": lambda student: student.balance,
    },
)


class StudentService:
    def __init__(self, manager: UnitOfWorkManager | None = None) -> None:
        self.manager = manager or UnitOfWorkManager()

    async def get_students(self, student_id: int | None = None) -> list[Student]:
        """Active students with their school, optionally just one."""
        async with self.manager.unit_of_work() as uow:
            return await uow.repository(Student).get_all(
                include=STUDENT_INCLUDE,
                entity_id=student_id,
            )

    async def get_student(self, student_id: int) -> Student | None:
        async with self.manager.unit_of_work() as uow:
            return await uow.repository(Student).get_by_id(student_id, STUDENT_INCLUDE)

    async def get_paged_students(
        self,
        school_id: int | None = None,
        sort_by: str | None = None,
        is_descending: bool = False,
        page_size: int | None = None,
        page_index: int | None = None,
    ) -> PagedResult[Student]:
        """One page of active students, sorted by a comma-separated field list.

        Sortable fields are ``id``, ``age``, ``fullname``, ``schoolname``
        and ``balance``; anything else sorts by ``id``.
        """
        async with self.manager.unit_of_work() as uow:
            query = QueryBuilder(
                uow.repository(Student),
                STUDENT_SORT_REGISTRY,
                self.manager.settings.default_page_size,
            ).include(*STUDENT_INCLUDE)
            if school_id is not None:
                query.where(Student.school_id == school_id)
            return await query.order_by(sort_by, is_descending).page(page_index, page_size).to_page()

    async def search_students(self, term: str | None) -> list[Student]:
        """Match ``term`` against id, full name, age, school name and balance.

        A single word matches any one field; several words must appear
        together, in order, across the fields.
        """
        if not term or not term.split():
            return []
        async with self.manager.unit_of_work() as uow:
            students = await uow.repository(Student).get_all(include=STUDENT_INCLUDE)
        return search(students, term, STUDENT_SORT_REGISTRY.searchable)

    async def create_student(
        self,
        first_name: str,
        last_name: str,
        school_id: int,
        age: int = 0,
        balance: Decimal | int | str = Decimal("0"),
        **fields: t.Any,
    ) -> int:
        """Add an unverified student to an active school.

        Raises:
            NotFoundError: If the school is absent or soft-deleted
        """
        async with self.manager.unit_of_work() as uow:
            if await uow.repository(School).get_by_id(school_id) is None:
                raise NotFoundError("School", school_id, operation="add")

            student = Student(
                first_name=first_name,
                last_name=last_name,
                school_id=school_id,
                age=age,
                balance=Decimal(balance),
                status=Status.UNVERIFIED,
                **fields,
            )
            student_id = await uow.repository(Student).add(student)
            await uow.save_changes()
            return student_id

    async def update_student(self, student_id: int, **fields: t.Any) -> bool:
        """Change an active student's fields.

        Returns False if the student is absent or soft-deleted.

        Raises:
            NotFoundError: If ``school_id`` changes to an absent or
                soft-deleted school
            ValidationError: If a field is not editable
        """
        unknown = sorted(set(fields) - STUDENT_EDITABLE_FIELDS)
        if unknown:
            msg = f"Student fields not editable: {', '.join(unknown)}"
            raise ValidationError(msg, entity_type="Student", operation="update")

        async with self.manager.unit_of_work() as uow:
            students = uow.repository(Student)
            student = await students.get_by_id(student_id)
            if student is None:
                return False

            school_id = fields.get("school_id", student.school_id)
            if school_id != student.school_id and await uow.repository(School).get_by_id(school_id) is None:
                raise NotFoundError("School", school_id, operation="update")

            if "balance" in fields:
                fields["balance"] = Decimal(fields["balance"])
            for name, value in fields.items():
                setattr(student, name, value)
            await students.update(student)
            await uow.save_changes()
            return True

    async def soft_delete_student(self, student_id: int) -> bool:
        async with self.manager.unit_of_work() as uow:
            students = uow.repository(Student)
            if await students.get_by_id(student_id) is None:
                return False
            await students.soft_delete(student_id)
            await uow.save_changes()
            return True

    async def transfer_student(self, student_id: int, new_school_id: int) -> bool:
        """Move a student to another school in one transaction.

        Nothing is written unless both the student and the target school
        exist.

        Raises:
            NotFoundError: If the student or the target school is absent
        """
        async with self.manager.unit_of_work() as uow:
            await uow.begin_transaction()
            try:
                students = uow.repository(Student)
                student = await students.get_by_id(student_id)
                if student is None:
                    raise NotFoundError("Student", student_id, operation="transfer")
                if await uow.repository(School).get_by_id(new_school_id) is None:
                    raise NotFoundError("School", new_school_id, operation="transfer")

                # Set the key, not the relationship, so a loaded school does not win.
                student.school_id = new_school_id
                await students.update(student)
                await uow.save_changes()
                await uow.commit()
            except Exception:
                if uow.is_active:
                    await uow.rollback()
                raise

        logger.info(f"Transferred student {student_id} to school {new_school_id}")
        return True
