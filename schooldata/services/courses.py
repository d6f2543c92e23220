"""Course listing, creation and soft deletion."""

from datetime import datetime

from ..models import Course
from .repository import (
    DuplicateKeyError,
    PagedResult,
    QueryBuilder,
    SortRegistry,
    UnitOfWorkManager,
)

COURSE_SORT_REGISTRY = SortRegistry(
    {
        "id": lambda course: course.id,
        "name": lambda course: course.name,
        "startdate": lambda course: course.start_date,
    },
)


class CourseService:
    def __init__(self, manager: UnitOfWorkManager | None = None) -> None:
        self.manager = manager or UnitOfWorkManager()

    async def get_courses(self, course_id: int | None = None) -> list[Course]:
        async with self.manager.unit_of_work() as uow:
            return await uow.repository(Course).get_all(entity_id=course_id)

    async def create_course(self, name: str, start_date: datetime | None = None) -> int:
        """Add a course.

        Raises:
            DuplicateKeyError: If a course with ``name`` exists, deleted or not
        """
        async with self.manager.unit_of_work() as uow:
            courses = uow.repository(Course)
            if await courses.exists(Course.name == name, include_deleted=True):
                raise DuplicateKeyError("Course")
            course_id = await courses.add(Course(name=name, start_date=start_date))
            await uow.save_changes()
            return course_id

    async def update_course(
        self,
        course_id: int,
        name: str | None = None,
        start_date: datetime | None = None,
    ) -> bool:
        """Rename or reschedule an active course.

        Returns False if the course is absent or soft-deleted.

        Raises:
            DuplicateKeyError: If another course, deleted or not, has ``name``
        """
        async with self.manager.unit_of_work() as uow:
            courses = uow.repository(Course)
            course = await courses.get_by_id(course_id)
            if course is None:
                return False

            if name is not None and name != course.name:
                if await courses.exists(Course.name == name, include_deleted=True):
                    raise DuplicateKeyError("Course")
                course.name = name
            if start_date is not None:
                course.start_date = start_date
            await courses.update(course)
            await uow.save_changes()
            return True

    async def soft_delete_course(self, course_id: int) -> bool:
        async with self.manager.unit_of_work() as uow:
            courses = uow.repository(Course)
            if await courses.get_by_id(course_id) is None:
                return False
            await courses.soft_delete(course_id)
            await uow.save_changes()
            return True

    async def get_paged_courses(
        self,
        sort_by: str | None = None,
        is_descending: bool = False,
        page_size: int | None = None,
        page_index: int | None = None,
    ) -> PagedResult[Course]:
        async with self.manager.unit_of_work() as uow:
            return await (
                QueryBuilder(
                    uow.repository(Course),
                    COURSE_SORT_REGISTRY,
                    self.manager.settings.default_page_size,
                )
                .order_by(sort_by, is_descending)
                .page(page_index, page_size)
                .to_page()
            )
