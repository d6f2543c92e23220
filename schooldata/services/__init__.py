"""Services built on the repository layer."""

from .courses import COURSE_SORT_REGISTRY, CourseService
from .students import STUDENT_SORT_REGISTRY, StudentService

__all__ = [
    "COURSE_SORT_REGISTRY",
    "STUDENT_SORT_REGISTRY",
    "CourseService",
    "StudentService",
]
