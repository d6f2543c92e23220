"""Persisted entity types."""

from ._base import (
    Base,
    HasIdentity,
    SoftDeletable,
    Status,
    Timestamped,
    is_entity_type,
    supports_soft_delete,
    utc_now,
)
from .account import AuditLog, RefreshToken, ToDo, User
from .exam import Exam, ExamQuestion, ExamSubmission, ExamSubmissionDetail, Question
from .school import Course, CourseStudent, Grade, School, Student

ENTITY_TYPES = (
    School,
    Student,
    Course,
    CourseStudent,
    Grade,
    Question,
    Exam,
    ExamQuestion,
    ExamSubmission,
    ExamSubmissionDetail,
    User,
    RefreshToken,
    AuditLog,
    ToDo,
)

__all__ = [
    "ENTITY_TYPES",
    "AuditLog",
    "Base",
    "Course",
    "CourseStudent",
    "Exam",
    "ExamQuestion",
    "ExamSubmission",
    "ExamSubmissionDetail",
    "Grade",
    "HasIdentity",
    "Question",
    "RefreshToken",
    "School",
    "SoftDeletable",
    "Status",
    "Student",
    "Timestamped",
    "ToDo",
    "User",
    "is_entity_type",
    "supports_soft_delete",
    "utc_now",
]
