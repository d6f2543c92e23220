"""Schools, students, courses and enrolments."""

from datetime import date, datetime
from decimal import Decimal
from sqlalchemy import ForeignKey, Numeric, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ._base import Base, HasIdentity, SoftDeletable, Timestamped, utc_now


class School(HasIdentity, SoftDeletable, Timestamped, Base):
    __tablename__ = "schools"

    name: Mapped[str] = mapped_column(String(200), index=True)
    address: Mapped[str | None] = mapped_column(String(500), default=None)

    students: Mapped[list["Student"]] = relationship(
        back_populates="school",
        passive_deletes=True,
    )


class Student(HasIdentity, SoftDeletable, Timestamped, Base):
    __tablename__ = "students"

    first_name: Mapped[str] = mapped_column(String(100))
    last_name: Mapped[str] = mapped_column(String(100), default="")
    date_of_birth: Mapped[date | None] = mapped_column(default=None)
    age: Mapped[int] = mapped_column(default=0)
    balance: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=Decimal("0"))
    email: Mapped[str | None] = mapped_column(String(254), default=None)
    phone_number: Mapped[str | None] = mapped_column(String(32), default=None)
    city: Mapped[str | None] = mapped_column(String(100), default=None)
    school_id: Mapped[int] = mapped_column(ForeignKey("schools.id"), index=True)

    school: Mapped[School] = relationship(back_populates="students")
    enrolments: Mapped[list["CourseStudent"]] = relationship(
        back_populates="student",
        passive_deletes=True,
    )

    @property
    def full_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()


class Course(HasIdentity, SoftDeletable, Timestamped, Base):
    __tablename__ = "courses"

    name: Mapped[str] = mapped_column(String(200), unique=True)
    start_date: Mapped[datetime | None] = mapped_column(default=None)

    enrolments: Mapped[list["CourseStudent"]] = relationship(
        back_populates="course",
        passive_deletes=True,
    )


class CourseStudent(HasIdentity, Base):
    __tablename__ = "course_students"
    __table_args__ = (UniqueConstraint("course_id", "student_id"),)

    course_id: Mapped[int] = mapped_column(ForeignKey("courses.id", ondelete="CASCADE"))
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id", ondelete="CASCADE"))
    assigned_at: Mapped[datetime] = mapped_column(default=utc_now)

    course: Mapped[Course] = relationship(back_populates="enrolments")
    student: Mapped[Student] = relationship(back_populates="enrolments")
    grades: Mapped[list["Grade"]] = relationship(
        back_populates="course_student",
        passive_deletes=True,
    )


class Grade(HasIdentity, Base):
    __tablename__ = "grades"

    course_student_id: Mapped[int] = mapped_column(
        ForeignKey("course_students.id", ondelete="CASCADE"),
    )
    assignment_score: Mapped[float | None] = mapped_column(default=None)
    practical_score: Mapped[float | None] = mapped_column(default=None)
    final_score: Mapped[float | None] = mapped_column(default=None)

    course_student: Mapped[CourseStudent] = relationship(back_populates="grades")
