"""Question bank, exams and submissions."""

from datetime import datetime
from sqlalchemy import ForeignKey, String, Text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from ._base import Base, HasIdentity, SoftDeletable, Timestamped, utc_now
from .school import Course, Student


class Question(HasIdentity, SoftDeletable, Timestamped, Base):
    __tablename__ = "questions"

    question_text: Mapped[str] = mapped_column(Text)
    option_a: Mapped[str] = mapped_column(String(500), default="")
    option_b: Mapped[str] = mapped_column(String(500), default="")
    option_c: Mapped[str] = mapped_column(String(500), default="")
    option_d: Mapped[str] = mapped_column(String(500), default="")
    correct_answer: Mapped[str] = mapped_column(String(1))


class Exam(HasIdentity, SoftDeletable, Timestamped, Base):
    __tablename__ = "exams"

    title: Mapped[str] = mapped_column(String(200))
    duration_minutes: Mapped[int] = mapped_column(default=60)
    course_id: Mapped[int | None] = mapped_column(ForeignKey("courses.id"), default=None)

    course: Mapped[Course | None] = relationship()
    exam_questions: Mapped[list["ExamQuestion"]] = relationship(
        back_populates="exam",
        passive_deletes=True,
    )


class ExamQuestion(HasIdentity, Base):
    __tablename__ = "exam_questions"

    exam_id: Mapped[int] = mapped_column(ForeignKey("exams.id", ondelete="CASCADE"))
    question_id: Mapped[int] = mapped_column(ForeignKey("questions.id"))

    exam: Mapped[Exam] = relationship(back_populates="exam_questions")
    question: Mapped[Question] = relationship()


class ExamSubmission(HasIdentity, Base):
    __tablename__ = "exam_submissions"

    exam_id: Mapped[int] = mapped_column(ForeignKey("exams.id"))
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"))
    submitted_at: Mapped[datetime] = mapped_column(default=utc_now)
    total_score: Mapped[float] = mapped_column(default=0.0)

    exam: Mapped[Exam] = relationship()
    student: Mapped[Student] = relationship()
    details: Mapped[list["ExamSubmissionDetail"]] = relationship(
        back_populates="submission",
        passive_deletes=True,
    )


class ExamSubmissionDetail(HasIdentity, Base):
    __tablename__ = "exam_submission_details"

    exam_submission_id: Mapped[int] = mapped_column(
        ForeignKey("exam_submissions.id", ondelete="CASCADE"),
    )
    question_id: Mapped[int] = mapped_column(ForeignKey("questions.id"))
    chosen_answer: Mapped[str | None] = mapped_column(String(1), default=None)
    is_correct: Mapped[bool] = mapped_column(default=False)

    submission: Mapped[ExamSubmission] = relationship(back_populates="details")
    question: Mapped[Question] = relationship()
