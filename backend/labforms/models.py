"""SQLModel data models.

This module defines the recruitment form tables using SQLModel. Every
table carries `created_at`/`updated_at` audit columns that are filled in
automatically on insert and update.

Ownership runs form -> question -> option and application -> answer;
deleting a parent deletes its children through ORM cascades.
"""

import enum
from datetime import datetime, timezone
from typing import List, Optional

from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field, Relationship


def utcnow() -> datetime:
    """Current time as aware UTC, the representation written to every column."""
    return datetime.now(timezone.utc)


def to_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return `value` as aware UTC.

    Naive values are taken as UTC; SQLite hands stored datetimes back
    without tzinfo.
    """
    if value is None:
        return value
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class FormStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    PUBLISHED = "PUBLISHED"
    CLOSED = "CLOSED"


class QuestionType(str, enum.Enum):
    SHORT_TEXT = "SHORT_TEXT"
    LONG_TEXT = "LONG_TEXT"
    SINGLE_CHOICE = "SINGLE_CHOICE"
    MULTIPLE_CHOICE = "MULTIPLE_CHOICE"
    DROPDOWN = "DROPDOWN"
    DATE = "DATE"
    EMAIL = "EMAIL"
    PHONE = "PHONE"
    NUMBER = "NUMBER"

    @property
    def is_choice(self) -> bool:
        return self in CHOICE_TYPES


CHOICE_TYPES = frozenset({QuestionType.SINGLE_CHOICE, QuestionType.MULTIPLE_CHOICE, QuestionType.DROPDOWN})


class ApplicationStatus(str, enum.Enum):
    DRAFT = "DRAFT"
    SUBMITTED = "SUBMITTED"
    UNDER_REVIEW = "UNDER_REVIEW"
    ACCEPTED = "ACCEPTED"
    REJECTED = "REJECTED"
    CANCELLED = "CANCELLED"


# statuses that block a competing submission for the same form and applicant
ACTIVE_STATUSES = frozenset({ApplicationStatus.SUBMITTED, ApplicationStatus.UNDER_REVIEW, ApplicationStatus.ACCEPTED})

# statuses that stamp `reviewed_at` when set by an administrator
REVIEW_STATUSES = frozenset({ApplicationStatus.UNDER_REVIEW, ApplicationStatus.ACCEPTED, ApplicationStatus.REJECTED})


class ApplicationAnswerOption(SQLModel, table=True):
    """Link row between an answer and one of its selected options."""
    __tablename__ = "application_answer_options"

    answer_id: Optional[int] = Field(default=None, foreign_key="application_answers.id", primary_key=True)
    option_id: Optional[int] = Field(default=None, foreign_key="question_options.id", primary_key=True)


class ApplicationForm(SQLModel, table=True):
    """An admin-authored application template.

    `questions` are kept ordered by `question_order`. Applications against
    the form are removed together with it.
    """
    __tablename__ = "application_forms"

    id: Optional[int] = Field(default=None, primary_key=True)
    title: str = Field(max_length=100, index=True)
    description: Optional[str] = None
    status: FormStatus = Field(default=FormStatus.DRAFT, index=True)
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    questions: List['Question'] = Relationship(
        back_populates='form',
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "Question.question_order"},
    )
    applications: List['Application'] = Relationship(
        back_populates='form',
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class Question(SQLModel, table=True):
    """A single prompt within a form.

    Options only mean something for the choice types; storage does not
    enforce that, `FormService.add_option` does.
    """
    __tablename__ = "questions"

    id: Optional[int] = Field(default=None, primary_key=True)
    form_id: int = Field(foreign_key='application_forms.id', index=True)
    question_type: QuestionType
    content: str
    required: bool = False
    question_order: int
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    form: Optional[ApplicationForm] = Relationship(back_populates='questions')
    options: List['QuestionOption'] = Relationship(
        back_populates='question',
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "QuestionOption.option_order"},
    )
    answers: List['ApplicationAnswer'] = Relationship(
        back_populates='question',
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class QuestionOption(SQLModel, table=True):
    """A selectable choice belonging to a choice-type `Question`."""
    __tablename__ = "question_options"

    id: Optional[int] = Field(default=None, primary_key=True)
    question_id: int = Field(foreign_key='questions.id', index=True)
    content: str
    option_order: int
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    question: Optional[Question] = Relationship(back_populates='options')
    answers: List['ApplicationAnswer'] = Relationship(back_populates='selected_options', link_model=ApplicationAnswerOption)


class Application(SQLModel, table=True):
    """One applicant's submission against a form.

    `user_id` is None for guest submissions, which are identified by
    `applicant_email` instead.
    """
    __tablename__ = "applications"

    id: Optional[int] = Field(default=None, primary_key=True)
    form_id: int = Field(foreign_key='application_forms.id', index=True)
    user_id: Optional[int] = Field(default=None, index=True)
    applicant_name: str
    applicant_email: str = Field(index=True)
    applicant_phone: Optional[str] = None
    status: ApplicationStatus = Field(default=ApplicationStatus.DRAFT, index=True)
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewer_comment: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    form: Optional[ApplicationForm] = Relationship(back_populates='applications')
    answers: List['ApplicationAnswer'] = Relationship(
        back_populates='application',
        sa_relationship_kwargs={"cascade": "all, delete-orphan", "order_by": "ApplicationAnswer.id"},
    )


class ApplicationAnswer(SQLModel, table=True):
    """An applicant's response to one question; one row per (application, question)."""
    __tablename__ = "application_answers"
    __table_args__ = (UniqueConstraint("application_id", "question_id", name="uq_answer_application_question"),)

    id: Optional[int] = Field(default=None, primary_key=True)
    application_id: int = Field(foreign_key='applications.id', index=True)
    question_id: int = Field(foreign_key='questions.id', index=True)
    text_value: Optional[str] = None
    created_at: datetime = Field(default_factory=utcnow)
    updated_at: datetime = Field(default_factory=utcnow, sa_column_kwargs={"onupdate": utcnow})

    application: Optional[Application] = Relationship(back_populates='answers')
    question: Optional[Question] = Relationship(back_populates='answers')
    selected_options: List[QuestionOption] = Relationship(back_populates='answers', link_model=ApplicationAnswerOption)
