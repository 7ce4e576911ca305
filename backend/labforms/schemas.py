"""Pydantic request/response schemas used by the services.

Request models validate the shape of incoming data before a service runs.
Response models are read-side projections assembled from the entity
graph at call time; aggregate counts are computed from the loaded
collections rather than stored.
"""

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, EmailStr, Field, TypeAdapter, field_validator

from . import models
from .models import ApplicationStatus, FormStatus, QuestionType


class Identity(BaseModel):
    """Who is calling an applicant-facing operation.

    A logged-in caller carries `user_id`; a guest carries the email used on
    the application (or nothing at all when submitting anonymously).
    """
    user_id: Optional[int] = None
    email: Optional[EmailStr] = None

    @classmethod
    def user(cls, user_id: int) -> "Identity":
        return cls(user_id=user_id)

    @classmethod
    def guest(cls, email: Optional[str] = None) -> "Identity":
        return cls(email=email)

    @property
    def is_logged_in(self) -> bool:
        return self.user_id is not None


_email_adapter = TypeAdapter(EmailStr)


def normalize_email(email: str) -> str:
    """Normalize an address the same way `EmailStr` fields store it."""
    return _email_adapter.validate_python(email)


# --- form authoring requests ---------------------------------------------

class OptionCreate(BaseModel):
    content: str = Field(min_length=1)
    option_order: Optional[int] = None

    @field_validator("content")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("option content must not be blank")
        return v


class OptionUpdate(BaseModel):
    content: Optional[str] = None
    option_order: Optional[int] = None


class QuestionCreate(BaseModel):
    """Request format for adding a question, optionally with its options."""
    question_type: QuestionType
    content: str = Field(min_length=1)
    required: Optional[bool] = None
    question_order: Optional[int] = None
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    options: List[OptionCreate] = Field(default_factory=list)

    @field_validator("content")
    @classmethod
    def _not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("question content must not be blank")
        return v


class QuestionUpdate(BaseModel):
    question_type: Optional[QuestionType] = None
    content: Optional[str] = None
    required: Optional[bool] = None
    question_order: Optional[int] = None
    placeholder: Optional[str] = None
    help_text: Optional[str] = None


class _FormFields(BaseModel):
    title: str = Field(min_length=2, max_length=100)
    description: Optional[str] = None
    status: Optional[FormStatus] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None

    @field_validator("title")
    @classmethod
    def _title_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("title must not be blank")
        return v

    @field_validator("start_date", "end_date")
    @classmethod
    def _as_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        return models.to_utc(v)


class FormCreate(_FormFields):
    """Payload for creating a form; `status` defaults to DRAFT."""
    questions: List[QuestionCreate] = Field(default_factory=list)


class FormUpdate(_FormFields):
    """Payload for updating a form.

    Title, description and dates replace the stored values; `status` is
    only changed when supplied.
    """


# --- application requests ------------------------------------------------

class AnswerIn(BaseModel):
    """A single answer: free text and/or selected option ids."""
    question_id: int
    text_value: Optional[str] = None
    selected_option_ids: Optional[List[int]] = None


class ApplicationCreate(BaseModel):
    form_id: int
    applicant_name: str = Field(min_length=1)
    applicant_email: EmailStr
    applicant_phone: Optional[str] = None
    status: Optional[ApplicationStatus] = None
    answers: List[AnswerIn] = Field(default_factory=list)

    @field_validator("status")
    @classmethod
    def _draft_or_submitted(cls, v: Optional[ApplicationStatus]) -> Optional[ApplicationStatus]:
        if v is not None and v not in (ApplicationStatus.DRAFT, ApplicationStatus.SUBMITTED):
            raise ValueError("status must be DRAFT or SUBMITTED")
        return v

    @field_validator("applicant_name")
    @classmethod
    def _name_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("applicant_name must not be blank")
        return v


class ApplicationUpdate(BaseModel):
    """Partial update of a DRAFT application; None means "leave unchanged"."""
    applicant_name: Optional[str] = None
    applicant_email: Optional[EmailStr] = None
    applicant_phone: Optional[str] = None
    status: Optional[ApplicationStatus] = None
    answers: Optional[List[AnswerIn]] = None


# --- read-side projections -----------------------------------------------

class _Projection(BaseModel):
    """Base for response models; every datetime field comes out as aware UTC."""

    @field_validator("*", check_fields=False)
    @classmethod
    def _as_utc(cls, v):
        if isinstance(v, datetime):
            return models.to_utc(v)
        return v


class OptionOut(_Projection):
    id: int
    content: str
    option_order: int

    @classmethod
    def from_entity(cls, option: models.QuestionOption) -> "OptionOut":
        return cls(id=option.id, content=option.content, option_order=option.option_order)


class QuestionOut(_Projection):
    id: int
    question_type: QuestionType
    content: str
    required: bool
    question_order: int
    placeholder: Optional[str] = None
    help_text: Optional[str] = None
    options: List[OptionOut] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, question: models.Question) -> "QuestionOut":
        return cls(
            id=question.id,
            question_type=question.question_type,
            content=question.content,
            required=question.required,
            question_order=question.question_order,
            placeholder=question.placeholder,
            help_text=question.help_text,
            options=[OptionOut.from_entity(o) for o in question.options],
        )


class FormListItem(_Projection):
    id: int
    title: str
    description: Optional[str] = None
    status: FormStatus
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    question_count: int
    application_count: int
    created_at: datetime

    @classmethod
    def from_entity(cls, form: models.ApplicationForm) -> "FormListItem":
        return cls(
            id=form.id,
            title=form.title,
            description=form.description,
            status=form.status,
            start_date=form.start_date,
            end_date=form.end_date,
            question_count=len(form.questions),
            application_count=len(form.applications),
            created_at=form.created_at,
        )


class FormDetail(_Projection):
    id: int
    title: str
    description: Optional[str] = None
    status: FormStatus
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    questions: List[QuestionOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, form: models.ApplicationForm) -> "FormDetail":
        return cls(
            id=form.id,
            title=form.title,
            description=form.description,
            status=form.status,
            start_date=form.start_date,
            end_date=form.end_date,
            questions=[QuestionOut.from_entity(q) for q in form.questions],
            created_at=form.created_at,
            updated_at=form.updated_at,
        )


class AnswerOut(_Projection):
    id: int
    question_id: int
    question_content: str
    question_type: QuestionType
    text_value: Optional[str] = None
    selected_options: List[OptionOut] = Field(default_factory=list)

    @classmethod
    def from_entity(cls, answer: models.ApplicationAnswer) -> "AnswerOut":
        selected = sorted(answer.selected_options, key=lambda o: (o.option_order, o.id))
        return cls(
            id=answer.id,
            question_id=answer.question_id,
            question_content=answer.question.content,
            question_type=answer.question.question_type,
            text_value=answer.text_value,
            selected_options=[OptionOut.from_entity(o) for o in selected],
        )


class ApplicationListItem(_Projection):
    id: int
    form_id: int
    form_title: str
    applicant_name: str
    applicant_email: str
    status: ApplicationStatus
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None

    @classmethod
    def from_entity(cls, application: models.Application) -> "ApplicationListItem":
        return cls(
            id=application.id,
            form_id=application.form_id,
            form_title=application.form.title,
            applicant_name=application.applicant_name,
            applicant_email=application.applicant_email,
            status=application.status,
            submitted_at=application.submitted_at,
            reviewed_at=application.reviewed_at,
        )


class ApplicationDetail(_Projection):
    id: int
    form_id: int
    form_title: str
    applicant_name: str
    applicant_email: str
    applicant_phone: Optional[str] = None
    status: ApplicationStatus
    submitted_at: Optional[datetime] = None
    reviewed_at: Optional[datetime] = None
    reviewer_comment: Optional[str] = None
    answers: List[AnswerOut] = Field(default_factory=list)
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_entity(cls, application: models.Application) -> "ApplicationDetail":
        # answers follow the form's question order
        answers = sorted(application.answers, key=lambda a: (a.question.question_order, a.question_id))
        return cls(
            id=application.id,
            form_id=application.form_id,
            form_title=application.form.title,
            applicant_name=application.applicant_name,
            applicant_email=application.applicant_email,
            applicant_phone=application.applicant_phone,
            status=application.status,
            submitted_at=application.submitted_at,
            reviewed_at=application.reviewed_at,
            reviewer_comment=application.reviewer_comment,
            answers=[AnswerOut.from_entity(a) for a in answers],
            created_at=application.created_at,
            updated_at=application.updated_at,
        )
