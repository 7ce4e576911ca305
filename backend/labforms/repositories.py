"""Repository classes encapsulating database operations.

Each repository is small and focused on a single table. Repositories
return SQLModel objects and only `add`/`flush`/`delete`; committing is
left to the service method that owns the unit of work.
"""

from datetime import datetime
from typing import Dict, Iterable, List, Optional

from sqlalchemy import func, or_
from sqlmodel import Session, select

from . import models


class FormRepository:
    """CRUD and listing queries for `ApplicationForm`."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, form: models.ApplicationForm) -> models.ApplicationForm:
        """Stage a form and flush so it has an id."""
        self.session.add(form)
        self.session.flush()
        return form

    def get(self, form_id: int) -> Optional[models.ApplicationForm]:
        """Get a form by primary key."""
        return self.session.get(models.ApplicationForm, form_id)

    def delete(self, form: models.ApplicationForm) -> None:
        self.session.delete(form)
        self.session.flush()

    def list(self, offset: int = 0, limit: int = 50) -> List[models.ApplicationForm]:
        stmt = select(models.ApplicationForm).order_by(models.ApplicationForm.id.desc()).offset(offset).limit(limit)
        return self.session.exec(stmt).all()

    def list_by_status(self, status: models.FormStatus, offset: int = 0, limit: int = 50) -> List[models.ApplicationForm]:
        stmt = (
            select(models.ApplicationForm)
            .where(models.ApplicationForm.status == status)
            .order_by(models.ApplicationForm.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def search_by_title(self, text: str, offset: int = 0, limit: int = 50) -> List[models.ApplicationForm]:
        """Return forms whose title contains `text` (case-insensitive)."""
        stmt = (
            select(models.ApplicationForm)
            .where(models.ApplicationForm.title.ilike(f"%{text}%"))
            .order_by(models.ApplicationForm.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def list_open(self, now: datetime) -> List[models.ApplicationForm]:
        """Return PUBLISHED forms whose period contains `now`.

        A missing start or end date leaves that side of the period open.
        """
        Form = models.ApplicationForm
        stmt = (
            select(Form)
            .where(
                Form.status == models.FormStatus.PUBLISHED,
                or_(Form.start_date.is_(None), Form.start_date <= now),
                or_(Form.end_date.is_(None), Form.end_date >= now),
            )
            .order_by(Form.id.desc())
        )
        return self.session.exec(stmt).all()


class QuestionRepository:
    """CRUD operations for `Question` rows."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, question: models.Question) -> models.Question:
        self.session.add(question)
        self.session.flush()
        return question

    def get(self, question_id: int) -> Optional[models.Question]:
        """Fetch a question by id."""
        return self.session.get(models.Question, question_id)

    def delete(self, question: models.Question) -> None:
        """Delete a question together with its options and answers."""
        self.session.delete(question)
        self.session.flush()

    def count_for_form(self, form_id: int) -> int:
        stmt = select(func.count()).select_from(models.Question).where(models.Question.form_id == form_id)
        return self.session.exec(stmt).one()

    def list_for_form(self, form_id: int) -> List[models.Question]:
        """All questions of a form ordered by `question_order`, ties broken by id."""
        stmt = (
            select(models.Question)
            .where(models.Question.form_id == form_id)
            .order_by(models.Question.question_order, models.Question.id)
        )
        return self.session.exec(stmt).all()


class OptionRepository:
    """CRUD operations for `QuestionOption` rows."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, option: models.QuestionOption) -> models.QuestionOption:
        self.session.add(option)
        self.session.flush()
        return option

    def get(self, option_id: int) -> Optional[models.QuestionOption]:
        return self.session.get(models.QuestionOption, option_id)

    def get_many(self, option_ids: Iterable[int]) -> Dict[int, models.QuestionOption]:
        """Return a mapping id -> option for the ids that exist."""
        ids = list(dict.fromkeys(option_ids))
        if not ids:
            return {}
        stmt = select(models.QuestionOption).where(models.QuestionOption.id.in_(ids))
        return {o.id: o for o in self.session.exec(stmt).all()}

    def delete(self, option: models.QuestionOption) -> None:
        """Delete an option; its link rows to answers go with it."""
        self.session.delete(option)
        self.session.flush()

    def count_for_question(self, question_id: int) -> int:
        stmt = select(func.count()).select_from(models.QuestionOption).where(models.QuestionOption.question_id == question_id)
        return self.session.exec(stmt).one()

    def list_for_question(self, question_id: int) -> List[models.QuestionOption]:
        """All options of a question ordered by `option_order`, ties broken by id."""
        stmt = (
            select(models.QuestionOption)
            .where(models.QuestionOption.question_id == question_id)
            .order_by(models.QuestionOption.option_order, models.QuestionOption.id)
        )
        return self.session.exec(stmt).all()


class ApplicationRepository:
    """Persistence and lookups for `Application` rows."""
    def __init__(self, session: Session):
        self.session = session

    def add(self, application: models.Application) -> models.Application:
        self.session.add(application)
        self.session.flush()
        return application

    def get(self, application_id: int) -> Optional[models.Application]:
        return self.session.get(models.Application, application_id)

    def get_by_id_and_email(self, application_id: int, email: str) -> Optional[models.Application]:
        stmt = select(models.Application).where(
            models.Application.id == application_id,
            models.Application.applicant_email == email,
        )
        return self.session.exec(stmt).first()

    def delete(self, application: models.Application) -> None:
        self.session.delete(application)
        self.session.flush()

    def has_active_for_user(self, form_id: int, user_id: int) -> bool:
        """Return True if `user_id` holds a SUBMITTED/UNDER_REVIEW/ACCEPTED application for the form."""
        stmt = select(models.Application.id).where(
            models.Application.form_id == form_id,
            models.Application.user_id == user_id,
            models.Application.status.in_(tuple(models.ACTIVE_STATUSES)),
        )
        return self.session.exec(stmt).first() is not None

    def has_active_for_email(self, form_id: int, email: str) -> bool:
        """Same as `has_active_for_user` but keyed by applicant email."""
        stmt = select(models.Application.id).where(
            models.Application.form_id == form_id,
            models.Application.applicant_email == email,
            models.Application.status.in_(tuple(models.ACTIVE_STATUSES)),
        )
        return self.session.exec(stmt).first() is not None

    def _list(self, *criteria, offset: int = 0, limit: int = 50) -> List[models.Application]:
        stmt = (
            select(models.Application)
            .where(*criteria)
            .order_by(models.Application.id.desc())
            .offset(offset)
            .limit(limit)
        )
        return self.session.exec(stmt).all()

    def list(self, offset: int = 0, limit: int = 50) -> List[models.Application]:
        return self._list(offset=offset, limit=limit)

    def list_by_form(self, form_id: int, offset: int = 0, limit: int = 50) -> List[models.Application]:
        return self._list(models.Application.form_id == form_id, offset=offset, limit=limit)

    def list_by_status(self, status: models.ApplicationStatus, offset: int = 0, limit: int = 50) -> List[models.Application]:
        return self._list(models.Application.status == status, offset=offset, limit=limit)

    def list_by_user(self, user_id: int, offset: int = 0, limit: int = 50) -> List[models.Application]:
        return self._list(models.Application.user_id == user_id, offset=offset, limit=limit)

    def list_by_email(self, email: str, offset: int = 0, limit: int = 50) -> List[models.Application]:
        return self._list(models.Application.applicant_email == email, offset=offset, limit=limit)

    def count_by_status_for_form(self, form_id: int) -> Dict[models.ApplicationStatus, int]:
        stmt = (
            select(models.Application.status, func.count())
            .where(models.Application.form_id == form_id)
            .group_by(models.Application.status)
        )
        return {status: count for status, count in self.session.exec(stmt).all()}


class AnswerRepository:
    """Query helpers for `ApplicationAnswer` records."""
    def __init__(self, session: Session):
        self.session = session

    def get_for_question(self, application_id: int, question_id: int) -> Optional[models.ApplicationAnswer]:
        """Return the answer row for (application, question) or None."""
        stmt = select(models.ApplicationAnswer).where(
            models.ApplicationAnswer.application_id == application_id,
            models.ApplicationAnswer.question_id == question_id,
        )
        return self.session.exec(stmt).first()
