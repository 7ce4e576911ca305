"""Business logic services for recruitment forms and applications.

Services are intentionally thin: they load entities through the
repositories, validate lifecycle and ownership rules, mutate the rows and
commit. Every mutating method runs as one unit of work; if anything
raises, the session is rolled back and nothing from that call persists.

Errors from `labforms.errors` propagate to the caller unchanged.
"""

import functools
import json
import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from sqlmodel import Session

from . import models, repositories
from .config import settings
from .errors import AccessDeniedError, InvalidArgumentError, InvalidStateError, NotFoundError
from .schemas import (
    AnswerIn,
    ApplicationCreate,
    ApplicationDetail,
    ApplicationListItem,
    ApplicationUpdate,
    FormCreate,
    FormDetail,
    FormListItem,
    FormUpdate,
    Identity,
    normalize_email,
    OptionCreate,
    OptionUpdate,
    QuestionCreate,
    QuestionUpdate,
)
from .utils.ordering import pick_order, resequence

form_logger = logging.getLogger("labforms.forms")
app_logger = logging.getLogger("labforms.applications")

Clock = Callable[[], datetime]


def transactional(method):
    """Commit the service session when `method` returns, roll back if it raises."""
    @functools.wraps(method)
    def wrapper(self, *args, **kwargs):
        try:
            result = method(self, *args, **kwargs)
            self.session.commit()
            return result
        except Exception:
            self.session.rollback()
            raise
    return wrapper


def _page(offset: int, limit: Optional[int]):
    return max(0, int(offset)), settings.clamp_limit(limit)


def _log(logger: logging.Logger, event: str, **payload):
    logger.info("%s %s", event, json.dumps(payload, ensure_ascii=True, default=str))


class FormService:
    """Form authoring (forms, questions, options) and form read queries."""
    def __init__(self, session: Session, clock: Clock = models.utcnow):
        self.session = session
        self.clock = clock
        self.form_repo = repositories.FormRepository(session)
        self.question_repo = repositories.QuestionRepository(session)
        self.option_repo = repositories.OptionRepository(session)

    # --- lookups -----------------------------------------------------------

    def _get_form(self, form_id: int) -> models.ApplicationForm:
        form = self.form_repo.get(form_id)
        if not form:
            raise NotFoundError(f"ApplicationForm not found with id: {form_id}")
        return form

    def _get_question(self, question_id: int) -> models.Question:
        question = self.question_repo.get(question_id)
        if not question:
            raise NotFoundError(f"Question not found with id: {question_id}")
        return question

    def _get_option(self, option_id: int) -> models.QuestionOption:
        option = self.option_repo.get(option_id)
        if not option:
            raise NotFoundError(f"QuestionOption not found with id: {option_id}")
        return option

    # --- forms ---------------------------------------------------------------

    @transactional
    def create_form(self, request: FormCreate) -> int:
        """Create a form and any inline questions; returns the new form id.

        Inline questions without an explicit order take their 1-based
        position in the request, and the same goes for their options.
        """
        form = models.ApplicationForm(
            title=request.title,
            description=request.description,
            status=request.status or models.FormStatus.DRAFT,
            start_date=request.start_date,
            end_date=request.end_date,
        )
        self.form_repo.add(form)
        for position, question_request in enumerate(request.questions, start=1):
            self._create_question(form, question_request, position)
        _log(form_logger, "form_created", form_id=form.id, status=form.status.value, questions=len(request.questions))
        return form.id

    @transactional
    def update_form(self, form_id: int, request: FormUpdate) -> None:
        form = self._get_form(form_id)
        form.title = request.title
        form.description = request.description
        if request.status is not None:
            form.status = request.status
        form.start_date = request.start_date
        form.end_date = request.end_date
        self.session.add(form)
        _log(form_logger, "form_updated", form_id=form.id, status=form.status.value)

    @transactional
    def delete_form(self, form_id: int) -> None:
        """Delete a form with its questions, options, applications and answers."""
        form = self._get_form(form_id)
        self.form_repo.delete(form)
        _log(form_logger, "form_deleted", form_id=form_id)

    # --- questions -----------------------------------------------------------

    @transactional
    def add_question(self, form_id: int, request: QuestionCreate) -> int:
        """Append a question to a form (or place it at its explicit order)."""
        form = self._get_form(form_id)
        default_order = self.question_repo.count_for_form(form.id) + 1
        question = self._create_question(form, request, default_order)
        _log(form_logger, "question_added", form_id=form.id, question_id=question.id, order=question.question_order)
        return question.id

    @transactional
    def update_question(self, question_id: int, request: QuestionUpdate) -> None:
        question = self._get_question(question_id)
        changes = request.model_dump(exclude_none=True)
        for field, value in changes.items():
            setattr(question, field, value)
        self.session.add(question)
        _log(form_logger, "question_updated", question_id=question.id, fields=sorted(changes))

    @transactional
    def delete_question(self, question_id: int) -> None:
        """Delete a question and close the gap in its siblings' order."""
        question = self._get_question(question_id)
        form_id = question.form_id
        self.question_repo.delete(question)
        changed = resequence(self.question_repo.list_for_form(form_id), "question_order")
        _log(form_logger, "question_deleted", form_id=form_id, question_id=question_id, reordered=len(changed))

    def _create_question(self, form: models.ApplicationForm, request: QuestionCreate, default_order: int) -> models.Question:
        question = models.Question(
            form_id=form.id,
            question_type=request.question_type,
            content=request.content,
            required=bool(request.required),
            question_order=pick_order(request.question_order, default_order),
            placeholder=request.placeholder,
            help_text=request.help_text,
        )
        self.question_repo.add(question)
        # options on non-choice questions are ignored
        if question.question_type.is_choice:
            for position, option_request in enumerate(request.options, start=1):
                self.option_repo.add(models.QuestionOption(
                    question_id=question.id,
                    content=option_request.content,
                    option_order=pick_order(option_request.option_order, position),
                ))
        return question

    # --- options -------------------------------------------------------------

    @transactional
    def add_option(self, question_id: int, request: OptionCreate) -> int:
        question = self._get_question(question_id)
        if not question.question_type.is_choice:
            raise InvalidArgumentError("Options can only be added to choice type questions")
        default_order = self.option_repo.count_for_question(question.id) + 1
        option = models.QuestionOption(
            question_id=question.id,
            content=request.content,
            option_order=pick_order(request.option_order, default_order),
        )
        self.option_repo.add(option)
        _log(form_logger, "option_added", question_id=question.id, option_id=option.id, order=option.option_order)
        return option.id

    @transactional
    def update_option(self, option_id: int, request: OptionUpdate) -> None:
        option = self._get_option(option_id)
        if request.content is not None:
            option.content = request.content
        if request.option_order is not None:
            option.option_order = request.option_order
        self.session.add(option)
        _log(form_logger, "option_updated", question_id=option.question_id, option_id=option.id, order=option.option_order)

    @transactional
    def delete_option(self, option_id: int) -> None:
        """Delete an option and close the gap in its siblings' order."""
        option = self._get_option(option_id)
        question_id = option.question_id
        self.option_repo.delete(option)
        changed = resequence(self.option_repo.list_for_question(question_id), "option_order")
        _log(form_logger, "option_deleted", question_id=question_id, option_id=option_id, reordered=len(changed))

    # --- reads ---------------------------------------------------------------

    def get_form(self, form_id: int) -> FormDetail:
        return FormDetail.from_entity(self._get_form(form_id))

    def list_forms(self, offset: int = 0, limit: Optional[int] = None) -> List[FormListItem]:
        offset, limit = _page(offset, limit)
        return [FormListItem.from_entity(f) for f in self.form_repo.list(offset, limit)]

    def list_forms_by_status(self, status: models.FormStatus, offset: int = 0, limit: Optional[int] = None) -> List[FormListItem]:
        offset, limit = _page(offset, limit)
        forms = self.form_repo.list_by_status(models.FormStatus(status), offset, limit)
        return [FormListItem.from_entity(f) for f in forms]

    def search_forms(self, title: str, offset: int = 0, limit: Optional[int] = None) -> List[FormListItem]:
        offset, limit = _page(offset, limit)
        return [FormListItem.from_entity(f) for f in self.form_repo.search_by_title(title, offset, limit)]

    def list_active_forms(self) -> List[FormListItem]:
        """Forms an applicant can submit to right now."""
        return [FormListItem.from_entity(f) for f in self.form_repo.list_open(models.to_utc(self.clock()))]


class ApplicationService:
    """Submission, update, review and deletion of applications."""
    def __init__(self, session: Session, clock: Clock = models.utcnow):
        self.session = session
        self.clock = clock
        self.form_repo = repositories.FormRepository(session)
        self.question_repo = repositories.QuestionRepository(session)
        self.option_repo = repositories.OptionRepository(session)
        self.app_repo = repositories.ApplicationRepository(session)
        self.answer_repo = repositories.AnswerRepository(session)

    def _get_application(self, application_id: int) -> models.Application:
        application = self.app_repo.get(application_id)
        if not application:
            raise NotFoundError(f"Application not found with id: {application_id}")
        return application

    @transactional
    def submit(self, request: ApplicationCreate, identity: Optional[Identity] = None) -> int:
        """Create an application against an open form and return its id.

        Checks run in a fixed order: the form exists, it is PUBLISHED, its
        period has started and not ended, and the applicant holds no
        SUBMITTED/UNDER_REVIEW/ACCEPTED application for it. A logged-in
        applicant is identified by `user_id`, a guest by the email on the
        request.
        """
        identity = identity or Identity()
        form = self.form_repo.get(request.form_id)
        if not form:
            raise NotFoundError(f"ApplicationForm not found with id: {request.form_id}")
        now = models.to_utc(self.clock())
        try:
            self._check_accepting(form, now)
            if identity.is_logged_in:
                duplicate = self.app_repo.has_active_for_user(form.id, identity.user_id)
            else:
                duplicate = self.app_repo.has_active_for_email(form.id, request.applicant_email)
            if duplicate:
                raise InvalidStateError("already applied: an active application exists for this form")
        except InvalidStateError as exc:
            _log(app_logger, "submission_rejected", form_id=form.id, user_id=identity.user_id, reason=exc.message)
            raise

        status = request.status or models.ApplicationStatus.DRAFT
        application = models.Application(
            form_id=form.id,
            user_id=identity.user_id,
            applicant_name=request.applicant_name,
            applicant_email=request.applicant_email,
            applicant_phone=request.applicant_phone,
            status=status,
            submitted_at=now if status == models.ApplicationStatus.SUBMITTED else None,
        )
        self.app_repo.add(application)
        for answer_request in request.answers:
            self._save_answer(application, answer_request)
        _log(app_logger, "application_created", application_id=application.id, form_id=form.id,
             user_id=identity.user_id, status=status.value, answers=len(request.answers))
        return application.id

    @transactional
    def update(self, application_id: int, identity: Identity, request: ApplicationUpdate) -> None:
        """Update a DRAFT application owned by `identity`.

        Only non-null fields are applied. `status=SUBMITTED` submits the
        draft; any other requested status is ignored. Answers are upserted
        per question.
        """
        application = self._get_application(application_id)
        self._check_owner(application, identity, "update")
        if application.status != models.ApplicationStatus.DRAFT:
            raise InvalidStateError("only draft applications can be updated")

        if request.applicant_name is not None:
            application.applicant_name = request.applicant_name
        if request.applicant_email is not None:
            application.applicant_email = request.applicant_email
        if request.applicant_phone is not None:
            application.applicant_phone = request.applicant_phone
        if request.status == models.ApplicationStatus.SUBMITTED:
            application.status = models.ApplicationStatus.SUBMITTED
            application.submitted_at = models.to_utc(self.clock())
        self.session.add(application)

        for answer_request in request.answers or []:
            self._save_answer(application, answer_request)
        _log(app_logger, "application_updated", application_id=application.id, status=application.status.value)

    @transactional
    def set_status(self, application_id: int, status: models.ApplicationStatus, reviewer_comment: Optional[str] = None) -> None:
        """Administrator status change; any status may follow any other."""
        application = self._get_application(application_id)
        status = models.ApplicationStatus(status)
        application.status = status
        if status in models.REVIEW_STATUSES:
            application.reviewed_at = models.to_utc(self.clock())
        if reviewer_comment is not None:
            application.reviewer_comment = reviewer_comment
        self.session.add(application)
        _log(app_logger, "application_status_set", application_id=application.id, status=status.value)

    @transactional
    def delete(self, application_id: int, identity: Identity) -> None:
        """Applicant-side delete: owner only, and only while DRAFT."""
        application = self._get_application(application_id)
        self._check_owner(application, identity, "delete")
        if application.status != models.ApplicationStatus.DRAFT:
            raise InvalidStateError("only draft applications can be deleted")
        self.app_repo.delete(application)
        _log(app_logger, "application_deleted", application_id=application_id, by="owner")

    @transactional
    def admin_delete(self, application_id: int) -> None:
        """Privileged delete with no ownership or status restriction."""
        application = self._get_application(application_id)
        status = application.status
        self.app_repo.delete(application)
        _log(app_logger, "application_deleted", application_id=application_id, by="admin", status=status.value)

    # --- reads ---------------------------------------------------------------

    def get_application(self, application_id: int) -> ApplicationDetail:
        return ApplicationDetail.from_entity(self._get_application(application_id))

    def get_guest_application(self, application_id: int, email: str) -> ApplicationDetail:
        application = self.app_repo.get_by_id_and_email(application_id, normalize_email(email))
        if not application:
            raise NotFoundError("Application not found or email doesn't match")
        return ApplicationDetail.from_entity(application)

    def list_applications(self, offset: int = 0, limit: Optional[int] = None) -> List[ApplicationListItem]:
        offset, limit = _page(offset, limit)
        return [ApplicationListItem.from_entity(a) for a in self.app_repo.list(offset, limit)]

    def list_by_form(self, form_id: int, offset: int = 0, limit: Optional[int] = None) -> List[ApplicationListItem]:
        offset, limit = _page(offset, limit)
        return [ApplicationListItem.from_entity(a) for a in self.app_repo.list_by_form(form_id, offset, limit)]

    def list_by_status(self, status: models.ApplicationStatus, offset: int = 0, limit: Optional[int] = None) -> List[ApplicationListItem]:
        offset, limit = _page(offset, limit)
        apps = self.app_repo.list_by_status(models.ApplicationStatus(status), offset, limit)
        return [ApplicationListItem.from_entity(a) for a in apps]

    def list_by_user(self, user_id: int, offset: int = 0, limit: Optional[int] = None) -> List[ApplicationListItem]:
        offset, limit = _page(offset, limit)
        return [ApplicationListItem.from_entity(a) for a in self.app_repo.list_by_user(user_id, offset, limit)]

    def list_by_email(self, email: str, offset: int = 0, limit: Optional[int] = None) -> List[ApplicationListItem]:
        offset, limit = _page(offset, limit)
        return [ApplicationListItem.from_entity(a) for a in self.app_repo.list_by_email(normalize_email(email), offset, limit)]

    def status_counts(self, form_id: int) -> Dict[str, int]:
        """Number of applications per status for a form, zero-filled."""
        counts = self.app_repo.count_by_status_for_form(form_id)
        return {s.value: counts.get(s, 0) for s in models.ApplicationStatus}

    # --- helpers -------------------------------------------------------------

    def _check_accepting(self, form: models.ApplicationForm, now: datetime) -> None:
        if form.status != models.FormStatus.PUBLISHED:
            raise InvalidStateError("form not open: ApplicationForm is not open for applications")
        start, end = models.to_utc(form.start_date), models.to_utc(form.end_date)
        if start is not None and now < start:
            raise InvalidStateError("not started: application period has not started yet")
        if end is not None and now > end:
            raise InvalidStateError("ended: application period has ended")

    def _check_owner(self, application: models.Application, identity: Optional[Identity], action: str) -> None:
        if identity is not None and identity.is_logged_in:
            if application.user_id != identity.user_id:
                raise AccessDeniedError(f"You don't have permission to {action} this application")
            return
        if identity is None or identity.email is None or identity.email != application.applicant_email:
            raise AccessDeniedError("Email doesn't match the application")

    def _save_answer(self, application: models.Application, request: AnswerIn) -> models.ApplicationAnswer:
        """Create or overwrite the answer for one question of `application`."""
        question = self.question_repo.get(request.question_id)
        if not question:
            raise NotFoundError(f"Question not found with id: {request.question_id}")
        if question.form_id != application.form_id:
            raise InvalidArgumentError("Question does not belong to the application form")

        answer = self.answer_repo.get_for_question(application.id, question.id)
        if answer is None:
            answer = models.ApplicationAnswer(
                application_id=application.id,
                question_id=question.id,
                text_value=request.text_value,
            )
            self.session.add(answer)
            if question.question_type.is_choice and request.selected_option_ids:
                answer.selected_options = self._resolve_options(question, request.selected_option_ids)
        else:
            answer.text_value = request.text_value
            if question.question_type.is_choice:
                answer.selected_options = self._resolve_options(question, request.selected_option_ids or [])
        self.session.flush()
        return answer

    def _resolve_options(self, question: models.Question, option_ids: List[int]) -> List[models.QuestionOption]:
        found = self.option_repo.get_many(option_ids)
        missing = [i for i in option_ids if i not in found]
        if missing:
            raise NotFoundError(f"QuestionOption not found with id: {missing[0]}")
        for option in found.values():
            if option.question_id != question.id:
                raise InvalidArgumentError("Option does not belong to the question")
        return [found[i] for i in dict.fromkeys(option_ids)]
