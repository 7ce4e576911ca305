from datetime import timedelta

import pytest
from pydantic import ValidationError

from labforms import models
from labforms.errors import InvalidArgumentError, InvalidStateError, NotFoundError
from labforms.models import ApplicationStatus, FormStatus, QuestionType
from labforms.schemas import (
    AnswerIn,
    ApplicationCreate,
    FormCreate,
    FormUpdate,
    Identity,
    OptionCreate,
    QuestionCreate,
)


def _request(form_id, email="a@x.com", status=None, answers=None):
    return ApplicationCreate(
        form_id=form_id,
        applicant_name="Kim Applicant",
        applicant_email=email,
        status=status,
        answers=answers or [],
    )


def test_round_trip_text_and_choice_answers(app_service, published_form):
    text_q, choice_q = published_form.questions
    picked = choice_q.options[1]
    app_id = app_service.submit(_request(published_form.id, status=ApplicationStatus.SUBMITTED, answers=[
        AnswerIn(question_id=text_q.id, text_value="Kim"),
        AnswerIn(question_id=choice_q.id, selected_option_ids=[picked.id]),
    ]), Identity.guest())

    detail = app_service.get_application(app_id)
    assert detail.status == ApplicationStatus.SUBMITTED
    assert detail.submitted_at is not None
    assert [a.question_id for a in detail.answers] == [text_q.id, choice_q.id]
    assert detail.answers[0].text_value == "Kim"
    assert [o.content for o in detail.answers[1].selected_options] == ["Security"]
    assert detail.answers[1].question_type == QuestionType.SINGLE_CHOICE


def test_draft_submission_has_no_submitted_at(app_service, published_form, clock):
    app_id = app_service.submit(_request(published_form.id), Identity.guest())
    detail = app_service.get_application(app_id)
    assert detail.status == ApplicationStatus.DRAFT
    assert detail.submitted_at is None


def test_submit_to_missing_form(app_service):
    with pytest.raises(NotFoundError):
        app_service.submit(_request(4242), Identity.guest())


@pytest.mark.parametrize("status", [FormStatus.DRAFT, FormStatus.CLOSED])
def test_submit_to_unpublished_form_fails_regardless_of_dates(form_service, app_service, clock, status):
    form_id = form_service.create_form(FormCreate(
        title="Not open",
        status=status,
        start_date=clock.now - timedelta(days=1),
        end_date=clock.now + timedelta(days=1),
    ))
    with pytest.raises(InvalidStateError, match="form not open"):
        app_service.submit(_request(form_id), Identity.guest())


def test_submit_before_start_and_after_end(form_service, app_service, clock):
    form_id = form_service.create_form(FormCreate(
        title="Windowed",
        status=FormStatus.PUBLISHED,
        start_date=clock.now + timedelta(hours=1),
        end_date=clock.now + timedelta(days=7),
    ))
    with pytest.raises(InvalidStateError, match="not started"):
        app_service.submit(_request(form_id), Identity.guest())

    clock.now = clock.now + timedelta(days=8)
    with pytest.raises(InvalidStateError, match="ended"):
        app_service.submit(_request(form_id), Identity.guest())

    clock.now = clock.now - timedelta(days=4)
    assert app_service.submit(_request(form_id), Identity.guest())


def test_period_bounds_are_inclusive(form_service, app_service, clock):
    form_id = form_service.create_form(FormCreate(
        title="Exact bounds", status=FormStatus.PUBLISHED, start_date=clock.now, end_date=clock.now,
    ))
    assert app_service.submit(_request(form_id), Identity.guest())


@pytest.mark.parametrize("active", [ApplicationStatus.SUBMITTED, ApplicationStatus.UNDER_REVIEW, ApplicationStatus.ACCEPTED])
def test_active_application_blocks_same_email(app_service, published_form, active):
    first = app_service.submit(_request(published_form.id, status=ApplicationStatus.SUBMITTED), Identity.guest())
    app_service.set_status(first, active)
    with pytest.raises(InvalidStateError, match="already applied"):
        app_service.submit(_request(published_form.id), Identity.guest())


@pytest.mark.parametrize("inactive", [ApplicationStatus.CANCELLED, ApplicationStatus.REJECTED])
def test_cancelled_or_rejected_application_allows_resubmission(app_service, published_form, inactive):
    first = app_service.submit(_request(published_form.id, status=ApplicationStatus.SUBMITTED), Identity.guest())
    app_service.set_status(first, inactive)
    second = app_service.submit(_request(published_form.id, status=ApplicationStatus.SUBMITTED), Identity.guest())
    assert second != first


def test_draft_does_not_block_but_submitted_does(app_service, published_form):
    first = app_service.submit(_request(published_form.id, status=ApplicationStatus.DRAFT), Identity.guest())
    second = app_service.submit(_request(published_form.id, status=ApplicationStatus.SUBMITTED), Identity.guest())
    assert second != first
    with pytest.raises(InvalidStateError):
        app_service.submit(_request(published_form.id, status=ApplicationStatus.SUBMITTED), Identity.guest())


def test_duplicate_check_uses_user_id_for_logged_in_callers(app_service, published_form):
    app_service.submit(_request(published_form.id, status=ApplicationStatus.SUBMITTED), Identity.user(7))
    # same user with another email is still a duplicate
    with pytest.raises(InvalidStateError):
        app_service.submit(_request(published_form.id, email="other@x.com"), Identity.user(7))
    # a different user may reuse the email
    assert app_service.submit(_request(published_form.id), Identity.user(8))


def test_answer_to_question_of_other_form_is_rejected(form_service, app_service, published_form):
    other_id = form_service.create_form(FormCreate(
        title="Other form",
        status=FormStatus.PUBLISHED,
        questions=[QuestionCreate(question_type=QuestionType.SHORT_TEXT, content="Elsewhere")],
    ))
    foreign_question = form_service.get_form(other_id).questions[0]
    with pytest.raises(InvalidArgumentError, match="does not belong to the application form"):
        app_service.submit(_request(published_form.id, answers=[
            AnswerIn(question_id=foreign_question.id, text_value="x"),
        ]), Identity.guest())


def test_option_of_other_question_is_rejected(form_service, app_service, published_form):
    choice_q = published_form.questions[1]
    other_q_id = form_service.add_question(published_form.id, QuestionCreate(
        question_type=QuestionType.MULTIPLE_CHOICE, content="Other", options=[OptionCreate(content="Z")],
    ))
    foreign_option = next(q for q in form_service.get_form(published_form.id).questions if q.id == other_q_id).options[0]
    with pytest.raises(InvalidArgumentError, match="Option does not belong"):
        app_service.submit(_request(published_form.id, answers=[
            AnswerIn(question_id=choice_q.id, selected_option_ids=[foreign_option.id]),
        ]), Identity.guest())


def test_unknown_question_or_option_is_not_found(app_service, published_form):
    with pytest.raises(NotFoundError):
        app_service.submit(_request(published_form.id, answers=[AnswerIn(question_id=9999, text_value="x")]), Identity.guest())
    with pytest.raises(NotFoundError):
        app_service.submit(_request(published_form.id, answers=[
            AnswerIn(question_id=published_form.questions[1].id, selected_option_ids=[9999]),
        ]), Identity.guest())


def test_rejected_submission_persists_nothing(app_service, published_form):
    good = AnswerIn(question_id=published_form.questions[0].id, text_value="ok")
    bad = AnswerIn(question_id=9999, text_value="boom")
    with pytest.raises(NotFoundError):
        app_service.submit(_request(published_form.id, answers=[good, bad]), Identity.guest())
    assert app_service.list_by_form(published_form.id) == []


def test_selected_options_ignored_for_text_questions(app_service, published_form):
    text_q, choice_q = published_form.questions
    app_id = app_service.submit(_request(published_form.id, answers=[
        AnswerIn(question_id=text_q.id, text_value="t", selected_option_ids=[choice_q.options[0].id]),
    ]), Identity.guest())
    assert app_service.get_application(app_id).answers[0].selected_options == []


def test_repeated_question_in_one_request_keeps_single_answer(app_service, published_form):
    text_q = published_form.questions[0]
    app_id = app_service.submit(_request(published_form.id, answers=[
        AnswerIn(question_id=text_q.id, text_value="first"),
        AnswerIn(question_id=text_q.id, text_value="second"),
    ]), Identity.guest())
    answers = app_service.get_application(app_id).answers
    assert len(answers) == 1
    assert answers[0].text_value == "second"


def test_logged_in_submission_records_user(app_service, published_form):
    app_id = app_service.submit(_request(published_form.id), Identity.user(3))
    assert [a.id for a in app_service.list_by_user(3)] == [app_id]


def test_create_request_validation():
    with pytest.raises(ValidationError):
        ApplicationCreate(form_id=1, applicant_name="n", applicant_email="not-an-email")
    with pytest.raises(ValidationError):
        ApplicationCreate(form_id=1, applicant_name="n", applicant_email="a@x.com", status=ApplicationStatus.ACCEPTED)
    with pytest.raises(ValidationError):
        ApplicationCreate(form_id=1, applicant_name="  ", applicant_email="a@x.com")


def test_closing_a_form_stops_new_submissions(form_service, app_service, published_form):
    assert app_service.submit(_request(published_form.id), Identity.guest())
    form_service.update_form(published_form.id, FormUpdate(title=published_form.title, status=FormStatus.CLOSED))
    with pytest.raises(InvalidStateError):
        app_service.submit(_request(published_form.id, email="b@x.com"), Identity.guest())


def test_no_application_row_created_for_rejected_duplicate(app_service, published_form, session):
    from sqlmodel import select

    app_service.submit(_request(published_form.id, status=ApplicationStatus.SUBMITTED), Identity.guest())
    with pytest.raises(InvalidStateError):
        app_service.submit(_request(published_form.id, status=ApplicationStatus.SUBMITTED), Identity.guest())
    rows = session.exec(select(models.Application)).all()
    assert len(rows) == 1
