from datetime import datetime, timezone

import pytest
from sqlalchemy.pool import StaticPool
from sqlmodel import Session

from labforms import services
from labforms.database import make_engine, create_db_and_tables
from labforms.models import FormStatus, QuestionType
from labforms.schemas import FormCreate, OptionCreate, QuestionCreate


class FrozenClock:
    """Callable clock whose time tests can move by assigning `now`."""
    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now


@pytest.fixture
def engine():
    """Fresh in-memory SQLite database per test."""
    eng = make_engine("sqlite://", poolclass=StaticPool)
    create_db_and_tables(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def session(engine):
    with Session(engine) as s:
        yield s


@pytest.fixture
def clock():
    return FrozenClock(datetime(2025, 3, 10, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def form_service(session, clock):
    return services.FormService(session, clock=clock)


@pytest.fixture
def app_service(session, clock):
    return services.ApplicationService(session, clock=clock)


@pytest.fixture
def published_form(form_service):
    """A PUBLISHED form with one SHORT_TEXT and one SINGLE_CHOICE question (two options)."""
    form_id = form_service.create_form(FormCreate(
        title="2025 Research Intern",
        status=FormStatus.PUBLISHED,
        questions=[
            QuestionCreate(question_type=QuestionType.SHORT_TEXT, content="Your name?", required=True),
            QuestionCreate(
                question_type=QuestionType.SINGLE_CHOICE,
                content="Track?",
                options=[OptionCreate(content="Systems"), OptionCreate(content="Security")],
            ),
        ],
    ))
    return form_service.get_form(form_id)
