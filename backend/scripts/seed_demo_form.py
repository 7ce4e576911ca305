"""CLI script to create a published demo recruitment form in the configured DB.
Usage: python scripts/seed_demo_form.py [--title TITLE] [--days DAYS]
"""
import argparse
from datetime import timedelta
from typing import Optional

from sqlmodel import Session

from labforms import services
from labforms.config import configure_logging
from labforms.database import engine, create_db_and_tables
from labforms.models import FormStatus, QuestionType, utcnow
from labforms.schemas import FormCreate, OptionCreate, QuestionCreate


def build_request(title: str, days: Optional[int]) -> FormCreate:
    """Return the demo form payload; `days` bounds the period from now when given."""
    now = utcnow()
    return FormCreate(
        title=title,
        description="Open call for undergraduate research assistants.",
        status=FormStatus.PUBLISHED,
        start_date=now if days else None,
        end_date=now + timedelta(days=days) if days else None,
        questions=[
            QuestionCreate(question_type=QuestionType.SHORT_TEXT, content="Student ID", required=True, placeholder="2025123456"),
            QuestionCreate(question_type=QuestionType.LONG_TEXT, content="Why do you want to join the lab?", required=True),
            QuestionCreate(
                question_type=QuestionType.SINGLE_CHOICE,
                content="Preferred research track",
                required=True,
                options=[OptionCreate(content="Systems"), OptionCreate(content="Security"), OptionCreate(content="Data")],
            ),
            QuestionCreate(
                question_type=QuestionType.MULTIPLE_CHOICE,
                content="Languages you are comfortable with",
                options=[OptionCreate(content="Python"), OptionCreate(content="Java"), OptionCreate(content="C")],
            ),
            QuestionCreate(question_type=QuestionType.EMAIL, content="Contact email"),
        ],
    )


def main(title: str, days: Optional[int] = None):
    """Create tables if needed and insert the demo form.

    The new form id is printed to stdout for a quick CLI feedback loop.
    """
    configure_logging()
    create_db_and_tables()
    with Session(engine) as session:
        svc = services.FormService(session)
        form_id = svc.create_form(build_request(title, days))
        detail = svc.get_form(form_id)
    print(f'Created form {form_id}: "{detail.title}" with {len(detail.questions)} questions')


if __name__ == '__main__':
    parser = argparse.ArgumentParser()
    parser.add_argument('--title', default='Lab Research Assistant Recruitment', help='Form title')
    parser.add_argument('--days', type=int, help='Close the form this many days from now')
    args = parser.parse_args()
    main(title=args.title, days=args.days)
