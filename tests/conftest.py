import random

import pytest
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from exam_variants.database import Base
from exam_variants import models  # noqa: F401
from exam_variants.models import AnswerOption, Question, QuestionType, Subject
from exam_variants.services.question_bank import SqlQuestionBank
from exam_variants.services.variant_generator import generate_test


@pytest.fixture
async def engine():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(
        bind=engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )


@pytest.fixture
async def db(session_factory):
    async with session_factory() as session:
        yield session


def mc_question(text, options, correct, order=0):
    """A multiple-choice bank question; ``correct`` is the index of the right option."""
    return Question(
        text=text,
        type=QuestionType.MULTIPLE_CHOICE,
        order=order,
        options=[
            AnswerOption(text=option, is_correct=(i == correct), order=i)
            for i, option in enumerate(options)
        ],
    )


async def seed_subject(session, name, question_count, with_mixed_types=False):
    subject = Subject(name=name)
    for n in range(question_count):
        subject.questions.append(
            mc_question(f"{name} question {n + 1}", [f"q{n + 1}-opt{k}" for k in range(4)], correct=n % 4, order=n)
        )
    if with_mixed_types:
        subject.questions.append(Question(
            text=f"{name} true or false",
            type=QuestionType.TRUE_FALSE,
            order=question_count,
            options=[
                AnswerOption(text="True", is_correct=True, order=0),
                AnswerOption(text="False", is_correct=False, order=1),
            ],
        ))
        subject.questions.append(Question(
            text=f"{name} essay",
            type=QuestionType.ESSAY,
            order=question_count + 1,
        ))
    session.add(subject)
    await session.commit()
    return subject


@pytest.fixture
async def subject(db):
    """Subject with 20 multiple-choice questions."""
    return await seed_subject(db, "Algebra", 20)


@pytest.fixture
async def small_subject(db):
    return await seed_subject(db, "Geometry", 5)


@pytest.fixture
async def mixed_subject(db):
    """Three multiple-choice questions plus one true/false and one essay."""
    return await seed_subject(db, "Physics", 3, with_mixed_types=True)


@pytest.fixture
def rng():
    return random.Random(1234)


@pytest.fixture
def fixed_clock():
    return lambda: 1_700_000_123.5


@pytest.fixture
async def empty_subject(db):
    return await seed_subject(db, "Empty", 0)


@pytest.fixture
async def generated(db, subject, rng):
    """A committed test with two 10-question variants from the Algebra subject."""
    return await generate_test(
        db, SqlQuestionBank(db),
        subject_id=subject.id, question_count=10, variant_count=2, teacher_id=7,
        title="Algebra quiz", include_answers=True, rng=rng,
    )
