import random
from collections import Counter

import pytest
from sqlalchemy import func, select

from exam_variants.config import settings
from exam_variants.errors import (
    InsufficientPoolError,
    InvalidRequestError,
    NotFoundError,
    UniqueNumberConflictError,
)
from exam_variants.models import GeneratedTest, GeneratedTestVariant, QuestionType
from exam_variants.schemas.snapshot import OptionSnapshot, QuestionSnapshot
from exam_variants.services import variant_store
from exam_variants.services.question_bank import SqlQuestionBank
from exam_variants.services.variant_generator import (
    build_variant_questions,
    generate_test,
    generate_unique_number,
    shuffle_options,
)


class ScriptedRandom(random.Random):
    """Random whose randrange replays a fixed script (shuffles stay seeded)."""

    def __init__(self, script):
        super().__init__(99)
        self._script = list(script)

    def randrange(self, *args, **kwargs):
        if len(self._script) > 1:
            return self._script.pop(0)
        return self._script[0]


async def count_rows(db, model):
    result = await db.execute(select(func.count()).select_from(model))
    return result.scalar_one()


class TestUniqueNumber:
    def test_combines_clock_digits_and_random_suffix(self):
        code = generate_unique_number(ScriptedRandom([42]), clock=lambda: 1_700_000_123.5)

        assert code == "0123500042"
        assert len(code) == 10

    def test_short_clock_is_left_padded(self):
        code = generate_unique_number(ScriptedRandom([5]), clock=lambda: 1.25)

        assert code == "0001250005"


class TestQuestionSelection:
    def _pool(self, size):
        return [
            QuestionSnapshot(
                source_id=n,
                text=f"q{n}",
                type=QuestionType.MULTIPLE_CHOICE,
                options=tuple(
                    OptionSnapshot(text=f"{n}-{k}", is_correct=(k == 0), source_id=n * 10 + k)
                    for k in range(4)
                ),
            )
            for n in range(size)
        ]

    def test_picks_distinct_questions(self, rng):
        chosen = build_variant_questions(self._pool(20), 10, rng)

        ids = [q.source_id for q in chosen]
        assert len(ids) == 10
        assert len(set(ids)) == 10

    def test_options_are_a_permutation_with_one_correct(self, rng):
        pool = self._pool(20)
        by_id = {q.source_id: q for q in pool}

        for question in build_variant_questions(pool, 10, rng):
            original = by_id[question.source_id]
            assert Counter(question.options) == Counter(original.options)
            assert sum(o.is_correct for o in question.options) == 1

    def test_same_seed_gives_same_variant(self):
        pool = self._pool(20)

        first = build_variant_questions(pool, 10, random.Random(5))
        second = build_variant_questions(pool, 10, random.Random(5))

        assert first == second

    def test_true_false_and_essay_keep_bank_order(self, rng):
        true_false = QuestionSnapshot(
            text="tf",
            type=QuestionType.TRUE_FALSE,
            options=(OptionSnapshot(text="True", is_correct=True), OptionSnapshot(text="False")),
        )
        essay = QuestionSnapshot(text="essay", type=QuestionType.ESSAY)

        for _ in range(20):
            assert shuffle_options(true_false, rng) is true_false
            assert shuffle_options(essay, rng) is essay


class TestGenerateTest:
    async def test_generates_requested_variants(self, db, subject, rng):
        batch = await generate_test(
            db, SqlQuestionBank(db),
            subject_id=subject.id, question_count=10, variant_count=3, teacher_id=7, rng=rng,
        )

        assert [v.variant_number for v in batch.variants] == [1, 2, 3]
        codes = [v.unique_number for v in batch.variants]
        assert len(set(codes)) == 3
        assert all(len(code) == 10 and code.isdigit() for code in codes)
        for variant in batch.variants:
            questions = variant.questions
            assert len(questions) == 10
            assert len({q.source_id for q in questions}) == 10

        assert await count_rows(db, GeneratedTestVariant) == 3
        generated_test = batch.generated_test
        assert generated_test.title == "Algebra test"
        assert generated_test.subject_name == "Algebra"
        assert generated_test.time_limit == settings.default_time_limit
        assert generated_test.difficulty == "mixed"

    async def test_pool_smaller_than_question_count(self, db, small_subject, rng):
        with pytest.raises(InsufficientPoolError, match="only 5 questions"):
            await generate_test(
                db, SqlQuestionBank(db),
                subject_id=small_subject.id, question_count=10, variant_count=2, teacher_id=1, rng=rng,
            )

        assert await count_rows(db, GeneratedTest) == 0

    async def test_empty_pool(self, db, empty_subject, rng):
        with pytest.raises(InsufficientPoolError, match="no questions"):
            await generate_test(
                db, SqlQuestionBank(db),
                subject_id=empty_subject.id, question_count=1, variant_count=1, teacher_id=1, rng=rng,
            )

    async def test_unknown_subject(self, db, rng):
        with pytest.raises(NotFoundError):
            await generate_test(
                db, SqlQuestionBank(db),
                subject_id=999, question_count=1, variant_count=1, teacher_id=1, rng=rng,
            )

    @pytest.mark.parametrize("question_count,variant_count", [(0, 1), (1, 0), (-3, 2)])
    async def test_rejects_non_positive_counts(self, db, subject, rng, question_count, variant_count):
        with pytest.raises(InvalidRequestError):
            await generate_test(
                db, SqlQuestionBank(db),
                subject_id=subject.id, question_count=question_count,
                variant_count=variant_count, teacher_id=1, rng=rng,
            )

    async def test_regenerates_number_taken_in_same_batch(self, db, subject, fixed_clock):
        batch = await generate_test(
            db, SqlQuestionBank(db),
            subject_id=subject.id, question_count=3, variant_count=2, teacher_id=1,
            rng=ScriptedRandom([7, 7, 8]), clock=fixed_clock,
        )

        assert [v.unique_number for v in batch.variants] == ["0123500007", "0123500008"]

    async def test_regenerates_number_already_stored(self, db, subject, fixed_clock):
        await generate_test(
            db, SqlQuestionBank(db),
            subject_id=subject.id, question_count=3, variant_count=1, teacher_id=1,
            rng=ScriptedRandom([7]), clock=fixed_clock,
        )

        batch = await generate_test(
            db, SqlQuestionBank(db),
            subject_id=subject.id, question_count=3, variant_count=1, teacher_id=1,
            rng=ScriptedRandom([7, 9]), clock=fixed_clock,
        )

        assert batch.variants[0].unique_number == "0123500009"

    async def test_exhausted_retries_roll_back_whole_test(self, db, subject, fixed_clock):
        with pytest.raises(UniqueNumberConflictError):
            await generate_test(
                db, SqlQuestionBank(db),
                subject_id=subject.id, question_count=3, variant_count=2, teacher_id=1,
                rng=ScriptedRandom([7]), clock=fixed_clock,
            )

        assert await count_rows(db, GeneratedTest) == 0
        assert await count_rows(db, GeneratedTestVariant) == 0

    async def test_regenerates_number_rejected_on_insert(self, db, subject, fixed_clock, monkeypatch):
        await generate_test(
            db, SqlQuestionBank(db),
            subject_id=subject.id, question_count=3, variant_count=1, teacher_id=1,
            rng=ScriptedRandom([7]), clock=fixed_clock,
        )

        # Another writer stores the number between the existence check and the insert
        async def not_seen(db, unique_number):
            return False

        monkeypatch.setattr(variant_store, "unique_number_exists", not_seen)

        batch = await generate_test(
            db, SqlQuestionBank(db),
            subject_id=subject.id, question_count=3, variant_count=2, teacher_id=1,
            rng=ScriptedRandom([7, 9, 10]), clock=fixed_clock,
        )

        assert [v.unique_number for v in batch.variants] == ["0123500009", "0123500010"]
        assert [v.variant_number for v in batch.variants] == [1, 2]
        assert await count_rows(db, GeneratedTest) == 2
        assert await count_rows(db, GeneratedTestVariant) == 3

    async def test_insert_collisions_exhaust_retries_and_roll_back(self, db, subject, fixed_clock, monkeypatch):
        await generate_test(
            db, SqlQuestionBank(db),
            subject_id=subject.id, question_count=3, variant_count=1, teacher_id=1,
            rng=ScriptedRandom([7]), clock=fixed_clock,
        )

        async def not_seen(db, unique_number):
            return False

        monkeypatch.setattr(variant_store, "unique_number_exists", not_seen)

        with pytest.raises(UniqueNumberConflictError, match=f"after {settings.unique_number_max_attempts} attempts"):
            await generate_test(
                db, SqlQuestionBank(db),
                subject_id=subject.id, question_count=3, variant_count=1, teacher_id=1,
                rng=ScriptedRandom([7]), clock=fixed_clock,
            )

        assert await count_rows(db, GeneratedTest) == 1
        assert await count_rows(db, GeneratedTestVariant) == 1
