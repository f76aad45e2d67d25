import random

import pytest
from httpx import ASGITransport, AsyncClient

from exam_variants.api.v0.generated_tests import get_rng
from exam_variants.database import get_db
from exam_variants.main import app
from exam_variants.services import gcs_service
from exam_variants.services.auth_service import Role, auth_service
from exam_variants.services.email_service import get_email_service
from exam_variants.services.gcs_service import get_gcs_service, get_storage_factory

from fakes import FakeProvider, FakeStorage


def bearer(user_id=7, role=Role.TEACHER, center_id=None):
    token = auth_service.create_access_token(user_id, role, center_id=center_id)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
async def client(session_factory):
    async def override_get_db():
        async with session_factory() as session:
            yield session

    provider = FakeProvider(failing={"bad@example.com"})
    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_rng] = lambda: random.Random(3)
    app.dependency_overrides[get_gcs_service] = FakeStorage
    app.dependency_overrides[get_storage_factory] = lambda: FakeStorage
    app.dependency_overrides[get_email_service] = lambda: provider

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


async def create_test(client, subject_id, **overrides):
    body = {"subject_id": subject_id, "question_count": 10, "variant_count": 2, "include_answers": True}
    body.update(overrides)
    return await client.post("/api/v0/generated-tests", json=body, headers=bearer())


class TestGeneratedTestsApi:
    async def test_requires_authentication(self, client, subject):
        response = await client.post(
            "/api/v0/generated-tests",
            json={"subject_id": subject.id, "question_count": 10, "variant_count": 2},
        )

        assert response.status_code == 401

    async def test_students_cannot_generate(self, client, subject):
        response = await client.post(
            "/api/v0/generated-tests",
            json={"subject_id": subject.id, "question_count": 10, "variant_count": 2},
            headers=bearer(user_id=50, role=Role.STUDENT),
        )

        assert response.status_code == 403

    async def test_generate(self, client, subject):
        response = await create_test(client, subject.id, title="Week 3")

        assert response.status_code == 201
        data = response.json()
        assert data["generated_test"]["title"] == "Week 3"
        assert data["generated_test"]["teacher_id"] == 7
        assert len(data["variants"]) == 2
        for variant in data["variants"]:
            assert len(variant["unique_number"]) == 10
            assert len(variant["questions"]) == 10

    async def test_insufficient_pool(self, client, small_subject):
        response = await create_test(client, small_subject.id)

        assert response.status_code == 400
        assert "only 5 questions" in response.json()["detail"]

    async def test_unknown_subject(self, client, subject):
        response = await create_test(client, 9999)

        assert response.status_code == 404

    async def test_list_only_own_tests(self, client, subject):
        await create_test(client, subject.id)

        mine = await client.get("/api/v0/generated-tests", headers=bearer())
        theirs = await client.get("/api/v0/generated-tests", headers=bearer(user_id=8))
        admin = await client.get("/api/v0/generated-tests", headers=bearer(user_id=1, role=Role.ADMIN))

        assert len(mine.json()) == 1
        assert theirs.json() == []
        assert len(admin.json()) == 1

    async def test_other_teacher_is_forbidden(self, client, subject):
        test_id = (await create_test(client, subject.id)).json()["generated_test"]["id"]

        response = await client.get(f"/api/v0/generated-tests/{test_id}", headers=bearer(user_id=8))

        assert response.status_code == 403

    async def test_variant_lookup_by_code(self, client, subject):
        created = (await create_test(client, subject.id)).json()
        code = created["variants"][1]["unique_number"]

        response = await client.get(f"/api/v0/generated-tests/variants/{code}", headers=bearer())

        assert response.status_code == 200
        assert response.json()["variant_number"] == 2
        assert response.json()["questions"] == created["variants"][1]["questions"]

    async def test_printable_pdf_and_answer_key(self, client, subject):
        test_id = (await create_test(client, subject.id)).json()["generated_test"]["id"]

        pdf = await client.get(f"/api/v0/generated-tests/{test_id}/pdf", headers=bearer())
        single = await client.get(f"/api/v0/generated-tests/{test_id}/pdf?variant_number=2", headers=bearer())
        missing = await client.get(f"/api/v0/generated-tests/{test_id}/pdf?variant_number=5", headers=bearer())
        key = await client.get(f"/api/v0/generated-tests/{test_id}/answer-key.pdf", headers=bearer())

        assert pdf.headers["content-type"] == "application/pdf"
        assert pdf.content.startswith(b"%PDF")
        assert single.status_code == 200
        assert missing.status_code == 404
        assert key.status_code == 200

    async def test_answer_key_refused_without_include_answers(self, client, subject):
        test_id = (await create_test(client, subject.id, include_answers=False)).json()["generated_test"]["id"]

        response = await client.get(f"/api/v0/generated-tests/{test_id}/answer-key.pdf", headers=bearer())

        assert response.status_code == 400

    async def test_printable_links(self, client, subject):
        test_id = (await create_test(client, subject.id)).json()["generated_test"]["id"]

        response = await client.post(f"/api/v0/generated-tests/{test_id}/printable-links", headers=bearer())

        links = response.json()["links"]
        assert [link["kind"] for link in links] == ["variant", "variant", "answer_key"]
        assert links[0]["url"].startswith("https://storage.example/printables/")

    async def test_distribute_reports_tally(self, client, subject):
        test_id = (await create_test(client, subject.id)).json()["generated_test"]["id"]

        response = await client.post(
            f"/api/v0/generated-tests/{test_id}/distribute",
            json={"recipients": ["good@example.com", "bad@example.com"], "as_links": False},
            headers=bearer(),
        )

        assert response.status_code == 200
        assert (response.json()["sent"], response.json()["failed"]) == (1, 1)

    async def test_distribute_attachments_without_cloud_storage(self, client, subject, monkeypatch):
        def no_credentials():
            raise RuntimeError("default credentials were not found")

        app.dependency_overrides.pop(get_storage_factory)
        app.dependency_overrides.pop(get_gcs_service)
        monkeypatch.setattr(gcs_service, "_gcs_service", None)
        monkeypatch.setattr(gcs_service, "GCSService", no_credentials)
        test_id = (await create_test(client, subject.id)).json()["generated_test"]["id"]

        response = await client.post(
            f"/api/v0/generated-tests/{test_id}/distribute",
            json={"recipients": ["good@example.com"], "as_links": False},
            headers=bearer(),
        )

        assert response.status_code == 200
        assert (response.json()["sent"], response.json()["failed"]) == (1, 0)

    async def test_distribute_as_links_uploads_printables(self, client, subject):
        storage = FakeStorage()
        app.dependency_overrides[get_storage_factory] = lambda: (lambda: storage)
        test_id = (await create_test(client, subject.id)).json()["generated_test"]["id"]

        response = await client.post(
            f"/api/v0/generated-tests/{test_id}/distribute",
            json={"recipients": ["good@example.com"], "as_links": True},
            headers=bearer(),
        )

        assert response.json()["sent"] == 1
        assert len(storage.uploads) == 3
        assert f"printables/{test_id}/answer-key.pdf" in storage.uploads

    async def test_delete(self, client, subject):
        test_id = (await create_test(client, subject.id)).json()["generated_test"]["id"]

        deleted = await client.delete(f"/api/v0/generated-tests/{test_id}", headers=bearer())
        after = await client.get(f"/api/v0/generated-tests/{test_id}", headers=bearer())

        assert deleted.status_code == 204
        assert after.status_code == 404


class TestGradingAndResultsApi:
    async def _variant(self, client, subject):
        created = (await create_test(client, subject.id)).json()
        variant = created["variants"][0]
        key = []
        for question in variant["questions"]:
            correct = [i for i, o in enumerate(question["options"]) if o["is_correct"]]
            key.append("ABCDEF"[correct[0]])
        return variant["unique_number"], key

    async def test_grade_and_record_result(self, client, subject):
        code, key = await self._variant(client, subject)
        answers = list(key)
        answers[-1] = "-"

        graded = await client.post(
            f"/api/v0/grading/variants/{code}/grade",
            json={"answers": answers, "student_id": 21},
            headers=bearer(center_id=4),
        )

        assert graded.status_code == 200
        result = graded.json()["result"]
        assert (result["correct_count"], result["blank_count"], result["total"]) == (9, 1, 10)
        assert result["score"] == 90.0

        listing = await client.get("/api/v0/results?student_id=21", headers=bearer())
        assert listing.json()["total"] == 1
        row = listing.json()["items"][0]
        assert row["unique_number"] == code
        assert row["center_id"] == 4

        scans = await client.get(f"/api/v0/grading/variants/{code}/scans", headers=bearer())
        assert len(scans.json()) == 1

    async def test_grade_rejects_non_list_answers(self, client, subject):
        code, _ = await self._variant(client, subject)

        response = await client.post(
            f"/api/v0/grading/variants/{code}/grade",
            json={"answers": "ABCD"},
            headers=bearer(),
        )

        assert response.status_code == 400

    async def test_grade_unknown_code(self, client, subject):
        response = await client.post(
            "/api/v0/grading/variants/0000000000/grade",
            json={"answers": []},
            headers=bearer(),
        )

        assert response.status_code == 404

    async def test_manual_entry_then_correction(self, client, subject):
        code, _ = await self._variant(client, subject)

        manual = await client.post(
            "/api/v0/results/manual-by-variant",
            json={"unique_number": code, "student_id": 30, "total": 10, "correct_count": 4},
            headers=bearer(),
        )
        again = await client.post(
            "/api/v0/results/manual-by-variant",
            json={"unique_number": code, "student_id": 30, "total": 10, "correct_count": 5},
            headers=bearer(),
        )
        assert manual.json()["id"] == again.json()["id"]

        corrected = await client.patch(
            f"/api/v0/results/{manual.json()['id']}/counts",
            json={"correct_count": 6, "wrong_count": 3},
            headers=bearer(),
        )
        assert corrected.status_code == 200
        assert (corrected.json()["blank_count"], corrected.json()["score"]) == (1, 60.0)

        invalid = await client.patch(
            f"/api/v0/results/{manual.json()['id']}/counts",
            json={"correct_count": 9, "wrong_count": 3},
            headers=bearer(),
        )
        assert invalid.status_code == 400

    async def test_students_see_only_their_results(self, client, subject):
        code, _ = await self._variant(client, subject)
        for student_id in (30, 31):
            await client.post(
                "/api/v0/results/manual-by-variant",
                json={"unique_number": code, "student_id": student_id, "total": 10, "correct_count": 4},
                headers=bearer(),
            )

        listing = await client.get("/api/v0/results", headers=bearer(user_id=31, role=Role.STUDENT))

        assert listing.json()["total"] == 1
        assert listing.json()["items"][0]["student_id"] == 31


class TestHealth:
    async def test_health(self, client):
        response = await client.get("/health")

        assert response.json() == {"status": "healthy"}
