"""Cached company/job reads and the invalidation that follows every write."""

import pytest

from jobboard.service.errors import ForbiddenError, NotFoundError
from jobboard.storage.models import JobType

JOB = dict(
    title="Backend Engineer",
    description="Build the job board",
    type=JobType.FULL_TIME,
    application_link="https://acme.example/apply",
)

MISSING_ID = "00000000-0000-0000-0000-000000000000"


class TestReads:
    async def test_get_company_is_cached_and_public(self, runtime, make_company, fake_redis):
        company = make_company()
        first = await runtime.companies.get(company.id)
        runtime.store.update_company(company.id, name="Renamed behind the cache")
        second = await runtime.companies.get(company.id)

        assert first == second
        assert first["name"] == "Acme Corp"
        assert "password_hash" not in first
        assert fake_redis.exists(f"company_{company.id}")

    async def test_missing_entities(self, runtime):
        with pytest.raises(NotFoundError) as exc_info:
            await runtime.companies.get(MISSING_ID)
        assert exc_info.value.message == f"Company with id '{MISSING_ID}' doesn't exist"
        with pytest.raises(NotFoundError) as exc_info:
            await runtime.jobs.get(MISSING_ID)
        assert exc_info.value.message == f"Job with id '{MISSING_ID}' doesn't exist"

    async def test_listing_page_info(self, runtime, make_company):
        company = make_company()
        for n in range(5):
            await runtime.jobs.post_job(company.id, **{**JOB, "title": f"Job {n}"})

        page = await runtime.jobs.list(2, 2)
        assert page["info"] == {
            "total": 5,
            "current_page": 2,
            "next_page": 3,
            "prev_page": 1,
            "last_page": 3,
            "per_page": 2,
        }
        assert [job["title"] for job in page["data"]] == ["Job 2", "Job 1"]

    async def test_search_is_case_insensitive(self, runtime, make_company):
        company = make_company()
        await runtime.jobs.post_job(company.id, **{**JOB, "title": "Python Developer"})
        await runtime.jobs.post_job(company.id, **{**JOB, "title": "Designer", "description": "Figma"})

        page = await runtime.jobs.list(1, 20, "PYTHON")
        assert [job["title"] for job in page["data"]] == ["Python Developer"]

    async def test_job_embeds_company(self, runtime, make_company):
        company = make_company()
        posted = await runtime.jobs.post_job(company.id, **JOB)
        job = await runtime.jobs.get_with_company(posted["id"])
        assert job["company"]["id"] == company.id
        assert "password_hash" not in job["company"]

    async def test_company_listing(self, runtime, make_company):
        make_company(name="Alpha Industries")
        make_company(name="Beta Labs")
        page = await runtime.companies.list(1, 20, "beta")
        assert [c["name"] for c in page["data"]] == ["Beta Labs"]
        assert page["info"]["total"] == 1


class TestInvalidation:
    async def test_listing_reflects_newly_posted_job(self, runtime, make_company):
        company = make_company()
        await runtime.jobs.post_job(company.id, **{**JOB, "title": "First"})
        assert (await runtime.jobs.list(1, 20))["info"]["total"] == 1
        assert (await runtime.jobs.list_for_company(company.id, 1, 20))["info"]["total"] == 1

        await runtime.jobs.post_job(company.id, **{**JOB, "title": "Second"})

        assert (await runtime.jobs.list(1, 20))["info"]["total"] == 2
        assert (await runtime.jobs.list_for_company(company.id, 1, 20))["info"]["total"] == 2

    async def test_post_writes_entity_key(self, runtime, make_company, fake_redis):
        company = make_company()
        posted = await runtime.jobs.post_job(company.id, **JOB)
        assert fake_redis.exists(f"job_{posted['id']}")
        assert posted["type"] == JobType.FULL_TIME

    async def test_edit_refreshes_entity_and_listings(self, runtime, make_company):
        company = make_company()
        posted = await runtime.jobs.post_job(company.id, **JOB)
        await runtime.jobs.get(posted["id"])
        await runtime.jobs.list(1, 20)

        await runtime.jobs.edit_job(posted["id"], company.id, title="Staff Engineer", type=None)

        assert (await runtime.jobs.get(posted["id"]))["title"] == "Staff Engineer"
        assert (await runtime.jobs.list(1, 20))["data"][0]["title"] == "Staff Engineer"

    async def test_delete_drops_entity_key(self, runtime, make_company, fake_redis):
        company = make_company()
        posted = await runtime.jobs.post_job(company.id, **JOB)
        await runtime.jobs.list(1, 20)

        assert await runtime.jobs.delete_job(posted["id"], company.id) is True

        assert not fake_redis.exists(f"job_{posted['id']}")
        assert fake_redis.keys("jobs_*") == []
        with pytest.raises(NotFoundError):
            await runtime.jobs.get(posted["id"])

    async def test_other_companies_listing_survives(self, runtime, make_company, fake_redis):
        mine, theirs = make_company(), make_company()
        await runtime.jobs.list_for_company(theirs.id, 1, 20)
        await runtime.jobs.post_job(mine.id, **JOB)
        assert fake_redis.exists(f"company_{theirs.id}_jobs_pagination_1_20")

    async def test_edit_company_refreshes_entity_and_company_listings(
        self, runtime, make_company, fake_redis
    ):
        company = make_company()
        await runtime.companies.get(company.id)
        await runtime.companies.list(1, 20)

        updated = await runtime.companies.edit_company(company.id, name="Acme Holdings", logo=None)

        assert updated["name"] == "Acme Holdings"
        assert (await runtime.companies.get(company.id))["name"] == "Acme Holdings"
        assert fake_redis.keys("companies_*") == []


class TestOwnership:
    async def test_edit_and_delete_require_ownership(self, runtime, make_company):
        owner, intruder = make_company(), make_company()
        posted = await runtime.jobs.post_job(owner.id, **JOB)

        with pytest.raises(ForbiddenError) as exc_info:
            await runtime.jobs.edit_job(posted["id"], intruder.id, title="Hijacked")
        assert exc_info.value.message == "Not Authorized"
        with pytest.raises(ForbiddenError):
            await runtime.jobs.delete_job(posted["id"], intruder.id)

        assert (await runtime.jobs.get(posted["id"]))["title"] == JOB["title"]

    async def test_edit_missing_job(self, runtime, make_company):
        with pytest.raises(NotFoundError):
            await runtime.jobs.edit_job(MISSING_ID, make_company().id, title="x")

    async def test_company_jobs_for_unknown_company(self, runtime):
        with pytest.raises(NotFoundError):
            await runtime.jobs.list_for_company(MISSING_ID, 1, 20)
