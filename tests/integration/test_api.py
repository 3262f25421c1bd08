"""
Integration tests for the API endpoints.
"""

from typing import Any
from uuid import UUID, uuid4

from httpx import AsyncClient

from jobpipe.db import Database, JobRepository


class TestRootAndHealth:
    """Tests for banner and health endpoints."""

    async def test_root_banner(self, client: AsyncClient):
        response = await client.get("/")

        assert response.status_code == 200
        assert response.text == "Job dispatch API is running"

    async def test_health_check(self, client: AsyncClient):
        """Test the health check endpoint."""
        response = await client.get("/health")

        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "healthy"
        assert data["database"] == "healthy"
        assert data["broker"] == "healthy"
        assert "version" in data
        assert "timestamp" in data

    async def test_health_check_degraded_without_broker(self, client: AsyncClient, broker):
        """Test that an unreachable broker degrades health."""
        broker.available = False

        response = await client.get("/health")

        assert response.status_code == 200
        assert response.json()["status"] == "degraded"
        assert response.json()["broker"] == "unhealthy"

    async def test_readiness_check(self, client: AsyncClient):
        response = await client.get("/ready")

        assert response.status_code == 200
        assert response.json() == {"ready": True}

    async def test_liveness_check(self, client: AsyncClient):
        response = await client.get("/live")

        assert response.status_code == 200
        assert response.json() == {"alive": True}

    async def test_metrics_endpoint(self, client: AsyncClient, sample_submission: dict[str, Any]):
        """Test that Prometheus metrics are exposed."""
        await client.post("/submit-job", json=sample_submission)

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "jobs_submitted_total" in response.text
        assert "job_queue_depth" in response.text

    async def test_metrics_without_broker(self, client: AsyncClient, broker, caplog):
        """Test that metrics are still served while the broker is down."""
        broker.available = False

        response = await client.get("/metrics")

        assert response.status_code == 200
        assert "job_queue_depth" in response.text
        assert "Queue depth unavailable" in caplog.text


class TestSubmitJob:
    """Tests for POST /submit-job."""

    async def test_submit_job_success(
        self,
        client: AsyncClient,
        database: Database,
        broker,
        sample_submission: dict[str, Any],
    ):
        """Test successful job submission."""
        response = await client.post("/submit-job", json=sample_submission)

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "QUEUED"
        job_id = UUID(data["jobId"])
        assert broker.enqueued == [str(job_id)]

        async with database.session() as session:
            job = await JobRepository(session).get_by_id(job_id)
        assert job.type == "echo"
        assert job.payload == sample_submission["payload"]

    async def test_submit_unknown_job_type(self, client: AsyncClient, database: Database, broker):
        """Test that an unknown type is rejected without creating a job."""
        response = await client.post(
            "/submit-job",
            json={"jobType": "mineBitcoin", "payload": {}},
        )

        assert response.status_code == 400
        assert response.json()["error"] == "invalid_job"
        assert "mineBitcoin" in response.json()["detail"]
        assert broker.enqueued == []

        async with database.session() as session:
            counts = await JobRepository(session).count_by_status()
        assert sum(counts.values()) == 0

    async def test_submit_missing_job_type(self, client: AsyncClient, broker):
        response = await client.post("/submit-job", json={"payload": {"a": 1}})

        assert response.status_code == 400
        assert broker.enqueued == []

    async def test_submit_missing_payload(self, client: AsyncClient, broker):
        response = await client.post("/submit-job", json={"jobType": "echo"})

        assert response.status_code == 400
        assert broker.enqueued == []

    async def test_submit_malformed_body(self, client: AsyncClient):
        """Test that a non-JSON body is a 400, not a 422."""
        response = await client.post(
            "/submit-job",
            content="not json",
            headers={"Content-Type": "application/json"},
        )

        assert response.status_code == 400

    async def test_submit_with_broker_down(self, client: AsyncClient, broker):
        """Test that a broker outage is reported as unavailable."""
        broker.available = False

        response = await client.post(
            "/submit-job",
            json={"jobType": "echo", "payload": {}},
        )

        assert response.status_code == 503
        assert response.json()["error"] == "service_unavailable"


class TestJobStatus:
    """Tests for GET /job-status/{jobId}."""

    async def test_get_job_status(self, client: AsyncClient, sample_submission: dict[str, Any]):
        """Test polling a freshly submitted job."""
        submit = await client.post("/submit-job", json=sample_submission)
        job_id = submit.json()["jobId"]

        response = await client.get(f"/job-status/{job_id}")

        assert response.status_code == 200
        data = response.json()
        assert data["jobId"] == job_id
        assert data["jobType"] == "echo"
        assert data["status"] == "QUEUED"
        assert data["retries"] == 0
        assert "createdAt" in data
        assert "updatedAt" in data

    async def test_get_job_status_not_found(self, client: AsyncClient):
        response = await client.get(f"/job-status/{uuid4()}")

        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    async def test_get_job_status_malformed_id(self, client: AsyncClient):
        response = await client.get("/job-status/12345")

        assert response.status_code == 404


class TestJobStats:
    """Tests for the operator endpoints."""

    async def test_job_stats(self, client: AsyncClient, sample_submission: dict[str, Any]):
        await client.post("/submit-job", json=sample_submission)
        await client.post("/submit-job", json=sample_submission)

        response = await client.get("/jobs/stats")

        assert response.status_code == 200
        data = response.json()
        assert data["stats"]["QUEUED"] == 2
        assert data["stats"]["COMPLETED"] == 0
        assert data["queueDepth"] == 2

    async def test_job_stats_without_broker(self, client: AsyncClient, broker):
        broker.available = False

        response = await client.get("/jobs/stats")

        assert response.status_code == 200
        assert response.json()["queueDepth"] is None

    async def test_stale_jobs(self, client: AsyncClient, sample_submission: dict[str, Any]):
        """Test that fresh QUEUED jobs only show up with a zero age threshold."""
        submit = await client.post("/submit-job", json=sample_submission)
        job_id = submit.json()["jobId"]

        response = await client.get(
            "/jobs/stale",
            params={"status": "QUEUED", "olderThanSeconds": 3600},
        )
        assert response.status_code == 200
        assert response.json() == []

        response = await client.get(
            "/jobs/stale",
            params={"status": "QUEUED", "olderThanSeconds": 0},
        )
        assert response.status_code == 200
        assert [job["jobId"] for job in response.json()] == [job_id]

    async def test_stale_jobs_rejects_unknown_status(self, client: AsyncClient):
        response = await client.get("/jobs/stale", params={"status": "LEASED"})

        assert response.status_code == 400
