from pydantic import BaseModel


class HealthResponse(BaseModel):
    status: str  # healthy, degraded, unhealthy
    database: str  # up, down
    redis: str  # up, down, disabled
    active_jobs: int
