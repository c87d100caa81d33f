from jobly.repositories.applications import (
    APPLICATION_STATUSES,
    InMemoryApplicationsRepository,
    PostgresApplicationsRepository,
)
from jobly.repositories.jobs import InMemoryJobsRepository, PostgresJobsRepository
from jobly.repositories.users import InMemoryUsersRepository, PostgresUsersRepository

__all__ = [
    "APPLICATION_STATUSES",
    "InMemoryApplicationsRepository",
    "PostgresApplicationsRepository",
    "InMemoryJobsRepository",
    "PostgresJobsRepository",
    "InMemoryUsersRepository",
    "PostgresUsersRepository",
]
