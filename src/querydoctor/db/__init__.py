"""Database collaborators: plan and catalog sources."""

from querydoctor.db.probe import (
    AsyncpgProbe,
    CatalogSource,
    PlanSource,
    get_probe,
    is_db_available,
)

__all__ = [
    "AsyncpgProbe",
    "CatalogSource",
    "PlanSource",
    "get_probe",
    "is_db_available",
]
