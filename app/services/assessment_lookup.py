"""
Assessment lookup: reads an assessment and returns the classification snapshot stored on
conversations. Only the fields the assistant needs are copied.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.core.exceptions import AssessmentLookupError
from app.models.assessment import Assessment

logger = logging.getLogger(__name__)

SNAPSHOT_FIELDS = (
    "pattern",
    "age",
    "cycle_length",
    "period_duration",
    "flow_heaviness",
    "pain_level",
    "physical_symptoms",
    "emotional_symptoms",
)


def extract_pattern(snapshot: dict[str, Any] | None) -> str | None:
    """Classification pattern from a snapshot, None if absent or blank."""
    if not snapshot:
        return None
    pattern = snapshot.get("pattern")
    if isinstance(pattern, str) and pattern.strip():
        return pattern.strip()
    return None


def build_snapshot(assessment: Assessment) -> dict[str, Any]:
    snapshot = {field: getattr(assessment, field) for field in SNAPSHOT_FIELDS}
    snapshot["assessment_id"] = assessment.id
    snapshot["physical_symptoms"] = list(snapshot["physical_symptoms"] or [])
    snapshot["emotional_symptoms"] = list(snapshot["emotional_symptoms"] or [])
    return snapshot


class AssessmentLookup(ABC):
    """Source of assessment snapshots."""

    @abstractmethod
    def fetch_snapshot(self, assessment_id: str, owner_id: str | None = None) -> dict[str, Any] | None:
        """Snapshot dict, None when not found; AssessmentLookupError on backend failure."""


class DbAssessmentLookup(AssessmentLookup):
    """Reads the assessments table on the request session."""

    def __init__(self, db: Session):
        self._db = db

    def fetch_snapshot(self, assessment_id: str, owner_id: str | None = None) -> dict[str, Any] | None:
        """
        Snapshot for the assessment, or None when it does not exist or (with owner_id)
        belongs to someone else. Raises AssessmentLookupError on DB failure.
        """
        try:
            q = self._db.query(Assessment).filter(Assessment.id == assessment_id)
            if owner_id is not None:
                q = q.filter(Assessment.user_id == owner_id)
            assessment = q.first()
        except SQLAlchemyError as e:
            self._db.rollback()
            raise AssessmentLookupError(f"Could not read assessment {assessment_id}") from e
        if assessment is None:
            return None
        return build_snapshot(assessment)
