from datetime import timezone

from drcrop.models.analysis import Analysis
from drcrop.models.user import User


def to_iso_utc(dt):
    """Naive datetimes coming back from SQLite are UTC."""
    if dt is None:
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.isoformat()


def serialize_user(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "createdAt": to_iso_utc(user.created_at),
    }


def serialize_analysis(analysis: Analysis) -> dict:
    return {
        "id": analysis.id,
        "userId": analysis.user_id,
        "imagePath": analysis.image_path,
        "disease": analysis.disease,
        "severity": analysis.severity,
        "severityPercent": analysis.severity_percent,
        "organicDiagnosis": analysis.organic_diagnosis,
        "chemicalDiagnosis": analysis.chemical_diagnosis,
        "createdAt": to_iso_utc(analysis.created_at),
    }
