"""Persistence of users and their analyses."""

import logging
from abc import ABC, abstractmethod
from datetime import datetime, time, timezone
from functools import wraps
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from drcrop.database.connection import Database
from drcrop.models.analysis import Analysis
from drcrop.models.schemas import AnalysisResult
from drcrop.models.user import User

logger = logging.getLogger(__name__)


class StorageError(Exception):
    """A read or write against the database failed."""


class RecordNotFoundError(Exception):
    pass


class AccessDeniedError(Exception):
    """The record exists but belongs to another user."""


class DuplicateUsernameError(Exception):
    pass


class Storage(ABC):
    @abstractmethod
    def get_user(self, user_id: str) -> Optional[User]: ...

    @abstractmethod
    def get_user_by_username(self, username: str) -> Optional[User]: ...

    @abstractmethod
    def create_user(self, username: str, password_hash: str) -> User: ...

    @abstractmethod
    def delete_user(self, user_id: str) -> List[Analysis]: ...

    @abstractmethod
    def create_analysis(self, user_id: str, image_path: str, result: AnalysisResult) -> Analysis: ...

    @abstractmethod
    def get_analysis(self, analysis_id: str) -> Optional[Analysis]: ...

    @abstractmethod
    def get_owned_analysis(self, analysis_id: str, user_id: str) -> Analysis: ...

    @abstractmethod
    def get_analyses_by_user_id(self, user_id: str, limit: Optional[int] = None, offset: int = 0) -> List[Analysis]: ...

    @abstractmethod
    def delete_analysis(self, analysis_id: str, user_id: str) -> Analysis: ...

    @abstractmethod
    def delete_analyses(self, user_id: str, ids: Optional[Sequence[str]] = None) -> List[Analysis]: ...

    @abstractmethod
    def get_user_stats(self, user_id: str) -> Dict[str, int]: ...


def _db_errors(action: str):
    """Log and wrap SQLAlchemy failures so routes only see StorageError."""

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            try:
                return fn(*args, **kwargs)
            except SQLAlchemyError as exc:
                logger.exception("Error %s", action)
                raise StorageError(f"Failed {action}") from exc

        return wrapper

    return decorator


class SqlStorage(Storage):
    def __init__(self, database: Database):
        self._db = database

    # === Users ===

    @_db_errors("getting user")
    def get_user(self, user_id):
        with self._db.session() as session:
            return session.get(User, user_id)

    @_db_errors("getting user by username")
    def get_user_by_username(self, username):
        with self._db.session() as session:
            return session.query(User).filter(User.username == username).first()

    def create_user(self, username, password_hash):
        try:
            with self._db.session() as session:
                user = User(username=username, password=password_hash)
                session.add(user)
                session.flush()
                return user
        except IntegrityError as exc:
            raise DuplicateUsernameError(f"Username '{username}' is already taken") from exc
        except SQLAlchemyError as exc:
            logger.exception("Error creating user")
            raise StorageError("Failed to create user") from exc

    @_db_errors("deleting user")
    def delete_user(self, user_id):
        """Delete the user and, by cascade, every analysis they own."""
        with self._db.session() as session:
            analyses = session.query(Analysis).filter(Analysis.user_id == user_id).all()
            user = session.get(User, user_id)
            if user is None:
                raise RecordNotFoundError(f"User {user_id} not found")
            for analysis in analyses:
                session.delete(analysis)
            session.delete(user)
            return analyses

    # === Analyses ===

    @_db_errors("creating analysis")
    def create_analysis(self, user_id, image_path, result):
        with self._db.session() as session:
            analysis = Analysis(
                user_id=user_id,
                image_path=image_path,
                disease=result.disease,
                severity=result.severity,
                severity_percent=result.severity_percent,
                organic_diagnosis=result.organic_diagnosis,
                chemical_diagnosis=result.chemical_diagnosis,
            )
            session.add(analysis)
            session.flush()
            return analysis

    @_db_errors("getting analysis")
    def get_analysis(self, analysis_id):
        with self._db.session() as session:
            return session.get(Analysis, analysis_id)

    def get_owned_analysis(self, analysis_id, user_id):
        analysis = self.get_analysis(analysis_id)
        if analysis is None:
            raise RecordNotFoundError(f"Analysis {analysis_id} not found")
        if analysis.user_id != user_id:
            raise AccessDeniedError(f"Analysis {analysis_id} belongs to another user")
        return analysis

    @_db_errors("getting analyses by user id")
    def get_analyses_by_user_id(self, user_id, limit=None, offset=0):
        with self._db.session() as session:
            query = (
                session.query(Analysis)
                .filter(Analysis.user_id == user_id)
                .order_by(Analysis.created_at.desc())
                .offset(int(offset))
            )
            if limit is not None:
                query = query.limit(int(limit))
            return query.all()

    @_db_errors("deleting analysis")
    def delete_analysis(self, analysis_id, user_id):
        with self._db.session() as session:
            analysis = session.get(Analysis, analysis_id)
            if analysis is None:
                raise RecordNotFoundError(f"Analysis {analysis_id} not found")
            if analysis.user_id != user_id:
                raise AccessDeniedError(f"Analysis {analysis_id} belongs to another user")
            session.delete(analysis)
            return analysis

    @_db_errors("deleting analyses")
    def delete_analyses(self, user_id, ids=None):
        """Delete the selected ``ids`` owned by ``user_id``, or all of them."""
        with self._db.session() as session:
            query = session.query(Analysis).filter(Analysis.user_id == user_id)
            if ids is not None:
                if not ids:
                    return []
                query = query.filter(Analysis.id.in_(list(ids)))
            analyses = query.all()
            for analysis in analyses:
                session.delete(analysis)
            return analyses

    @_db_errors("getting user stats")
    def get_user_stats(self, user_id):
        start_of_day = datetime.combine(datetime.now(timezone.utc).date(), time.min, tzinfo=timezone.utc)
        with self._db.session() as session:
            scans_today = (
                session.query(func.count(Analysis.id))
                .filter(Analysis.user_id == user_id, Analysis.created_at >= start_of_day)
                .scalar()
            )
            counts = dict(
                session.query(Analysis.severity, func.count(Analysis.id))
                .filter(Analysis.user_id == user_id)
                .group_by(Analysis.severity)
                .all()
            )

        return {
            "scansToday": scans_today or 0,
            "healthyPlants": counts.get("None", 0),
            "needTreatment": counts.get("Mild", 0) + counts.get("Moderate", 0),
            "criticalCases": counts.get("Severe", 0),
        }
