# backend/app/repositories/factory.py
"""
Repository Factory for the Lumexa booking core.

Provides centralized creation of repository instances,
ensuring consistent initialization and dependency injection.
"""

from sqlalchemy.orm import Session

from .background_job_repository import BackgroundJobRepository
from .booking_repository import BookingRepository
from .conduct_repository import ConductRepository
from .slot_repository import SlotRepository
from .teacher_repository import TeacherProfileRepository
from .user_repository import StudentRepository, UserRepository
from .webhook_event_repository import WebhookEventRepository


class RepositoryFactory:
    """
    Factory class for creating repository instances.

    Centralizes repository creation to ensure consistent initialization
    and makes it easy to swap implementations if needed.
    """

    @staticmethod
    def create_slot_repository(db: Session) -> SlotRepository:
        return SlotRepository(db)

    @staticmethod
    def create_booking_repository(db: Session) -> BookingRepository:
        return BookingRepository(db)

    @staticmethod
    def create_conduct_repository(db: Session) -> ConductRepository:
        return ConductRepository(db)

    @staticmethod
    def create_teacher_profile_repository(db: Session) -> TeacherProfileRepository:
        return TeacherProfileRepository(db)

    @staticmethod
    def create_user_repository(db: Session) -> UserRepository:
        return UserRepository(db)

    @staticmethod
    def create_student_repository(db: Session) -> StudentRepository:
        return StudentRepository(db)

    @staticmethod
    def create_webhook_event_repository(db: Session) -> WebhookEventRepository:
        return WebhookEventRepository(db)

    @staticmethod
    def create_background_job_repository(db: Session) -> BackgroundJobRepository:
        return BackgroundJobRepository(db)
