from sqlalchemy import Column, String, Boolean, Integer, DateTime, Index, text
from sqlalchemy.orm import Session

from database.db import DBBaseClass, DBBase, time_now


class OTPVerification(DBBase, DBBaseClass):
    __tablename__ = "otp_verifications"

    mobile_number = Column(String(20), nullable=False)
    otp_code = Column(String(6), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    is_verified = Column(Boolean, nullable=False, default=False)
    attempt_count = Column(Integer, nullable=False, default=0)

    __table_args__ = (
        # Latest pending challenge per phone (verification and cooldown lookups)
        Index(
            "idx_otp_mobile_pending",
            "mobile_number",
            "is_verified",
            text("created_at DESC"),
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
        # Index for cleanup jobs and expiry checks
        Index(
            "idx_otp_expires_at",
            "expires_at",
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
    )

    def __to_model(self):
        from schema.otp_schema import OTPVerificationModel

        return OTPVerificationModel.model_validate(self)

    @classmethod
    def create_otp(cls, otp_data: dict):
        from context_manager.context import get_db_session

        db: Session = get_db_session()
        otp_verification = cls(**otp_data)
        db.add(otp_verification)
        db.flush()

        return otp_verification.__to_model()

    @classmethod
    def _pending_query(cls, mobile_number: str, for_update: bool):
        from context_manager.context import get_db_session

        db = get_db_session()
        query = db.query(cls).filter(
            cls.mobile_number == mobile_number,
            cls.is_verified.is_(False),
            cls.is_deleted.is_(False),
        )
        if for_update:
            query = query.with_for_update()
        return query.populate_existing()

    @classmethod
    def get_latest_unverified_otp(cls, mobile_number: str, for_update: bool = False):
        """Latest unverified OTP for a number, expired or not"""
        otp = (
            cls._pending_query(mobile_number, for_update)
            .order_by(cls.created_at.desc(), cls.id.desc())
            .first()
        )

        return otp.__to_model() if otp else None

    @classmethod
    def get_latest_active_otp(cls, mobile_number: str, for_update: bool = False):
        """Latest unverified and unexpired OTP for a number"""
        otp = (
            cls._pending_query(mobile_number, for_update)
            .filter(cls.expires_at > time_now())
            .order_by(cls.created_at.desc(), cls.id.desc())
            .first()
        )

        return otp.__to_model() if otp else None

    @classmethod
    def invalidate_active_otps(cls, mobile_number: str) -> int:
        """Force every active OTP for the number to expire now"""
        from context_manager.context import get_db_session

        db = get_db_session()
        now = time_now()
        update_query = db.query(cls).filter(
            cls.mobile_number == mobile_number,
            cls.is_verified.is_(False),
            cls.expires_at > now,
            cls.is_deleted.is_(False),
        )

        updates = update_query.update({"expires_at": now}, synchronize_session="fetch")
        db.flush()
        return updates

    @classmethod
    def increment_attempts(cls, otp_id: int) -> int:
        """Atomically increment the attempt counter and return the new value"""
        from context_manager.context import get_db_session

        db = get_db_session()
        db.query(cls).filter(cls.id == otp_id).update(
            {cls.attempt_count: cls.attempt_count + 1},
            synchronize_session="fetch",
        )
        db.flush()

        return db.query(cls.attempt_count).filter(cls.id == otp_id).scalar() or 0

    @classmethod
    def mark_otp_as_verified(cls, otp_id: int) -> int:
        """Mark an OTP as verified; verified OTPs are never accepted again"""
        from context_manager.context import get_db_session

        db = get_db_session()
        updates = (
            db.query(cls)
            .filter(cls.id == otp_id, cls.is_verified.is_(False))
            .update({"is_verified": True}, synchronize_session="fetch")
        )
        db.flush()
        return updates
