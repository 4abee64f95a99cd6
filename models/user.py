from sqlalchemy import Column, String, Boolean, Index, text
from sqlalchemy.orm import Session

from database import DBBaseClass, DBBase


class User(DBBase, DBBaseClass):
    __tablename__ = "user"

    mobile_number = Column(String(20), nullable=False)
    name = Column(String(100), nullable=False)
    pin_hash = Column(String(255), nullable=True)
    is_verified = Column(Boolean, nullable=False, default=False)

    __table_args__ = (
        # One live identity per phone number
        Index(
            "idx_user_mobile_unique",
            "mobile_number",
            unique=True,
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
        Index(
            "idx_user_mobile_verified",
            "mobile_number",
            "is_verified",
            postgresql_where=text("is_deleted = false"),
            sqlite_where=text("is_deleted = 0"),
        ),
    )

    def __to_model(self):
        from modules.user.user_schema import UserModel

        return UserModel.model_validate(self)

    @classmethod
    def create_user(cls, user_data):
        from context_manager.context import get_db_session

        db: Session = get_db_session()
        user = cls(**user_data.model_dump())
        db.add(user)
        db.flush()

        return user.__to_model()

    @classmethod
    def get_by_id(cls, id):
        user = super().get_by_id(id)
        return user.__to_model() if user else None

    @classmethod
    def get_by_mobile_number(cls, mobile_number: str, verified_only: bool = False):
        from context_manager.context import get_db_session

        db = get_db_session()
        query = db.query(cls).filter(
            cls.mobile_number == mobile_number,
            cls.is_deleted.is_(False),
        )
        if verified_only:
            query = query.filter(cls.is_verified.is_(True))

        user = query.populate_existing().first()

        return user.__to_model() if user else None

    @classmethod
    def update_user_by_id(cls, user_id: int, update_dict: dict) -> int:
        from context_manager.context import get_db_session

        db = get_db_session()
        update_query = db.query(cls).filter(
            cls.id == user_id, cls.is_deleted.is_(False)
        )

        updates = update_query.update(update_dict, synchronize_session="fetch")
        db.flush()
        return updates

    @classmethod
    def mark_verified(cls, user_id: int) -> int:
        return cls.update_user_by_id(user_id, {"is_verified": True})

    @classmethod
    def update_pin_hash(cls, user_id: int, pin_hash: str) -> int:
        return cls.update_user_by_id(user_id, {"pin_hash": pin_hash})
