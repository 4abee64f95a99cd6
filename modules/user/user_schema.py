from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from uuid import UUID

# schema
from schema.base import DBBaseModel


class UserBaseModel(BaseModel):
    mobile_number: str
    name: str
    is_verified: bool = False


class UserInsertModel(UserBaseModel):
    pin_hash: str


class UserModel(DBBaseModel, UserBaseModel):
    pin_hash: Optional[str] = None


# what leaves the service: never carries the PIN hash
class UserResponseModel(UserBaseModel):
    id: int
    uuid: UUID
    created_at: datetime

    @classmethod
    def from_user(cls, user: UserModel) -> "UserResponseModel":
        return cls(
            id=user.id,
            uuid=user.uuid,
            mobile_number=user.mobile_number,
            name=user.name,
            is_verified=user.is_verified,
            created_at=user.created_at,
        )
