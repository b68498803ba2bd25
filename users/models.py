import enum

from fastapi_users.db import SQLAlchemyBaseUserTableUUID
from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from db import Base


class AccountKind(str, enum.Enum):
    LEARNER = "learner"
    MENTOR = "mentor"
    ADMIN = "admin"


class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "users"

    full_name: Mapped[str] = mapped_column(String(100), nullable=False)
    role: Mapped[str] = mapped_column(String(20), default=AccountKind.LEARNER.value, nullable=False)
    timezone: Mapped[str] = mapped_column(String(64), default="UTC", nullable=False)

    @property
    def is_admin(self) -> bool:
        return self.role == AccountKind.ADMIN.value
