from datetime import datetime

from sqlalchemy import ForeignKey, String, func
from sqlalchemy.orm import Mapped, mapped_column

from app.database import Base

PENDING = "pending"
CONNECTED = "connected"


def make_pair_key(user_a: int, user_b: int) -> str:
    low, high = sorted((user_a, user_b))
    return f"{low}:{high}"


def _pair_key_default(context) -> str:
    params = context.get_current_parameters()
    return make_pair_key(params["requester_id"], params["addressee_id"])


class Connection(Base):
    __tablename__ = "connections"

    id: Mapped[int] = mapped_column(primary_key=True)
    requester_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    addressee_id: Mapped[int] = mapped_column(ForeignKey("users.id"))
    # One row per unordered pair of users, whichever side asked first.
    pair_key: Mapped[str] = mapped_column(
        String(64), unique=True, default=_pair_key_default
    )
    status: Mapped[str] = mapped_column(String(20), default=PENDING)
    created_at: Mapped[datetime] = mapped_column(server_default=func.now())
    connected_at: Mapped[datetime | None] = mapped_column(default=None)

    def other_user_id(self, user_id: int) -> int:
        if self.requester_id == user_id:
            return self.addressee_id
        return self.requester_id
