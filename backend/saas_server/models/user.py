"""User account model."""

from sqlalchemy import Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from saas_server.models.base import BaseModel


class User(BaseModel):
    """A customer account.

    password_hash is NULL for accounts created through an OAuth provider;
    those accounts cannot log in with a password. The latest_* columns are a
    denormalised snapshot of the user's subscription, written by the billing
    integration and read by the subscription status lookup.
    """

    __tablename__ = "users"

    email: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    password_hash: Mapped[str | None] = mapped_column(String(255), nullable=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, default="")
    email_verified: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    # Subscription snapshot
    latest_status: Mapped[str | None] = mapped_column(String(50), nullable=True)
    latest_product_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    latest_variant_id: Mapped[int | None] = mapped_column(Integer, nullable=True)

    def __repr__(self) -> str:
        return f"<User {self.email}>"
