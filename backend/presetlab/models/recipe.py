"""Recipe ORM model."""

from datetime import datetime, timezone

from sqlalchemy import JSON, DateTime, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from presetlab.models.base import Base, CreatedAtMixin, IdMixin


class Recipe(Base, IdMixin, CreatedAtMixin):
    """Persisted edit target: base adjustments plus the accepted override tiers.

    Pending proposals are never stored here.
    """

    __tablename__ = "recipes"

    name: Mapped[str | None] = mapped_column(String(255), nullable=True)
    prompt: Mapped[str | None] = mapped_column(Text, nullable=True)
    description: Mapped[str | None] = mapped_column(Text, nullable=True)
    base_adjustments_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
    style_options_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
    global_overrides_json: Mapped[dict[str, object]] = mapped_column(JSON, default=dict, nullable=False)
    mask_overrides_json: Mapped[list[dict[str, object]]] = mapped_column(JSON, default=list, nullable=False)
    preset_text: Mapped[str | None] = mapped_column(Text, nullable=True)
    preset_created_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    status: Mapped[str] = mapped_column(String(32), default="draft", nullable=False, index=True)
    version: Mapped[int] = mapped_column(Integer, default=1, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        default=lambda: datetime.now(timezone.utc),
        onupdate=lambda: datetime.now(timezone.utc),
        nullable=False,
    )
