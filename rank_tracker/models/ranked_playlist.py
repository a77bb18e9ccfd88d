from datetime import datetime

from sqlalchemy import JSON, DateTime, Integer, String, func
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.ext.mutable import MutableList
from sqlalchemy.orm import Mapped, mapped_column

from rank_tracker.models.base import Base

JSONList = JSON().with_variant(JSONB(), "postgresql")


class RankedPlaylist(Base):
    __tablename__ = "ranked_playlists"

    playlist_id: Mapped[str] = mapped_column(String, primary_key=True)
    name: Mapped[str] = mapped_column(String, nullable=False, default="")
    image: Mapped[str | None] = mapped_column(String, nullable=True)
    keywords: Mapped[list[dict]] = mapped_column(
        MutableList.as_mutable(JSONList),
        nullable=False,
        default=list,
    )
    last_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), nullable=False
    )

    __mapper_args__ = {"version_id_col": version_id}
