"""Station model: the registry row for one soil-moisture/rain monitoring station.

Station metadata (location, images, thresholds, file pointers) is maintained
by the CMS. The ingestion pipeline only reads thresholds and file pointers and
writes the derived metrics: soil_saturation, precipitation and last_updated.
"""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from station_telemetry.core.database import Base


class Station(Base):
    __tablename__ = "station_info"

    station_id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    admin_id: Mapped[int | None] = mapped_column(Integer, nullable=True)
    city: Mapped[str | None] = mapped_column(String(100), nullable=True)

    latitude: Mapped[float | None] = mapped_column(Float, nullable=True)
    longitude: Mapped[float | None] = mapped_column(Float, nullable=True)

    # Derived metrics, written by the heartbeat
    soil_saturation: Mapped[float | None] = mapped_column(Float, nullable=True)  # %
    precipitation: Mapped[float | None] = mapped_column(Float, nullable=True)    # mm, trailing window
    last_updated: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    is_available: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    # Per-sensor saturation ceilings (volumetric water content at saturation)
    wc1_max: Mapped[float | None] = mapped_column("wc1", Float, nullable=True)
    wc2_max: Mapped[float | None] = mapped_column("wc2", Float, nullable=True)
    wc3_max: Mapped[float | None] = mapped_column("wc3", Float, nullable=True)
    wc4_max: Mapped[float | None] = mapped_column("wc4", Float, nullable=True)

    # Remote file pointers, relative to the FTPS base path
    ftp_file_path: Mapped[str | None] = mapped_column(String(255), nullable=True)
    history_data_url: Mapped[str | None] = mapped_column(String(255), nullable=True)

    sensor_image_url: Mapped[str | None] = mapped_column(String(255), nullable=True)
    data_image_url: Mapped[str | None] = mapped_column(String(255), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<Station {self.station_id} | {self.city} saturation={self.soil_saturation}% "
            f"precip={self.precipitation}mm updated={self.last_updated}>"
        )
