from station_telemetry.models.station import Station

__all__ = [
    "Station",
]
