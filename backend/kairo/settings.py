"""Settings for the Kairo proximity map engine."""

from __future__ import annotations

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _env_field(default, *env_names: str):
    if env_names:
        alias = AliasChoices(*env_names) if len(env_names) > 1 else env_names[0]
        return Field(default=default, validation_alias=alias)
    return Field(default=default)


class Settings(BaseSettings):
    redis_url: str = _env_field("redis://localhost:6379/0", "REDIS_URL")
    # Presence hashes older than this are ignored by the Redis roster source
    presence_stale_seconds: int = 10800  # 3 hours
    presence_ttl_seconds: int = 10800
    roster_poll_interval_seconds: float = _env_field(10.0, "ROSTER_POLL_INTERVAL_SECONDS")
    roster_max_candidates: int = 1000

    # Geolocation
    location_timeout_seconds: float = 10.0
    location_min_request_interval_seconds: float = 2.0
    location_min_persist_interval_seconds: float = 3.0
    location_high_accuracy: bool = True
    location_maximum_age_ms: int = 0
    # Wynyard, Sydney
    default_location_lat: float = _env_field(-33.8666, "DEFAULT_LOCATION_LAT")
    default_location_lng: float = _env_field(151.2073, "DEFAULT_LOCATION_LNG")
    locate_zoom: float = 14.0
    locate_animation_ms: int = 1000
    recenter_animation_ms: int = 500

    # Proximity pipeline
    proximity_default_radius_km: float = 5.0
    proximity_online_only: bool = True
    cluster_min_actors: int = 10
    cluster_radius_km: float = 0.5
    cluster_adaptive_radius: bool = _env_field(False, "CLUSTER_ADAPTIVE_RADIUS")
    cluster_zoom_step: float = 2.0
    cluster_zoom_animation_ms: int = 500
    recompute_window_ms: int = _env_field(120, "RECOMPUTE_WINDOW_MS")

    # Privacy circle
    privacy_circle_radius_m: float = 3000.0
    privacy_pulse_min_opacity: float = 0.2
    privacy_pulse_max_opacity: float = 0.4
    privacy_pulse_period_ms: int = 3000
    animation_frame_ms: int = 16

    # Selection and meetings
    hit_tolerance_px: float = 20.0
    meeting_animation_ms: int = 3000
    meeting_bounce_amplitude_deg: float = 0.0001
    meeting_point_lat: float = _env_field(-33.8666, "MEETING_POINT_LAT")
    meeting_point_lng: float = _env_field(151.2073, "MEETING_POINT_LNG")
    meeting_point_name: str = _env_field("Wynyard", "MEETING_POINT_NAME")

    environment: str = _env_field("production", "ENV", "APP_ENV", "ENVIRONMENT")
    obs_log_level: str = _env_field("INFO", "LOG_LEVEL")
    obs_log_sampling_rate_info: float = _env_field(0.1, "LOG_SAMPLING_RATE_INFO")
    service_name: str = _env_field("kairo-map-engine", "SERVICE_NAME")
    git_commit: str = _env_field("unknown", "GIT_COMMIT", "COMMIT_SHA", "SOURCE_VERSION")

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        case_sensitive=False,
        env_nested_delimiter="__",
    )


settings = Settings()
