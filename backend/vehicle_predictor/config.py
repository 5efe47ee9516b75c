from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Position prediction
    average_speed_kmh: float = 18.0
    dwell_time_s: float = 30.0
    proximity_threshold_m: float = 50.0
    off_route_threshold_m: float = 200.0

    # Speed prediction
    fallback_speed_kmh: float = 25.0
    nearby_vehicle_radius_m: float = 1000.0
    max_nearby_vehicles: int = 50
    max_distance_from_center_m: float = 20_000.0
    min_location_speed_kmh: float = 15.0
    max_location_speed_kmh: float = 45.0
    min_reasonable_speed_kmh: float = 1.0
    max_reasonable_speed_kmh: float = 120.0

    # Direction analysis
    minutes_per_stop: float = 2.0
    recent_arrival_window_minutes: float = 10.0
    high_confidence_stop_window: int = 3

    log_level: str = "INFO"

    model_config = {"env_prefix": "PREDICTOR_", "case_sensitive": False, "frozen": True}


settings = Settings()
