"""Arrival/departure analysis endpoint."""

from fastapi import APIRouter, HTTPException

from vehicle_predictor.schemas.direction import DirectionRequest, DirectionResult

router = APIRouter(prefix="/api/direction", tags=["direction"])

# Will be set by main.py
engine = None


@router.post("", response_model=DirectionResult)
def analyze_direction(body: DirectionRequest):
    """Is the vehicle arriving at or departing from the station?"""
    if engine is None:
        raise HTTPException(status_code=503, detail="Prediction engine not initialized")
    return engine.analyze_direction(
        body.vehicle, body.station, body.stop_times, stops=body.stops, now=body.now,
    )
