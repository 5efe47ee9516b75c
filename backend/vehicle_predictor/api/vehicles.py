"""Vehicle enhancement REST API endpoints."""

from fastapi import APIRouter, HTTPException, Response

from vehicle_predictor.core.enhancer import prediction_summary, serialize_update
from vehicle_predictor.schemas.vehicle import EnhanceRequest, PredictionSummary, VehicleUpdate

router = APIRouter(prefix="/api/vehicles", tags=["vehicles"])

# Will be set by main.py
engine = None


def _enhance(body: EnhanceRequest):
    if engine is None:
        raise HTTPException(status_code=503, detail="Prediction engine not initialized")
    return engine.enhance_vehicles(
        body.vehicles,
        route_shapes=body.route_shapes,
        stop_times_by_trip=body.stop_times_by_trip,
        stops=body.stops,
        now=body.now,
    )


@router.post("/enhance", response_model=VehicleUpdate)
def enhance_vehicles(body: EnhanceRequest):
    """Predict current position and speed for every vehicle in the snapshot."""
    return Response(content=serialize_update(_enhance(body)), media_type="application/json")


@router.post("/summary", response_model=PredictionSummary)
def summarize_predictions(body: EnhanceRequest):
    """Enhance the snapshot and return only the batch totals."""
    return prediction_summary(_enhance(body))
