"""
API routes for volume inference, tanks and live ingestion.
"""

from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from tanklevel.api.frames import build_frame_response
from tanklevel.api.schemas import (
    CalibrationSchema,
    ErrorResponse,
    GeometrySchema,
    IngestRequest,
    IngestResponse,
    InferRequest,
    RecalculateResponse,
    TankRequest,
    TankResponse,
    VolumeCurveResponse,
    VolumeResultResponse,
)
from tanklevel.models.device import TankRecord
from tanklevel.models.tank import (
    CalibrationContext,
    InferenceFailure,
    InferenceOutcome,
    TankGeometry,
    VolumeResult,
)
from tanklevel.services.frame_decoder import DecodeError, resolve_sensor_type
from tanklevel.services.ingestion import UnknownTankError
from tanklevel.services.repository import get_pipeline, get_repository
from tanklevel.services.shape_volume import GeometryError, effective_height_of, volume_curve
from tanklevel.services.volume_inference import infer
from tanklevel.utils.geometry import round_liters


def _to_geometry(schema: GeometrySchema) -> TankGeometry:
    return TankGeometry(
        shape=schema.shape,
        orientation=schema.orientation,
        dimensions=dict(schema.dimensions),
        dead_space_m3=schema.dead_space_m3,
        density_kg_m3=schema.density_kg_m3,
    )


def _to_calibration(schema: CalibrationSchema) -> CalibrationContext:
    return CalibrationContext(
        sensor_type=schema.sensor_type,
        tank_offset_depth=schema.tank_offset_depth,
        device_calibration_offset=schema.device_calibration_offset,
        min_sensor_range=schema.min_sensor_range,
        max_sensor_range=schema.max_sensor_range,
        pressure_to_height_factor=schema.pressure_to_height_factor,
    )


def _build_result_response(result: VolumeResult) -> VolumeResultResponse:
    return VolumeResultResponse(
        liquid_level_m=result.liquid_level_m,
        volume_m3=result.volume_m3,
        volume_liters=result.volume_liters,
        fill_percentage=result.fill_percentage,
        data_quality=result.data_quality,
        calculation_method=result.calculation_method,
        effective_total_height=result.effective_total_height,
        raw_reading=result.raw_reading,
        reading_clamped=result.reading_clamped,
        level_clamped=result.level_clamped,
        fill_clamped=result.fill_clamped,
        estimated_mass_kg=result.estimated_mass_kg,
    )


def _split_outcome(outcome: Optional[InferenceOutcome]):
    """(result response, error message) for an optional outcome."""
    if outcome is None:
        return None, None
    if isinstance(outcome, InferenceFailure):
        return None, outcome.message
    return _build_result_response(outcome), None


def _build_tank_response(tank: TankRecord) -> TankResponse:
    result, error = _split_outcome(tank.last_outcome)
    return TankResponse(
        tank_id=tank.tank_id,
        name=tank.name,
        shape=tank.geometry.shape_name,
        orientation=tank.geometry.tank_orientation.value,
        capacity_liters=tank.capacity_liters,
        device_id=tank.device_id,
        last_result=result,
        last_error=error,
    )


# ============================================================================
# Volume Routes
# ============================================================================

volume_router = APIRouter(prefix="/volume", tags=["volume"])


@volume_router.post(
    "/infer",
    response_model=VolumeResultResponse,
    responses={422: {"model": ErrorResponse}},
)
async def infer_volume(request: InferRequest):
    """
    Infer level, volume and fill percentage for a single reading.

    Invalid geometry for the declared shape is rejected with 422.
    """
    outcome = infer(
        _to_geometry(request.geometry),
        _to_calibration(request.calibration),
        request.raw_reading,
        request.declared_capacity_liters,
    )
    if isinstance(outcome, InferenceFailure):
        raise HTTPException(status_code=422, detail=outcome.message)
    return _build_result_response(outcome)


# ============================================================================
# Tank Routes
# ============================================================================

router = APIRouter(prefix="/tanks", tags=["tanks"])


@router.get("", response_model=list[TankResponse])
async def list_tanks():
    repo = get_repository()
    return [_build_tank_response(tank) for tank in repo.list_tanks()]


@router.get("/{tank_id}", response_model=TankResponse)
async def get_tank(tank_id: str):
    tank = get_repository().get_tank(tank_id)
    if tank is None:
        raise HTTPException(status_code=404, detail=f"Tank not found: {tank_id}")
    return _build_tank_response(tank)


@router.post(
    "/{tank_id}",
    response_model=TankResponse,
    responses={422: {"model": ErrorResponse}},
)
async def save_tank(tank_id: str, request: TankRequest):
    """
    Create or replace a tank, then recalculate its volume.

    Assigning a sensor id that has not reported yet registers its device.
    """
    repo = get_repository()
    geometry = _to_geometry(request.geometry)
    try:
        effective_height_of(geometry, request.capacity_liters)
    except GeometryError as e:
        raise HTTPException(status_code=422, detail=str(e))

    device_id = None
    if request.sensor_id:
        device = repo.find_device(request.sensor_id)
        if device is None:
            device = repo.register_device(
                request.sensor_id,
                resolve_sensor_type(request.sensor_id),
                auto_registered=False,
            )
        device_id = device.device_id

    tank = repo.save_tank(TankRecord(
        tank_id=tank_id,
        name=request.name,
        geometry=geometry,
        capacity_liters=request.capacity_liters,
        offset_depth=request.offset_depth,
        sensor_type=request.sensor_type,
        pressure_to_height_factor=request.pressure_to_height_factor,
        device_id=device_id,
    ))

    # Configuration changed: re-run inference from the latest reading
    get_pipeline().recalculate(tank_id)
    return _build_tank_response(tank)


@router.post(
    "/{tank_id}/recalculate",
    response_model=RecalculateResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def recalculate_tank(tank_id: str):
    """Re-run inference from the assigned device's most recent reading."""
    try:
        recalculation = get_pipeline().recalculate(tank_id)
    except UnknownTankError:
        raise HTTPException(status_code=404, detail=f"Tank not found: {tank_id}")

    if isinstance(recalculation.outcome, InferenceFailure):
        raise HTTPException(status_code=422, detail=recalculation.outcome.message)

    return RecalculateResponse(
        tank_id=tank_id,
        result=_build_result_response(recalculation.outcome),
        reading_timestamp=recalculation.reading_timestamp,
        message=recalculation.message,
    )


@router.get(
    "/{tank_id}/curve",
    response_model=VolumeCurveResponse,
    responses={404: {"model": ErrorResponse}, 422: {"model": ErrorResponse}},
)
async def get_volume_curve(
    tank_id: str,
    samples: int = Query(50, ge=2, le=1000, description="Number of levels in the curve"),
):
    """Level-to-volume curve over the tank's effective height."""
    tank = get_repository().get_tank(tank_id)
    if tank is None:
        raise HTTPException(status_code=404, detail=f"Tank not found: {tank_id}")

    try:
        levels, volumes = volume_curve(tank.geometry, samples, tank.capacity_liters)
    except GeometryError as e:
        raise HTTPException(status_code=422, detail=str(e))

    return VolumeCurveResponse(
        tank_id=tank_id,
        effective_total_height=float(levels[-1]),
        levels_m=levels.tolist(),
        volumes_m3=volumes.tolist(),
        volumes_liters=[round_liters(v) for v in volumes],
    )


# ============================================================================
# Ingestion Routes
# ============================================================================

ingest_router = APIRouter(prefix="/ingest", tags=["ingest"])


@ingest_router.post(
    "",
    response_model=IngestResponse,
    responses={422: {"model": ErrorResponse}},
)
async def ingest_frame(request: IngestRequest):
    """
    Decode a payload, store it for its device and update the device's tank.

    Repeated (device, timestamp) pairs are acknowledged but not re-processed.
    """
    try:
        ingestion = get_pipeline().ingest(request.raw_line, request.timestamp)
    except DecodeError as e:
        raise HTTPException(status_code=422, detail=f"{type(e).__name__}: {e}")

    result, error = _split_outcome(ingestion.outcome)
    return IngestResponse(
        frame=build_frame_response(ingestion.frame),
        device_id=ingestion.device.device_id,
        duplicate=ingestion.duplicate,
        tank_id=ingestion.tank_id,
        result=result,
        error=error,
        message=ingestion.message,
    )
