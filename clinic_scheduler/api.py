import logging
from datetime import date
from typing import Optional
from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel
from . import config
from .client import HttpStorage
from .errors import BookingError, InvalidTransition, NotFound, ValidationError
from .models import (
    Appointment,
    BlockDateRequest,
    BookRequest,
    CascadeResponse,
    ConsultationCompleteRequest,
    Notification,
    ScheduleAvailability,
    ScheduleCreate,
    ScheduleOccurrence,
    ScheduleUpdate,
    SlotCapacity,
)
from .service import SchedulingService
from .storage import InMemoryStorage

logging.basicConfig(level=config.LOG_LEVEL, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
logger = logging.getLogger(__name__)

class CancelRequest(BaseModel):
    appointment_id: str
    reason: Optional[str] = None

class AffectedResp(BaseModel):
    schedule_id: str
    affected: int

app = FastAPI(title="Clinic Scheduling Service")

# OFFLINE_MODE keeps every collection in process memory
_service = SchedulingService(InMemoryStorage() if config.OFFLINE_MODE else HttpStorage())

def get_service() -> SchedulingService:
    return _service

@app.exception_handler(NotFound)
async def not_found(request: Request, exc: NotFound):
    return JSONResponse(status_code=404, content={"detail": str(exc)})

@app.exception_handler(BookingError)
async def booking_refused(request: Request, exc: BookingError):
    return JSONResponse(status_code=409, content={"detail": exc.to_dict()})

@app.exception_handler(InvalidTransition)
async def invalid_transition(request: Request, exc: InvalidTransition):
    return JSONResponse(status_code=409, content={"detail": str(exc)})

@app.exception_handler(ValidationError)
async def invalid_input(request: Request, exc: ValidationError):
    return JSONResponse(status_code=422, content={"detail": str(exc)})

def _cascade_resp(schedule_id: str, result) -> CascadeResponse:
    return CascadeResponse(
        schedule_id=schedule_id,
        cancelled=len(result.cancelled),
        notifications=len(result.notifications),
    )

# Schedule endpoints -------------------------------------------------------

@app.post("/schedules", response_model=list[ScheduleOccurrence], status_code=201)
async def create_schedule(req: ScheduleCreate, service: SchedulingService = Depends(get_service)):
    """One schedule per requested consultation day."""
    return await service.create_schedule(req)

@app.get("/schedules/{schedule_id}", response_model=ScheduleOccurrence)
async def get_schedule(schedule_id: str, service: SchedulingService = Depends(get_service)):
    return await service.get_schedule(schedule_id)

@app.get("/schedules/{schedule_id}/capacity", response_model=SlotCapacity)
async def schedule_capacity(schedule_id: str, service: SchedulingService = Depends(get_service)):
    return await service.capacity(schedule_id)

@app.get("/schedules/{schedule_id}/affected", response_model=AffectedResp)
async def schedule_affected(schedule_id: str, service: SchedulingService = Depends(get_service)):
    """Pending appointments that a day/time edit or a delete would cancel."""
    return AffectedResp(schedule_id=schedule_id, affected=await service.affected_count(schedule_id))

@app.put("/schedules/{schedule_id}", response_model=CascadeResponse)
async def edit_schedule(
    schedule_id: str,
    req: ScheduleUpdate,
    confirm: bool = Query(False, description="Required when the edit cancels pending appointments"),
    service: SchedulingService = Depends(get_service),
):
    # Moving day/time cancels bookings; make the doctor say so explicitly.
    if not confirm:
        affected = await service.edit_would_cancel(schedule_id, req)
        if affected:
            logger.info(f"Unconfirmed edit of {schedule_id} would cancel {affected} appointment(s)")
            raise HTTPException(
                status_code=409,
                detail=f"Changing the day/time will cancel {affected} pending appointment(s). Resend with confirm=true.",
            )
    result = await service.edit_schedule(schedule_id, req)
    return _cascade_resp(schedule_id, result)

@app.delete("/schedules/{schedule_id}", response_model=CascadeResponse)
async def delete_schedule(schedule_id: str, service: SchedulingService = Depends(get_service)):
    result = await service.delete_schedule(schedule_id)
    return _cascade_resp(schedule_id, result)

@app.post("/block-date", response_model=CascadeResponse)
async def block_date(req: BlockDateRequest, service: SchedulingService = Depends(get_service)):
    result = await service.block_date(req.doctor_id, req.blocked_date, req.reason)
    return CascadeResponse(cancelled=len(result.cancelled), notifications=len(result.notifications))

# Booking related endpoints -------------------------------------------------

@app.get("/availability", response_model=list[ScheduleAvailability])
async def list_availability(
    appt_date: date = Query(..., alias="date", description="YYYY-MM-DD date the patient wants"),
    doctor_id: Optional[str] = Query(None),
    service: SchedulingService = Depends(get_service),
):
    """Schedules running on that weekday, each with its bookability and free slots."""
    return await service.availability(appt_date, doctor_id)

@app.post("/book", response_model=Appointment, status_code=201)
async def book_appt(req: BookRequest, service: SchedulingService = Depends(get_service)):
    return await service.book(req.patient_id, req.schedule_id, req.appointment_date, req.patient_name)

@app.post("/cancel", response_model=Appointment)
async def cancel(req: CancelRequest, service: SchedulingService = Depends(get_service)):
    return await service.cancel(req.appointment_id, req.reason)

@app.get("/appointments", response_model=list[Appointment])
async def list_appointments(
    patient_id: Optional[str] = Query(None),
    doctor_id: Optional[str] = Query(None),
    service: SchedulingService = Depends(get_service),
):
    """Appointments after reconciling overdue pending ones."""
    if not patient_id and not doctor_id:
        raise HTTPException(status_code=422, detail="patient_id or doctor_id is required")
    return await service.load_appointments(patient_id=patient_id, doctor_id=doctor_id)

@app.post("/consultations/complete", response_model=list[Appointment])
async def complete_consultation(req: ConsultationCompleteRequest, service: SchedulingService = Depends(get_service)):
    """Called by the consultation-notes workflow once notes are final."""
    return await service.mark_consultation_complete(req.patient_id)

@app.get("/notifications", response_model=list[Notification])
async def list_notifications(patient_id: str = Query(...), service: SchedulingService = Depends(get_service)):
    return await service.notifications(patient_id)
