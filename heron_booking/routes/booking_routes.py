from datetime import datetime

from fastapi import APIRouter, Depends, Query, Request, status
from pydantic import BaseModel, field_validator

from heron_booking.auth.dependencies import get_current_user
from heron_booking.core import config
from heron_booking.models.appointment_request import Agenda
from heron_booking.repositories.directory import ParticipantDetails
from heron_booking.services.booking import BookingService
from heron_booking.services.slots import SlotDiscoveryService

router = APIRouter(tags=['booking'])


class CreateAppointmentRequest(BaseModel):
    counterparty_id: str
    agenda: Agenda
    proposed_start: datetime
    proposed_end: datetime

    @field_validator('counterparty_id')
    @classmethod
    def validate_counterparty_id(cls, value: str) -> str:
        normalized = value.strip()
        if not normalized:
            raise ValueError('Counterparty ID is required.')
        return normalized


class AppointmentRequestResponse(BaseModel):
    id: str
    student_id: str
    counselor_id: str
    department: str
    agenda: str
    proposed_start: datetime
    proposed_end: datetime
    proposed_by: str
    created_by: str
    student_response: str
    counselor_response: str
    status: str
    finalized_at: datetime | None = None
    created_at: datetime

    class Config:
        from_attributes = True


class AppointmentResponse(BaseModel):
    id: str
    request_id: str
    student_id: str
    counselor_id: str
    department: str
    agenda: str
    start_time: datetime
    end_time: datetime
    google_event_id: str | None = None
    status: str
    cancelled_by: str | None = None
    cancelled_at: datetime | None = None

    class Config:
        from_attributes = True


class RespondResponse(BaseModel):
    request: AppointmentRequestResponse
    appointment: AppointmentResponse | None = None


class TimeSlotResponse(BaseModel):
    start: datetime
    end: datetime


class UnavailableSlotResponse(TimeSlotResponse):
    agenda: str


class PendingCountResponse(BaseModel):
    pending: int


def get_booking_service(request: Request) -> BookingService:
    return request.app.state.booking_service


def get_slot_service(request: Request) -> SlotDiscoveryService:
    return request.app.state.slot_service


@router.post('/requests', response_model=AppointmentRequestResponse, status_code=status.HTTP_201_CREATED)
def propose_appointment(
    data: CreateAppointmentRequest,
    user: ParticipantDetails = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.propose_appointment(
        initiator_id=user.id,
        initiator_role=user.role,
        agenda=data.agenda,
        counterparty_id=data.counterparty_id,
        proposed_start=data.proposed_start,
        proposed_end=data.proposed_end,
    )


@router.patch('/requests/{request_id}/accept', response_model=RespondResponse)
def accept_appointment_request(
    request_id: str,
    user: ParticipantDetails = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    appointment = service.accept_request(user.id, user.role, request_id)
    return RespondResponse(
        request=AppointmentRequestResponse.model_validate(service.get_request(user.id, user.role, request_id)),
        appointment=AppointmentResponse.model_validate(appointment) if appointment else None,
    )


@router.patch('/requests/{request_id}/decline', response_model=RespondResponse)
def decline_appointment_request(
    request_id: str,
    user: ParticipantDetails = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    service.decline_request(user.id, user.role, request_id)
    return RespondResponse(
        request=AppointmentRequestResponse.model_validate(service.get_request(user.id, user.role, request_id)),
    )


@router.get('/requests', response_model=list[AppointmentRequestResponse])
def list_appointment_requests(
    request_status: str | None = Query(default=None, alias='status'),
    direction: str | None = Query(default=None),
    user: ParticipantDetails = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_requests(user.id, user.role, status=request_status, direction=direction)


@router.get('/requests/pending-count', response_model=PendingCountResponse)
def count_pending_requests(
    user: ParticipantDetails = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return PendingCountResponse(pending=service.count_pending_requests(user.id, user.role))


@router.get('/requests/{request_id}', response_model=AppointmentRequestResponse)
def get_appointment_request(
    request_id: str,
    user: ParticipantDetails = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_request(user.id, user.role, request_id)


@router.get('/appointments', response_model=list[AppointmentResponse])
def list_appointments(
    start: datetime = Query(...),
    end: datetime = Query(...),
    user: ParticipantDetails = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.list_appointments(user.id, user.role, start, end)


@router.get('/appointments/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: str,
    user: ParticipantDetails = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_appointment(user.id, user.role, appointment_id)


@router.delete('/appointments/{appointment_id}', response_model=AppointmentResponse)
def cancel_appointment(
    appointment_id: str,
    user: ParticipantDetails = Depends(get_current_user),
    service: BookingService = Depends(get_booking_service),
):
    return service.cancel_appointment(user.id, user.role, appointment_id)


@router.get(
    '/availability/counselor/{counselor_id}',
    response_model=list[UnavailableSlotResponse],
    dependencies=[Depends(get_current_user)],
)
def list_counselor_unavailable_slots(
    counselor_id: str,
    start: datetime = Query(...),
    end: datetime = Query(...),
    service: BookingService = Depends(get_booking_service),
):
    return service.get_counselor_unavailable_slots(counselor_id, start, end)


@router.get(
    '/availability/department/{department}',
    response_model=list[TimeSlotResponse],
    dependencies=[Depends(get_current_user)],
)
def list_department_available_slots(
    department: str,
    start: datetime = Query(...),
    end: datetime = Query(...),
    slot_duration: int = Query(default=config.DEFAULT_SLOT_DURATION_MINUTES),
    work_start_hour: int = Query(default=config.DEFAULT_WORK_START_HOUR),
    work_end_hour: int = Query(default=config.DEFAULT_WORK_END_HOUR),
    slot_service: SlotDiscoveryService = Depends(get_slot_service),
):
    slots = slot_service.get_available_slots(
        department,
        start,
        end,
        slot_duration_minutes=slot_duration,
        work_start_hour=work_start_hour,
        work_end_hour=work_end_hour,
    )
    return [TimeSlotResponse(start=slot.start, end=slot.end) for slot in slots]
