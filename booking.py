"""
Appointment lifecycle: booking, listing, approval and rejection.

An appointment starts pending (``approved`` false). A barber either
approves it, which sets the flag once and for good, or rejects it, which
removes the record. Each transition is announced on the notification
channel of the party that did not cause it: new bookings go to
``barber:<display name>``, decisions go to ``user:<customer email>``.
"""
import logging
from datetime import datetime, timezone
from typing import List, Optional

from bson import ObjectId
from pymongo import ReturnDocument
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool

from database import create_document, get_documents, serialize
from directory import display_name, find_barber, parse_object_id, resolve_display_name
from errors import Internal, NotFound, ValidationError
from notifications import APPOINTMENT_STATUS_CHANGED, NEW_APPOINTMENT, ChannelHub
from schemas import Appointment, AppointmentCreate, AppointmentOut
from security import barber_channel, create_channel_token, user_channel

logger = logging.getLogger(__name__)

COLLECTION = "appointment"
NOT_FOUND = "Appointment not found"


def appointment_out(doc: dict) -> dict:
    return AppointmentOut.model_validate(serialize(doc)).model_dump(mode="json", by_alias=True)


def partition(appointments: List[dict]) -> dict:
    """Split into pending and confirmed, keeping the incoming order in each."""
    return {
        "pendingAppointments": [a for a in appointments if not a["approved"]],
        "confirmedAppointments": [a for a in appointments if a["approved"]],
    }


def _insert_appointment(database: Database, request: AppointmentCreate) -> dict:
    barber_name = request.barber
    if request.barber_id:
        barber = find_barber(database, request.barber_id)
        if not barber:
            raise ValidationError("Unknown barber")
        barber_name = display_name(barber)
        barber_id = str(barber["_id"])
    else:
        barber_id = resolve_display_name(database, barber_name)

    doc = Appointment(
        customer_name=request.name,
        email=request.email,
        phone=request.phone,
        service=request.service,
        barber=barber_name,
        barber_id=barber_id,
        date=request.date,
        time=request.time,
        notes=request.notes,
        approved=False,
    )
    inserted_id = create_document(database, COLLECTION, doc)
    return database[COLLECTION].find_one({"_id": ObjectId(inserted_id)})


def _find(database: Database, appointment_id: str) -> Optional[dict]:
    oid = parse_object_id(appointment_id)
    if oid is None:
        return None
    return database[COLLECTION].find_one({"_id": oid})


def _approve(database: Database, appointment_id: str) -> Optional[dict]:
    oid = parse_object_id(appointment_id)
    if oid is None:
        return None
    return database[COLLECTION].find_one_and_update(
        {"_id": oid},
        {"$set": {"approved": True, "updated_at": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )


def _delete(database: Database, appointment_id: str) -> Optional[dict]:
    oid = parse_object_id(appointment_id)
    if oid is None:
        return None
    # Returns the document as it was before removal
    return database[COLLECTION].find_one_and_delete({"_id": oid})


async def _fetch_many(database: Database, filter_dict: dict) -> List[dict]:
    try:
        docs = await run_in_threadpool(get_documents, database, COLLECTION, filter_dict)
    except PyMongoError as e:
        logger.error(f"Error fetching appointments: {e}")
        raise Internal("Failed to fetch appointments")
    return [appointment_out(d) for d in docs]


async def create_appointment(database: Database, hub: ChannelHub, request: AppointmentCreate) -> dict:
    try:
        stored = await run_in_threadpool(_insert_appointment, database, request)
    except PyMongoError as e:
        logger.error(f"Error creating appointment: {e}")
        raise Internal("Failed to create appointment")

    appointment = appointment_out(stored)
    logger.info(f"Appointment created: {appointment['id']} for {appointment['barber']}")

    await hub.publish(barber_channel(appointment["barber"]), NEW_APPOINTMENT, appointment, appointment["id"])
    token = create_channel_token(appointment["email"], appointment["id"])
    return {**appointment, "channelToken": token}


async def list_for_barber(database: Database, barber_name: str) -> dict:
    return partition(await _fetch_many(database, {"barber": barber_name}))


async def list_for_barber_id(database: Database, barber_id: str) -> dict:
    return partition(await _fetch_many(database, {"barber_id": barber_id}))


async def list_for_customer(database: Database, email: str) -> List[dict]:
    return await _fetch_many(database, {"email": email})


async def get_appointment(database: Database, appointment_id: str) -> dict:
    try:
        doc = await run_in_threadpool(_find, database, appointment_id)
    except PyMongoError as e:
        logger.error(f"Error fetching appointment {appointment_id}: {e}")
        raise Internal("Failed to fetch appointment")
    if not doc:
        raise NotFound(NOT_FOUND)
    return appointment_out(doc)


async def approve(database: Database, hub: ChannelHub, appointment_id: str) -> dict:
    try:
        updated = await run_in_threadpool(_approve, database, appointment_id)
    except PyMongoError as e:
        logger.error(f"Error approving appointment: {e}")
        raise Internal("Failed to approve appointment")
    if not updated:
        raise NotFound(NOT_FOUND)

    appointment = appointment_out(updated)
    logger.info(f"Appointment approved: {appointment['id']}")
    await hub.publish(
        user_channel(appointment["email"]),
        APPOINTMENT_STATUS_CHANGED,
        {"id": appointment["id"], "status": "approved", "appointment": appointment},
        appointment["id"],
    )
    return appointment


async def reject(database: Database, hub: ChannelHub, appointment_id: str) -> dict:
    try:
        snapshot = await run_in_threadpool(_delete, database, appointment_id)
    except PyMongoError as e:
        logger.error(f"Error deleting appointment: {e}")
        raise Internal("Failed to delete appointment")
    if not snapshot:
        raise NotFound(NOT_FOUND)

    appointment = appointment_out(snapshot)
    logger.info(f"Appointment rejected: {appointment['id']}")
    await hub.publish(
        user_channel(appointment["email"]),
        APPOINTMENT_STATUS_CHANGED,
        {"id": appointment["id"], "status": "rejected", "appointment": appointment},
        appointment["id"],
    )
    return {"message": "Appointment deleted successfully"}
