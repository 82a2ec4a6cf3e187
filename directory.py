"""
Barber directory: registration, login and the public barber listing.

Appointments reference barbers by display name ("First Last"), so the
listing exposes that name as ``name``; ``resolve_display_name`` turns it
back into a stable barber id where it is unambiguous.
"""
import logging
from typing import List, Optional

from bson import ObjectId
from bson.errors import InvalidId
from pydantic import EmailStr, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pymongo.database import Database
from pymongo.errors import DuplicateKeyError, PyMongoError
from starlette.concurrency import run_in_threadpool

from database import create_document, get_documents, serialize
from errors import Conflict, Internal, NotFound, Unauthorized
from schemas import Barber, BarberCreate, BarberProfile, BarberView, LoginResponse
from security import create_barber_token, hash_password, verify_password

logger = logging.getLogger(__name__)

COLLECTION = "barber"
AVATAR_PLACEHOLDER = "https://placehold.co/300x300/e2e8f0/475569?text="
DUPLICATE_EMAIL = "A barber with this email already exists"
BAD_CREDENTIALS = "Invalid username or password"

_email_adapter = TypeAdapter(EmailStr)


def display_name(doc: dict) -> str:
    return f"{doc['first_name']} {doc['last_name']}"


def role_label(experience: str) -> str:
    return experience if "yrs" in experience else f"{experience} Experience"


def barber_view(doc: dict) -> dict:
    """Presentation view of a stored barber. Never includes the password hash."""
    return BarberView(
        id=str(doc["_id"]),
        name=display_name(doc),
        role=role_label(doc["experience"]),
        experience=f"{doc['experience']} of experience",
        shop_name=doc["shop_name"],
        email=doc["email"],
        phone=doc["phone"],
        specialties=doc.get("specialties") or [],
        image=AVATAR_PLACEHOLDER + doc["first_name"],
    ).model_dump(by_alias=True)


def profile_out(doc: dict) -> dict:
    data = serialize(doc)
    data.pop("password_hash", None)
    return BarberProfile.model_validate(data).model_dump(by_alias=True)


def parse_object_id(value: str) -> Optional[ObjectId]:
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


def _find_by_email(database: Database, email: str) -> Optional[dict]:
    return database[COLLECTION].find_one({"email": email})


def login_emails(identifier: str) -> List[str]:
    """The identifier as typed, plus the form registration stores it in (domain lowercased)."""
    try:
        normalized = _email_adapter.validate_python(identifier)
    except PydanticValidationError:
        return [identifier]
    return [identifier] if normalized == identifier else [identifier, normalized]


def _find_by_identifier(database: Database, identifier: str) -> Optional[dict]:
    return database[COLLECTION].find_one(
        {
            "$or": [
                {"first_name": identifier},
                {"last_name": identifier},
                {"email": {"$in": login_emails(identifier)}},
            ]
        }
    )


def _find_by_id(database: Database, barber_id: str) -> Optional[dict]:
    oid = parse_object_id(barber_id)
    if oid is None:
        return None
    return database[COLLECTION].find_one({"_id": oid})


def _insert_barber(database: Database, profile: BarberCreate) -> dict:
    doc = Barber(
        first_name=profile.first_name,
        last_name=profile.last_name,
        email=profile.email,
        phone=profile.phone,
        shop_name=profile.shop_name,
        address=profile.address,
        experience=profile.experience,
        specialties=profile.specialties,
        password_hash=hash_password(profile.password),
    )
    inserted_id = create_document(database, COLLECTION, doc)
    return database[COLLECTION].find_one({"_id": ObjectId(inserted_id)})


async def register(database: Database, profile: BarberCreate) -> dict:
    logger.info(f"Account creation requested for {profile.email}")
    try:
        if await run_in_threadpool(_find_by_email, database, profile.email):
            raise Conflict(DUPLICATE_EMAIL)
        stored = await run_in_threadpool(_insert_barber, database, profile)
    except DuplicateKeyError:
        # Lost a race with a concurrent registration for the same email
        raise Conflict(DUPLICATE_EMAIL)
    except PyMongoError as e:
        logger.error(f"Error creating barber: {e}")
        raise Internal("Failed to create account")
    logger.info(f"Barber created: {stored['_id']}")
    return profile_out(stored)


async def login(database: Database, identifier: str, credential: str) -> dict:
    logger.info(f"Login attempt for: {identifier}")
    try:
        barber = await run_in_threadpool(_find_by_identifier, database, identifier)
    except PyMongoError as e:
        logger.error(f"Login error: {e}")
        raise Internal("Server error. Please try again later.")
    if not barber or not barber.get("password_hash"):
        raise Unauthorized(BAD_CREDENTIALS)
    if not await run_in_threadpool(verify_password, credential, barber["password_hash"]):
        raise Unauthorized(BAD_CREDENTIALS)

    barber_id = str(barber["_id"])
    return LoginResponse(
        id=barber_id,
        first_name=barber["first_name"],
        last_name=barber["last_name"],
        email=barber["email"],
        shop_name=barber["shop_name"],
        access_token=create_barber_token(barber_id, display_name(barber)),
    ).model_dump(by_alias=True)


async def list_barbers(database: Database) -> List[dict]:
    try:
        barbers = await run_in_threadpool(get_documents, database, COLLECTION)
    except PyMongoError as e:
        logger.error(f"Error fetching barbers: {e}")
        raise Internal("Failed to fetch barbers")
    return [barber_view(b) for b in barbers]


async def get_barber(database: Database, barber_id: str) -> dict:
    try:
        barber = await run_in_threadpool(_find_by_id, database, barber_id)
    except PyMongoError as e:
        logger.error(f"Error fetching barber {barber_id}: {e}")
        raise Internal("Failed to fetch barber")
    if not barber:
        raise NotFound("Barber not found")
    return barber_view(barber)


def find_barber(database: Database, barber_id: str) -> Optional[dict]:
    """Blocking lookup by id, for callers already off the event loop."""
    return _find_by_id(database, barber_id)


def name_splits(name: str) -> List[dict]:
    """Every (first, last) pair whose display name is exactly `name`."""
    parts = name.split(" ")
    return [
        {"first_name": " ".join(parts[:i]), "last_name": " ".join(parts[i:])}
        for i in range(1, len(parts))
    ]


def resolve_display_name(database: Database, name: str) -> Optional[str]:
    """Barber id for a display name, or None when unknown or ambiguous. Blocking."""
    candidates = name_splits(name)
    if not candidates:
        return None
    matches = list(database[COLLECTION].find({"$or": candidates}, {"_id": 1}).limit(2))
    if len(matches) != 1:
        return None
    return str(matches[0]["_id"])
