import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import Depends, FastAPI, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from pymongo.database import Database
from pymongo.errors import PyMongoError
from starlette.concurrency import run_in_threadpool

import booking
import directory
from config import CHANNEL_AUTH_REQUIRED, CORS_ORIGINS, LOG_LEVEL, PORT
from database import ensure_indexes, get_db, ping
from errors import register_exception_handlers
from notifications import ChannelHub, serve_channel_socket
from schemas import AppointmentCreate, BarberAppointments, BarberCreate, LoginRequest

# Configure logging
logging.basicConfig(
    level=LOG_LEVEL,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Application starting up...")
    try:
        if app.state.configured_db:
            await run_in_threadpool(ping, app.state.db)
        await run_in_threadpool(ensure_indexes, app.state.db)
    except PyMongoError as e:
        # Without the store there is nothing to serve
        logger.error(f"MongoDB connection error: {e}")
        raise
    yield
    logger.info("Application shutting down...")


# ----- Dependencies -----
def get_database(request: Request) -> Database:
    return request.app.state.db


def get_hub(request: Request) -> ChannelHub:
    return request.app.state.hub


def create_app(
    database: Optional[Database] = None,
    hub: Optional[ChannelHub] = None,
    channel_auth_required: Optional[bool] = None,
) -> FastAPI:
    app = FastAPI(title="Barbershop Booking API", lifespan=lifespan)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    register_exception_handlers(app)

    # An injected database is already connected; only the configured one is pinged
    app.state.configured_db = database is None
    app.state.db = database if database is not None else get_db()
    app.state.hub = hub if hub is not None else ChannelHub()
    app.state.channel_auth_required = (
        CHANNEL_AUTH_REQUIRED if channel_auth_required is None else channel_auth_required
    )

    # ----- Public Endpoints -----
    @app.get("/")
    def root():
        return {"message": "Barbershop Booking API running"}

    @app.get("/test")
    def test_database(database: Database = Depends(get_database)):
        response = {"backend": "Running", "database": "Not Available", "collections": []}
        try:
            response["collections"] = database.list_collection_names()[:10]
            response["database"] = "Connected & Working"
        except PyMongoError as e:
            response["database"] = f"Error: {str(e)[:50]}"
        return response

    # ----- Barbers -----
    @app.post("/create-account")
    async def create_account(body: BarberCreate, database: Database = Depends(get_database)):
        return await directory.register(database, body)

    @app.post("/barber-login")
    async def barber_login(body: LoginRequest, database: Database = Depends(get_database)):
        return await directory.login(database, body.identifier, body.credential)

    @app.get("/barbers")
    async def list_barbers(database: Database = Depends(get_database)):
        return await directory.list_barbers(database)

    @app.get("/barbers/{barber_id}")
    async def get_barber(barber_id: str, database: Database = Depends(get_database)):
        return await directory.get_barber(database, barber_id)

    @app.get("/barbers/{barber_id}/appointments", response_model=BarberAppointments)
    async def barber_appointments_by_id(barber_id: str, database: Database = Depends(get_database)):
        return await booking.list_for_barber_id(database, barber_id)

    # ----- Appointments -----
    @app.post("/appointments", status_code=status.HTTP_201_CREATED)
    async def create_appointment(
        body: AppointmentCreate,
        database: Database = Depends(get_database),
        hub: ChannelHub = Depends(get_hub),
    ):
        return await booking.create_appointment(database, hub, body)

    @app.get("/appointments/{appointment_id}")
    async def get_appointment(appointment_id: str, database: Database = Depends(get_database)):
        return await booking.get_appointment(database, appointment_id)

    @app.get("/barber-appointments/{barber_name}", response_model=BarberAppointments)
    async def barber_appointments(barber_name: str, database: Database = Depends(get_database)):
        return await booking.list_for_barber(database, barber_name)

    @app.get("/user-appointments/{email}")
    async def user_appointments(email: str, database: Database = Depends(get_database)):
        return await booking.list_for_customer(database, email)

    @app.put("/appointments/{appointment_id}/approve")
    async def approve_appointment(
        appointment_id: str,
        database: Database = Depends(get_database),
        hub: ChannelHub = Depends(get_hub),
    ):
        return await booking.approve(database, hub, appointment_id)

    @app.delete("/appointments/{appointment_id}")
    async def reject_appointment(
        appointment_id: str,
        database: Database = Depends(get_database),
        hub: ChannelHub = Depends(get_hub),
    ):
        return await booking.reject(database, hub, appointment_id)

    # ----- Realtime -----
    @app.websocket("/ws")
    async def channel_socket(websocket: WebSocket):
        await serve_channel_socket(
            websocket, websocket.app.state.hub, websocket.app.state.channel_auth_required
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=PORT)
