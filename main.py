import logging
import os
from contextlib import asynccontextmanager, contextmanager
from typing import Any, AsyncGenerator, Dict, Iterator, Optional

from bson.errors import InvalidDocument
from fastapi import APIRouter, Body, Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import DuplicateKeyError, PyMongoError, WriteError

from config import Settings, configure_logging, get_settings
from database import Store, connect, parse_id, serialize
from errors import (
    AuthError,
    ConflictError,
    InternalError,
    NotFoundError,
    RideHailingError,
    ValidationError,
)
from schemas import AvailabilityUpdate, LoginRequest, RideStatusUpdate, User, UserCreate
from seed import seed_sample_data

logger = logging.getLogger(__name__)

router = APIRouter()


def get_store(request: Request) -> Store:
    return request.app.state.store


@contextmanager
def store_call(message: str, rejects_input: bool = False) -> Iterator[None]:
    """
    Map store failures raised inside the block onto API errors.

    Documents bson cannot encode are the client's fault. With rejects_input,
    so are writes the server refuses (e.g. $-prefixed field names).
    """
    try:
        yield
    except (InvalidDocument, OverflowError) as e:
        raise ValidationError(f"{message}: {e}")
    except WriteError as e:
        if rejects_input:
            raise ValidationError(f"{message}: {e}")
        logger.exception(message)
        raise InternalError(message)
    except PyMongoError:
        logger.exception(message)
        raise InternalError(message)


@router.get("/")
def read_root():
    return {"message": "Ride Hailing Backend is running"}


@router.get("/test")
def test_database(store: Store = Depends(get_store)):
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if os.getenv("DATABASE_URL") else "❌ Not Set",
        "database_name": "✅ Set" if os.getenv("DATABASE_NAME") else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": [],
    }
    if store is None:
        response["database"] = "⚠️  Available but not initialized"
        return response
    try:
        response["collections"] = store.list_collection_names()[:10]
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️  Connected but Error: {str(e)[:80]}"
    return response


# ------------------- USER ROUTES -------------------

@router.post("/users", status_code=201)
def create_user(payload: UserCreate, store: Store = Depends(get_store)):
    if not payload.name or not payload.email or not payload.password:
        raise ValidationError("Missing required fields")

    # Read-then-write: two concurrent registrations can both pass this check
    with store_call("Failed to register user"):
        if store.find_one("users", {"email": payload.email}):
            logger.warning("Registration rejected, email taken: %s", payload.email)
            raise ConflictError("Email already registered")
        user = User(
            name=payload.name,
            email=payload.email,
            password=payload.password,
            role=payload.role or "customer",
        )
        try:
            user_id = store.insert_one("users", user.model_dump(exclude_none=True))
        except DuplicateKeyError:
            raise ConflictError("Email already registered")

    logger.info("User %s registered", user_id)
    return {"id": user_id}


@router.post("/auth/login")
def login(payload: LoginRequest, store: Store = Depends(get_store)):
    if not payload.email or not payload.password:
        raise ValidationError("Email and password required")

    with store_call("Login failed"):
        user = store.find_one("users", {"email": payload.email, "password": payload.password})

    if not user:
        logger.warning("Failed login for %s", payload.email)
        raise AuthError("Unauthorized - invalid credentials")
    return {"message": "Login successful", "userId": str(user["_id"])}


@router.patch("/drivers/{driver_id}/status")
def set_driver_availability(
    driver_id: str,
    payload: Optional[AvailabilityUpdate] = None,
    store: Store = Depends(get_store),
):
    oid = parse_id(driver_id)
    # JSON true/false only; "true" and 1 are rejected
    availability = payload.availability if payload else None
    if not isinstance(availability, bool):
        raise ValidationError("Availability must be a boolean")

    with store_call("Failed to update driver"):
        result = store.update_one(
            "users",
            {"_id": oid, "role": "driver"},
            {"available": availability},
        )
    if result.matched_count == 0:
        raise NotFoundError("Driver not found")
    return {"updated": result.modified_count}


# ------------------- RIDE ROUTES -------------------

@router.get("/rides")
def list_rides(store: Store = Depends(get_store)):
    with store_call("Failed to fetch rides"):
        rides = store.find("rides")
    return serialize(rides)


@router.post("/rides", status_code=201)
def create_ride(ride: Dict[str, Any] = Body(...), store: Store = Depends(get_store)):
    ride.pop("_id", None)
    with store_call("Invalid ride data", rejects_input=True):
        ride_id = store.insert_one("rides", ride)
    logger.info("Ride %s created", ride_id)
    return {"id": ride_id}


@router.patch("/rides/{ride_id}")
def update_ride_status(ride_id: str, payload: RideStatusUpdate, store: Store = Depends(get_store)):
    oid = parse_id(ride_id)
    with store_call("Failed to update ride"):
        result = store.update_one("rides", {"_id": oid}, {"status": payload.status})
    # An unchanged status also modifies nothing and reads as not found
    if result.modified_count == 0:
        raise NotFoundError("Ride not found")
    return {"updated": result.modified_count}


@router.put("/rides/{ride_id}")
def replace_ride(ride_id: str, ride: Dict[str, Any] = Body(...), store: Store = Depends(get_store)):
    ride.pop("_id", None)
    oid = parse_id(ride_id)

    with store_call("Failed to replace ride", rejects_input=True):
        result = store.replace_one("rides", {"_id": oid}, ride)
        if result.matched_count == 0:
            raise NotFoundError("Ride not found")
        updated = store.find_one("rides", {"_id": oid})

    if updated is None:
        raise NotFoundError("Ride not found")
    return {"status": serialize(updated.get("status"))}


@router.delete("/rides/{ride_id}")
def delete_ride(ride_id: str, store: Store = Depends(get_store)):
    oid = parse_id(ride_id)
    with store_call("Failed to delete ride"):
        deleted = store.delete_one("rides", {"_id": oid})
    if deleted == 0:
        raise NotFoundError("Ride not found")
    logger.info("Ride %s deleted", ride_id)
    return {"deleted": deleted}


# ------------------- APP -------------------

def create_app(store: Optional[Store] = None, settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the API. A given store is used as-is; otherwise one is connected
    from settings on startup (and seeded when SEED_DATA is on).
    """
    settings = settings or get_settings()

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
        configure_logging(settings.log_level)
        owned = app.state.store is None
        if owned:
            app.state.store = connect(settings)
            if settings.seed_data:
                try:
                    seed_sample_data(app.state.store)
                except PyMongoError:
                    logger.exception("Seeding sample data failed")
        yield
        if owned:
            app.state.store.close()
            app.state.store = None

    app = FastAPI(title="Ride Hailing API", lifespan=lifespan)
    app.state.store = store

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(RideHailingError)
    async def handle_api_error(request: Request, exc: RideHailingError):
        return JSONResponse(status_code=exc.status_code, content={"error": exc.message})

    @app.exception_handler(RequestValidationError)
    async def handle_bad_body(request: Request, exc: RequestValidationError):
        return JSONResponse(status_code=400, content={"error": "Invalid request data"})

    app.include_router(router)
    return app


app = create_app()

if __name__ == "__main__":
    import uvicorn
    settings = get_settings()
    uvicorn.run(app, host=settings.host, port=settings.port)
