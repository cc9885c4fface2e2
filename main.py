import logging
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pymongo.errors import PyMongoError

import config
import database
from auth import authenticate, current_user_id, issue_token, public_user, register_user
from calendar_feed import get_events
from classifier import classify_tasks, get_display_timezone
from database import (
    create_document,
    delete_owned,
    get_db,
    get_documents,
    get_owned,
    parse_object_id,
    update_owned,
)
from errors import AppError, NotFoundError, ValidationError
from schemas import (
    CalendarEvent,
    CreateEntry,
    CreateTask,
    JournalEntry,
    LoginUser,
    RegisterUser,
    Task,
    TaskBuckets,
    UpdateEntry,
    UpdateTask,
)
from timeutils import parse_window, to_storage, utcnow

logging.basicConfig(
    level=config.LOG_LEVEL,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Check auth settings and create indexes on startup"""
    if config.JWT_SECRET == config.DEFAULT_JWT_SECRET:
        logger.warning("JWT_SECRET is not set; tokens are signed with the development default")
    if database.db is not None:
        try:
            database.ensure_indexes(database.db)
        except PyMongoError as e:
            logger.error(f"Could not create indexes: {e}")
    yield


app = FastAPI(title="Planner API", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ---------- Error handling ----------
@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(e.get("loc", [])), "msg": e.get("msg")} for e in exc.errors()]
    return JSONResponse(status_code=400, content={"detail": "Invalid request", "errors": errors})


@app.exception_handler(PyMongoError)
async def database_error_handler(request: Request, exc: PyMongoError):
    logger.error(f"Database error on {request.method} {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Server error"})


def _datetimes_to_storage(update: Dict[str, Any], *fields: str) -> Dict[str, Any]:
    for field in fields:
        if field in update:
            update[field] = to_storage(update[field])
    return update


@app.get("/")
def read_root():
    return {"message": "Planner Backend Running"}


@app.get("/test")
def test_database():
    response = {
        "backend": "✅ Running",
        "database": "❌ Not Available",
        "database_url": "✅ Set" if config.DATABASE_URL else "❌ Not Set",
        "database_name": "✅ Set" if config.DATABASE_NAME else "❌ Not Set",
        "connection_status": "Not Connected",
        "collections": []
    }
    if database.db is None:
        return response
    try:
        response["collections"] = database.db.list_collection_names()
        response["database"] = "✅ Connected & Working"
        response["connection_status"] = "Connected"
    except PyMongoError as e:
        response["database"] = f"⚠️ Connected but Error: {str(e)[:50]}"
    return response


# ---------- Auth ----------
@app.post("/api/auth/register", status_code=201)
def register(payload: RegisterUser, db=Depends(get_db)):
    user = register_user(db, payload.email, payload.password, payload.name)
    return {"token": issue_token(user["_id"]), "user": user}


@app.post("/api/auth/login")
def login(payload: LoginUser, db=Depends(get_db)):
    user = authenticate(db, payload.email, payload.password)
    return {"token": issue_token(user["_id"]), "user": user}


@app.get("/api/auth/me")
def me(user_id: str = Depends(current_user_id), db=Depends(get_db)):
    doc = db["user"].find_one({"_id": parse_object_id(user_id)})
    if not doc:
        raise NotFoundError("User not found")
    return {"user": public_user(doc)}


# ---------- Tasks ----------
@app.get("/api/tasks")
def list_tasks(
    status: Optional[str] = None,
    category: Optional[str] = None,
    user_id: str = Depends(current_user_id),
    db=Depends(get_db),
):
    filt: Dict[str, Any] = {"user_id": user_id}
    if status:
        filt["status"] = status
    if category:
        filt["category"] = category
    return {"tasks": get_documents(db, "task", filt, sort=[("created_at", -1)])}


@app.get("/api/tasks/buckets", response_model=TaskBuckets)
def task_buckets(
    tz: Optional[str] = Query(None, description="IANA timezone for day boundaries"),
    user_id: str = Depends(current_user_id),
    db=Depends(get_db),
):
    zone = get_display_timezone(tz)
    tasks = get_documents(db, "task", {"user_id": user_id}, sort=[("created_at", 1)])
    return classify_tasks(tasks, tz=zone)


@app.post("/api/tasks", status_code=201)
def create_task(payload: CreateTask, user_id: str = Depends(current_user_id), db=Depends(get_db)):
    task = Task(user_id=user_id, **payload.model_dump())
    doc = _datetimes_to_storage(task.model_dump(), "due_date")
    task_id = create_document(db, "task", doc)
    return {"task": get_owned(db, "task", task_id, user_id, "Task")}


@app.get("/api/tasks/{task_id}")
def get_task(task_id: str, user_id: str = Depends(current_user_id), db=Depends(get_db)):
    return {"task": get_owned(db, "task", task_id, user_id, "Task")}


@app.put("/api/tasks/{task_id}")
def update_task(task_id: str, payload: UpdateTask, user_id: str = Depends(current_user_id), db=Depends(get_db)):
    update = payload.model_dump(exclude_unset=True)
    for required in ("title", "status", "priority"):
        if required in update and update[required] is None:
            raise ValidationError(f"{required} cannot be null")
    update = _datetimes_to_storage(update, "due_date")
    return {"task": update_owned(db, "task", task_id, user_id, update, "Task")}


@app.delete("/api/tasks/{task_id}")
def delete_task(task_id: str, user_id: str = Depends(current_user_id), db=Depends(get_db)):
    return {"deleted": delete_owned(db, "task", task_id, user_id, "Task")}


# ---------- Journal ----------
@app.get("/api/journal")
def list_entries(
    mood: Optional[str] = None,
    tag: Optional[str] = None,
    user_id: str = Depends(current_user_id),
    db=Depends(get_db),
):
    filt: Dict[str, Any] = {"user_id": user_id}
    if mood:
        filt["mood"] = mood
    if tag:
        filt["tags"] = tag
    return {"entries": get_documents(db, "journal", filt, sort=[("entry_date", -1), ("_id", -1)])}


@app.post("/api/journal", status_code=201)
def create_entry(payload: CreateEntry, user_id: str = Depends(current_user_id), db=Depends(get_db)):
    data = payload.model_dump()
    data["entry_date"] = data["entry_date"] or utcnow()
    entry = JournalEntry(user_id=user_id, **data)
    doc = _datetimes_to_storage(entry.model_dump(), "entry_date")
    entry_id = create_document(db, "journal", doc)
    return {"entry": get_owned(db, "journal", entry_id, user_id, "Journal entry")}


@app.get("/api/journal/{entry_id}")
def get_entry(entry_id: str, user_id: str = Depends(current_user_id), db=Depends(get_db)):
    return {"entry": get_owned(db, "journal", entry_id, user_id, "Journal entry")}


@app.put("/api/journal/{entry_id}")
def update_entry(entry_id: str, payload: UpdateEntry, user_id: str = Depends(current_user_id), db=Depends(get_db)):
    update = payload.model_dump(exclude_unset=True)
    for required in ("content", "mood", "entry_date"):
        if required in update and update[required] is None:
            raise ValidationError(f"{required} cannot be null")
    if "title" in update and not update["title"]:
        update["title"] = "Untitled Entry"
    if "tags" in update and update["tags"] is None:
        update["tags"] = []
    update = _datetimes_to_storage(update, "entry_date")
    return {"entry": update_owned(db, "journal", entry_id, user_id, update, "Journal entry")}


@app.delete("/api/journal/{entry_id}")
def delete_entry(entry_id: str, user_id: str = Depends(current_user_id), db=Depends(get_db)):
    return {"deleted": delete_owned(db, "journal", entry_id, user_id, "Journal entry")}


# ---------- Calendar ----------
READ_ONLY_CALENDAR = (
    "Calendar events are derived from tasks and journal entries. "
    "Use /api/tasks or /api/journal to change them."
)


@app.get("/api/calendar/events", response_model=List[CalendarEvent])
def calendar_events(
    start: Optional[str] = Query(None, description="ISO-8601 instant or date"),
    end: Optional[str] = Query(None, description="ISO-8601 instant or date"),
    user_id: str = Depends(current_user_id),
    db=Depends(get_db),
):
    start_at, end_at = parse_window(start, end)
    return get_events(db, user_id, start_at, end_at)


@app.post("/api/calendar/events")
@app.put("/api/calendar/events/{event_id}")
@app.delete("/api/calendar/events/{event_id}")
def calendar_write(user_id: str = Depends(current_user_id)):
    raise ValidationError(READ_ONLY_CALENDAR)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=config.PORT)
