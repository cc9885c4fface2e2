"""
Database Schemas for the Planner API

Each document model below represents a MongoDB collection. The collection
name is the lowercase of the class name (e.g., Task -> "task"), except
JournalEntry which lives in "journal".
"""

from datetime import datetime
from typing import Annotated, List, Literal, Optional, Union

from pydantic import BaseModel, Field, field_serializer, field_validator

from errors import RecurrenceParseError
from recurrence import VALIDATION_ANCHOR, parse_rule
from timeutils import js_iso

TaskStatus = Literal["To Do", "In Progress", "Completed"]
Mood = Literal["happy", "neutral", "sad", "excited"]

COMPLETED = "Completed"
PRIORITIES = ("low", "medium", "high", "urgent")


def _check_priority(value: Optional[str]) -> Optional[str]:
    # compared case-insensitively, stored as sent
    if value is not None and value.lower() not in PRIORITIES:
        raise ValueError(f"priority must be one of {', '.join(PRIORITIES)}")
    return value


def _check_rule(value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
        return value
    try:
        parse_rule(value, VALIDATION_ANCHOR)
    except RecurrenceParseError as e:
        raise ValueError(str(e))
    return value


def _clean_tags(value: Optional[List[str]]) -> Optional[List[str]]:
    if value is None:
        return None
    seen = []
    for tag in value:
        tag = tag.strip()
        if tag and tag not in seen:
            seen.append(tag)
    return seen


# ---------- Stored documents ----------
class User(BaseModel):
    email: str = Field(..., description="Unique login email (lower-cased)")
    name: str = Field(..., description="Display name")
    password_hash: str = Field(..., description="Salted PBKDF2 hash")


class Task(BaseModel):
    user_id: str = Field(..., description="Owner user id")
    title: str = Field(..., min_length=1, description="Task title")
    description: Optional[str] = Field(None, description="Optional details")
    due_date: Optional[datetime] = Field(None, description="Due instant (UTC)")
    status: TaskStatus = Field("To Do", description="Workflow status")
    priority: str = Field("Medium", description="low / medium / high / urgent")
    category: Optional[str] = Field(None, description="Free-text category")
    recurrence_rule: Optional[str] = Field(None, description="RRULE text, anchored at due_date")


class JournalEntry(BaseModel):
    user_id: str = Field(..., description="Owner user id")
    title: str = Field("Untitled Entry", description="Entry title")
    content: str = Field(..., min_length=1, description="Entry text")
    mood: Mood = Field("neutral", description="Mood label")
    tags: List[str] = Field(default_factory=list, description="Keywords")
    entry_date: datetime = Field(..., description="User-chosen entry date")


# ---------- Request payloads ----------
class RegisterUser(BaseModel):
    email: str = Field(..., min_length=3)
    password: str = Field(..., min_length=6)
    name: str = Field(..., min_length=1)


class LoginUser(BaseModel):
    email: str
    password: str


class CreateTask(BaseModel):
    title: str = Field(..., min_length=1)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: TaskStatus = "To Do"
    priority: str = "Medium"
    category: Optional[str] = None
    recurrence_rule: Optional[str] = None

    @field_validator("priority")
    @classmethod
    def _valid_priority(cls, v):
        return _check_priority(v)

    @field_validator("recurrence_rule")
    @classmethod
    def _valid_rule(cls, v):
        return _check_rule(v)


class UpdateTask(BaseModel):
    title: Optional[str] = Field(None, min_length=1)
    description: Optional[str] = None
    due_date: Optional[datetime] = None
    status: Optional[TaskStatus] = None
    priority: Optional[str] = None
    category: Optional[str] = None
    recurrence_rule: Optional[str] = None

    @field_validator("priority")
    @classmethod
    def _valid_priority(cls, v):
        return _check_priority(v)

    @field_validator("recurrence_rule")
    @classmethod
    def _valid_rule(cls, v):
        return _check_rule(v)


class CreateEntry(BaseModel):
    title: str = "Untitled Entry"
    content: str = Field(..., min_length=1)
    mood: Mood = "neutral"
    tags: List[str] = []
    entry_date: Optional[datetime] = None

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, v):
        return _clean_tags(v)


class UpdateEntry(BaseModel):
    title: Optional[str] = None
    content: Optional[str] = Field(None, min_length=1)
    mood: Optional[Mood] = None
    tags: Optional[List[str]] = None
    entry_date: Optional[datetime] = None

    @field_validator("tags")
    @classmethod
    def _dedupe_tags(cls, v):
        return _clean_tags(v)


# ---------- Calendar feed ----------
class _EventBase(BaseModel):
    id: str
    user_id: str
    title: str
    start: datetime
    end: datetime

    @field_serializer("start", "end")
    def _iso(self, value: datetime) -> str:
        return js_iso(value)


class TaskEvent(_EventBase):
    type: Literal["task"] = "task"
    task_id: str
    description: Optional[str] = None
    status: str
    priority: str
    category: Optional[str] = None
    completed: bool
    recurring: bool = False


class JournalEvent(_EventBase):
    type: Literal["journal"] = "journal"
    entry_id: str
    content: str
    mood: str
    tags: List[str] = []


CalendarEvent = Annotated[Union[TaskEvent, JournalEvent], Field(discriminator="type")]


# ---------- Task buckets ----------
class TaskBuckets(BaseModel):
    overdue: List[dict] = []
    due_today: List[dict] = []
    due_this_week: List[dict] = []
    due_later: List[dict] = []
    no_due_date: List[dict] = []
    completed_recently: List[dict] = []
