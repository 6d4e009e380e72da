"""Form contracts for every create/edit form in Creative Hub.

Each form is a pydantic model whose validators carry the exact message the
user sees next to the offending field. ``validate_form`` runs a model and
converts pydantic's error list into ``errors.ValidationError`` with one
message per field. The domain store runs the same models again before it
commits anything.
"""
from __future__ import annotations

import math
from datetime import date
from typing import Any, Optional, TypeVar

import pydantic
from pydantic import AliasChoices, BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator

from errors import ValidationError
from models import PORTFOLIO_CATEGORIES

FormT = TypeVar("FormT", bound=BaseModel)


def validate_form(form_cls: type[FormT], data: Any) -> FormT:
    """Validate ``data`` against ``form_cls`` or raise ``ValidationError``."""
    if isinstance(data, form_cls):
        return data
    if isinstance(data, BaseModel):
        data = data.model_dump()
    try:
        return form_cls.model_validate(data)
    except pydantic.ValidationError as exc:
        raise ValidationError(_field_errors(exc)) from exc


def _field_errors(exc: pydantic.ValidationError) -> dict[str, str]:
    errors: dict[str, str] = {}
    for err in exc.errors():
        field = str(err["loc"][0]) if err["loc"] else "form"
        # validators raise ValueError(message); pydantic keeps the exception in ctx
        error = err.get("ctx", {}).get("error")
        message = str(error) if err["type"] == "value_error" and error is not None else err["msg"]
        # first violation per field is the one shown inline
        errors.setdefault(field, message)
    return errors


def _min_length(value: Optional[str], length: int, message: str) -> str:
    value = (value or "").strip()
    if len(value) < length:
        raise ValueError(message)
    return value


def clean_skills(skills: list[str]) -> list[str]:
    """Trim entries, drop blanks and reject exact duplicates."""
    cleaned = [s.strip() for s in skills if s and s.strip()]
    if len(set(cleaned)) != len(cleaned):
        raise ValueError("Skills must not contain duplicates")
    return cleaned


# --- Auth forms ---
class SignupForm(BaseModel):
    name: str
    email: EmailStr
    password: str
    confirm_password: str

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _min_length(v, 1, "Name is required")

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        if len(v) < 6:
            raise ValueError("Password should be at least 6 characters")
        return v

    @field_validator("confirm_password")
    @classmethod
    def _passwords_match(cls, v: str, info: pydantic.ValidationInfo) -> str:
        if "password" in info.data and v != info.data["password"]:
            raise ValueError("Passwords do not match")
        return v


class LoginForm(BaseModel):
    email: EmailStr
    password: str

    @field_validator("password")
    @classmethod
    def _password(cls, v: str) -> str:
        if not v:
            raise ValueError("Password is required")
        return v


# --- Portfolio forms ---
class PortfolioForm(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str
    description: str
    category: str
    cover_image: str
    images: list[str] = Field(default_factory=list)
    is_public: bool = True
    featured: bool = False

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        return _min_length(v, 3, "Title must be at least 3 characters long")

    @field_validator("description")
    @classmethod
    def _description(cls, v: str) -> str:
        return _min_length(v, 10, "Description must be at least 10 characters long")

    @field_validator("category")
    @classmethod
    def _category(cls, v: str) -> str:
        v = _min_length(v, 1, "Please select a category")
        if v not in PORTFOLIO_CATEGORIES:
            raise ValueError(f"Category must be one of: {', '.join(PORTFOLIO_CATEGORIES)}")
        return v

    @field_validator("cover_image")
    @classmethod
    def _cover_image(cls, v: str) -> str:
        if not v or not v.strip():
            raise ValueError("Please provide a cover image")
        return v

    @field_validator("images")
    @classmethod
    def _images(cls, v: list[str]) -> list[str]:
        if any(not ref or not ref.strip() for ref in v):
            raise ValueError("Image references must not be empty")
        return v


class PortfolioRecord(PortfolioForm):
    """A full portfolio body, as checked after an edit is merged."""

    likes: int = 0
    views: int = 0

    @field_validator("likes", "views")
    @classmethod
    def _non_negative(cls, v: int, info: pydantic.ValidationInfo) -> int:
        if v < 0:
            raise ValueError(f"{info.field_name.capitalize()} cannot be negative")
        return v


class PortfolioPatch(BaseModel):
    # id, user_id and the likes/views counters are dropped here; likes only move through set_like
    model_config = ConfigDict(extra="ignore")

    title: Optional[str] = None
    description: Optional[str] = None
    category: Optional[str] = None
    cover_image: Optional[str] = None
    images: Optional[list[str]] = None
    is_public: Optional[bool] = None
    featured: Optional[bool] = None


# --- Job form ---
class DeadlineForm(BaseModel):
    start: date = Field(validation_alias=AliasChoices("start", "from"))
    end: date = Field(validation_alias=AliasChoices("end", "to"))

    @model_validator(mode="after")
    def _ordered(self) -> "DeadlineForm":
        if self.end < self.start:
            raise ValueError("Deadline end must not be before its start")
        return self


class JobForm(BaseModel):
    model_config = ConfigDict(extra="ignore")

    title: str
    description: str
    category: str
    skills: list[str] = Field(default_factory=list)
    budget: float
    location: str
    notes: Optional[str] = None
    deadline: Optional[DeadlineForm] = None

    @field_validator("title")
    @classmethod
    def _title(cls, v: str) -> str:
        return _min_length(v, 5, "Title must be at least 5 characters long")

    @field_validator("description")
    @classmethod
    def _description(cls, v: str) -> str:
        return _min_length(v, 20, "Description must be at least 20 characters long")

    @field_validator("category")
    @classmethod
    def _category(cls, v: str) -> str:
        return _min_length(v, 1, "Please select a category")

    @field_validator("skills")
    @classmethod
    def _skills(cls, v: list[str]) -> list[str]:
        cleaned = clean_skills(v)
        if not cleaned:
            raise ValueError("Please add at least one skill")
        return cleaned

    @field_validator("budget", mode="before")
    @classmethod
    def _coerce_budget(cls, v: Any) -> float:
        if isinstance(v, bool):
            raise ValueError("Budget must be a number")
        try:
            number = float(v)
        except (TypeError, ValueError):
            raise ValueError("Budget must be a number")
        if not math.isfinite(number) or number <= 0:
            raise ValueError("Budget must be greater than 0")
        return number

    @field_validator("location")
    @classmethod
    def _location(cls, v: str) -> str:
        return _min_length(v, 3, "Location is required")

    @field_validator("notes")
    @classmethod
    def _notes(cls, v: Optional[str]) -> Optional[str]:
        if v is None:
            return None
        return v.strip() or None


# --- Profile forms ---
class ProfileForm(BaseModel):
    model_config = ConfigDict(extra="ignore")

    name: str
    title: str = "Creative Professional"
    phone: str = ""
    location: str = ""
    bio: str = ""
    skills: list[str] = Field(default_factory=list)
    avatar: Optional[str] = None

    @field_validator("name")
    @classmethod
    def _name(cls, v: str) -> str:
        return _min_length(v, 1, "Name is required")

    @field_validator("skills")
    @classmethod
    def _skills(cls, v: list[str]) -> list[str]:
        return clean_skills(v)


class SkillForm(BaseModel):
    skill: str


class CoverImageRequest(BaseModel):
    description: str

    @field_validator("description")
    @classmethod
    def _description(cls, v: str) -> str:
        return _min_length(
            v, 20, "Please provide a longer description (at least 20 characters) for better suggestions."
        )
