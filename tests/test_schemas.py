import pytest

import schemas
from errors import ValidationError


def _errors(form_cls, data) -> dict:
    with pytest.raises(ValidationError) as exc_info:
        schemas.validate_form(form_cls, data)
    return exc_info.value.errors


# --- Signup / login ---
def test_signup_form_accepts_valid_input():
    form = schemas.validate_form(
        schemas.SignupForm,
        {"name": " Thiri ", "email": "thiri@example.com", "password": "secret1", "confirm_password": "secret1"},
    )
    assert form.name == "Thiri"
    assert form.email == "thiri@example.com"


def test_signup_form_messages():
    errors = _errors(
        schemas.SignupForm,
        {"name": "  ", "email": "not-an-email", "password": "abc", "confirm_password": "abd"},
    )
    assert errors["name"] == "Name is required"
    assert "email" in errors
    assert errors["password"] == "Password should be at least 6 characters"


def test_signup_form_password_mismatch():
    errors = _errors(
        schemas.SignupForm,
        {"name": "Thiri", "email": "thiri@example.com", "password": "secret1", "confirm_password": "secret2"},
    )
    assert errors == {"confirm_password": "Passwords do not match"}


def test_login_form_requires_password():
    errors = _errors(schemas.LoginForm, {"email": "a@example.com", "password": ""})
    assert errors == {"password": "Password is required"}


# --- Portfolio ---
def test_portfolio_form_strips_and_ignores_unknown_fields():
    form = schemas.validate_form(
        schemas.PortfolioForm,
        {
            "title": "  Poster Series ",
            "description": "Screen printed gig posters",
            "category": "Illustration",
            "cover_image": "img://cover",
            "likes": 1000,
        },
    )
    assert form.title == "Poster Series"
    assert form.images == []
    assert not hasattr(form, "likes")


def test_portfolio_form_reports_every_invalid_field():
    errors = _errors(schemas.PortfolioForm, {"title": "", "description": "", "category": "", "cover_image": ""})
    assert errors == {
        "title": "Title must be at least 3 characters long",
        "description": "Description must be at least 10 characters long",
        "category": "Please select a category",
        "cover_image": "Please provide a cover image",
    }


def test_portfolio_form_rejects_blank_image_reference():
    errors = _errors(
        schemas.PortfolioForm,
        {
            "title": "Poster Series",
            "description": "Screen printed gig posters",
            "category": "Illustration",
            "cover_image": "img://cover",
            "images": ["img://1", " "],
        },
    )
    assert errors == {"images": "Image references must not be empty"}


def test_portfolio_record_rejects_negative_counters():
    errors = _errors(
        schemas.PortfolioRecord,
        {
            "title": "Poster Series",
            "description": "Screen printed gig posters",
            "category": "Illustration",
            "cover_image": "img://cover",
            "views": -3,
        },
    )
    assert errors == {"views": "Views cannot be negative"}


def test_portfolio_patch_drops_identity_fields():
    patch = schemas.validate_form(schemas.PortfolioPatch, {"id": 5, "user_id": 9, "title": "New"})
    assert patch.model_dump(exclude_unset=True) == {"title": "New"}


# --- Job ---
JOB = {
    "title": "Menu illustration",
    "description": "Hand drawn illustrations for a seasonal menu.",
    "category": "Illustration",
    "skills": [" Procreate ", ""],
    "budget": "250.5",
    "location": "Remote",
    "notes": "   ",
}


def test_job_form_normalises_values():
    form = schemas.validate_form(schemas.JobForm, JOB)
    assert form.skills == ["Procreate"]
    assert form.budget == 250.5
    assert form.notes is None
    assert form.deadline is None


def test_job_form_accepts_any_non_empty_category():
    form = schemas.validate_form(schemas.JobForm, {**JOB, "category": "Tattoo Design"})
    assert form.category == "Tattoo Design"


@pytest.mark.parametrize(
    "budget, message",
    [
        ("abc", "Budget must be a number"),
        (True, "Budget must be a number"),
        (0, "Budget must be greater than 0"),
        ("-5", "Budget must be greater than 0"),
        ("inf", "Budget must be greater than 0"),
    ],
)
def test_job_form_budget(budget, message):
    assert _errors(schemas.JobForm, {**JOB, "budget": budget}) == {"budget": message}


def test_job_form_messages():
    errors = _errors(
        schemas.JobForm,
        {**JOB, "title": "Logo", "description": "Short", "location": "NY", "skills": ["  "]},
    )
    assert errors == {
        "title": "Title must be at least 5 characters long",
        "description": "Description must be at least 20 characters long",
        "skills": "Please add at least one skill",
        "location": "Location is required",
    }


def test_job_form_rejects_duplicate_skills():
    errors = _errors(schemas.JobForm, {**JOB, "skills": ["Procreate", "Procreate "]})
    assert errors == {"skills": "Skills must not contain duplicates"}


def test_job_deadline_accepts_from_to_and_checks_order():
    form = schemas.validate_form(schemas.JobForm, {**JOB, "deadline": {"from": "2024-08-01", "to": "2024-08-10"}})
    assert form.deadline.start.day == 1
    assert form.deadline.end.day == 10

    errors = _errors(schemas.JobForm, {**JOB, "deadline": {"from": "2024-08-10", "to": "2024-08-01"}})
    assert errors == {"deadline": "Deadline end must not be before its start"}


# --- Profile / suggestions ---
def test_profile_form_defaults():
    form = schemas.validate_form(schemas.ProfileForm, {"name": "Mya"})
    assert form.title == "Creative Professional"
    assert form.skills == []
    assert form.avatar is None


def test_cover_image_request_requires_twenty_characters():
    errors = _errors(schemas.CoverImageRequest, {"description": "tiny"})
    assert errors["description"].startswith("Please provide a longer description")


def test_validation_error_response_lists_fields():
    with pytest.raises(ValidationError) as exc_info:
        schemas.validate_form(schemas.LoginForm, {"email": "a@example.com", "password": ""})
    body = exc_info.value.to_response()
    assert body["error"]["code"] == "VALIDATION_ERROR"
    assert body["error"]["fields"] == {"password": "Password is required"}
