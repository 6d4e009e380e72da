from datetime import date
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


PORTFOLIO_CATEGORIES = (
    "Graphic Design",
    "UI/UX Design",
    "Branding",
    "Photography",
    "Illustration",
    "Web Design",
    "Packaging",
    "Motion Graphics",
    "Architecture",
    "Product Design",
)


class Entity(BaseModel):
    # Entities are never edited in place; the store swaps in model_copy() results
    model_config = ConfigDict(frozen=True)


class User(Entity):
    id: int
    name: str
    email: str
    password: Optional[str] = Field(default=None, exclude=True)  # local mock accounts only
    avatar: Optional[str] = None


class Profile(Entity):
    user_id: int
    name: str
    title: str = "Creative Professional"
    email: str
    phone: str = ""
    location: str = ""
    bio: str = ""
    skills: tuple[str, ...] = ()
    member_since: str = ""
    avatar: Optional[str] = None


class Portfolio(Entity):
    id: int
    user_id: int
    title: str
    description: str
    cover_image: str
    images: tuple[str, ...] = ()
    category: str
    is_public: bool = True
    featured: bool = False
    likes: int = 0
    views: int = 0


class DeadlineRange(Entity):
    start: date
    end: date


class Job(Entity):
    id: int
    client_id: int
    title: str
    description: str
    category: str
    skills: tuple[str, ...]
    budget: float
    location: str
    notes: Optional[str] = None
    deadline: Optional[DeadlineRange] = None


class SessionSnapshot(Entity):
    user: Optional[User] = None
    profile: Optional[Profile] = None


class ProfileStats(Entity):
    total_projects: int
    public_projects: int
    total_likes: int
    total_views: int


class PortfolioDetail(Entity):
    portfolio: Portfolio
    author: Optional[User] = None
    author_profile: Optional[Profile] = None


class JobDetail(Entity):
    job: Job
    client: Optional[User] = None
    client_profile: Optional[Profile] = None
