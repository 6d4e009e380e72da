"""Demo catalog loaded into every new client session when SEED_SAMPLE_DATA is on.

All objects are frozen, so every store can share them.
"""
from identity import LocalAccount, LocalAccountDirectory
from models import Portfolio, Profile, User


def _image(key: str) -> str:
    return f"https://picsum.photos/seed/{key}/800/600"


USERS = (
    User(id=1, name="Guest User", email="guest@example.com", avatar=_image("guest-avatar")),
    User(
        id=2,
        name="Aung Myat",
        email="aung.myat@gmail.com",
        password="password123",
        avatar=_image("aung-myat-avatar"),
    ),
)

PROFILES = (
    Profile(
        user_id=1,
        name="Guest User",
        title="Creative Professional",
        email="guest@example.com",
        bio=(
            "Welcome to Myanmar Creative Hub! Create an account to showcase your creative "
            "work and connect with other professionals."
        ),
        avatar=_image("guest-avatar"),
    ),
    Profile(
        user_id=2,
        name="Aung Myat",
        title="Senior UI/UX Designer",
        email="aung.myat@gmail.com",
        phone="+95 9 123 456 789",
        location="Yangon, Myanmar",
        bio=(
            "Passionate UI/UX designer with over 8 years of experience in creating intuitive and "
            "beautiful digital experiences. Specializing in mobile apps and complex web applications."
        ),
        skills=("UI Design", "UX Research", "Figma", "Prototyping", "Design Systems"),
        member_since="June 2021",
        avatar=_image("aung-myat-avatar"),
    ),
)

PORTFOLIOS = (
    Portfolio(
        id=1,
        user_id=2,
        title="Brand Identity for Tech Startup",
        description=(
            "Complete branding package including logo, color palette, and brand guidelines for a "
            "cutting-edge technology startup focused on AI solutions."
        ),
        cover_image=_image("brand-identity-cover"),
        images=tuple(_image(f"brand-identity-img{i}") for i in range(1, 5)),
        category="Branding",
        is_public=True,
        likes=24,
        views=156,
        featured=True,
    ),
    Portfolio(
        id=2,
        user_id=2,
        title="Mobile App UI Design",
        description=(
            "Comprehensive user interface design for a fitness tracking mobile application with "
            "focus on user experience and intuitive navigation."
        ),
        cover_image=_image("mobile-app-ui-cover"),
        images=tuple(_image(f"mobile-app-ui-img{i}") for i in range(1, 4)),
        category="UI/UX Design",
        is_public=False,
        likes=18,
        views=203,
        featured=False,
    ),
)


def seed_accounts(directory: LocalAccountDirectory) -> None:
    """Register the sample users that have passwords with the local identity directory."""
    for user in USERS:
        if user.password and directory.get(user.email) is None:
            directory.add(
                LocalAccount(
                    uid=f"sample-user-{user.id}",
                    email=user.email,
                    password=user.password,
                    display_name=user.name,
                    photo_url=user.avatar,
                )
            )
