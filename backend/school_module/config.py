import os
from dataclasses import dataclass


def _split_origins(value: str) -> tuple[str, ...]:
    return tuple(origin.strip() for origin in value.split(",") if origin.strip())


@dataclass(frozen=True)
class Settings:
    jwt_secret: str = os.getenv("SCHOOL_JWT_SECRET", os.getenv("JWT_SECRET", "change-me-in-production"))
    jwt_algorithm: str = os.getenv("SCHOOL_JWT_ALGORITHM", "HS256")
    jwt_exp_minutes: int = int(os.getenv("SCHOOL_JWT_EXP_MINUTES", "1440"))
    database_url: str = os.getenv("SCHOOL_DATABASE_URL", "")
    admin_email: str = os.getenv("SCHOOL_ADMIN_EMAIL", "admin@school.local")
    admin_password: str = os.getenv("SCHOOL_ADMIN_PASSWORD", "ChangeMe@123")
    cors_origins: tuple[str, ...] = _split_origins(
        os.getenv("CORS_ORIGINS", "http://localhost:3000,http://127.0.0.1:3000,http://localhost:5173")
    )


settings = Settings()
