from sqlalchemy.orm import Session

from .academic_routes import router as academic_router
from .database import Base, engine
from .record_routes import router as record_router
from .routes import router
from .schedule_routes import router as schedule_router
from .services import seed_default_admin

routers = (router, academic_router, schedule_router, record_router)


def init_school_module() -> None:
    Base.metadata.create_all(bind=engine)
    db = Session(bind=engine)
    try:
        seed_default_admin(db)
    finally:
        db.close()


__all__ = ["routers", "init_school_module"]
