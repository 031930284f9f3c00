from .engine import SessionLocal, engine
from .models import Base

__all__ = ["Base", "SessionLocal", "engine"]
