from .database import Base, init_db, make_engine

__all__ = ["Base", "init_db", "make_engine"]
