from sqlalchemy import Engine
from sqlmodel import create_engine

from .config import Settings


def make_engine(settings: Settings) -> Engine:
    connect_args = {}
    if settings.database_url.startswith("sqlite"):
        # the API serves requests from a thread pool
        connect_args["check_same_thread"] = False
    return create_engine(settings.database_url, connect_args=connect_args, echo=settings.sql_echo)
