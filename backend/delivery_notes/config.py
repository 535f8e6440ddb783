# backend/delivery_notes/config.py
from __future__ import annotations
import os


class Config:
    # SQLite file stored in backend/instance/delivery_notes.sqlite3
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL", #optional alternative location
        "sqlite:///delivery_notes.sqlite3", #default local location
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Query cache windows (seconds)
    QUERY_STALE_TIME_SECONDS = float(os.environ.get("QUERY_STALE_TIME_SECONDS", 60 * 5))
    QUERY_GC_TIME_SECONDS = float(os.environ.get("QUERY_GC_TIME_SECONDS", 60 * 30))

    EXPORT_DIR = os.environ.get("EXPORT_DIR", "exports")
    APP_DISPLAY_NAME = os.environ.get("APP_DISPLAY_NAME", "Delivery Note Manager")

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
