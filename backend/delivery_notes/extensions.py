# Overview: Flask extension instances for the local relational store.

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()
