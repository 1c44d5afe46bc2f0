"""JSON API blueprint; route modules register themselves on ``api_bp``."""

from flask import Blueprint

api_bp = Blueprint("api", __name__)
