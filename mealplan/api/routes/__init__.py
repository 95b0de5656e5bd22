"""
API Routes Package
"""
from . import (
    health,
    auth,
    plans,
    subscriptions,
)
