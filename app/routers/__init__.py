"""
API routers package
"""

from app.routers.corrections import router as corrections_router
from app.routers.learning import router as learning_router
