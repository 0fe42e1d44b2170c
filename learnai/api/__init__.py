"""
HTTP layer of the progress engine.
"""

from learnai.api.routes import learning_router, progress_router, recommendations_router

__all__ = ['learning_router', 'progress_router', 'recommendations_router']
