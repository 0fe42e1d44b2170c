"""
Relational persistence: declarative base, ORM models and engine setup.
"""

from learnai.database.base import Base, ModelBase, metadata

__all__ = ['Base', 'ModelBase', 'metadata']
