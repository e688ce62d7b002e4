# apps/__init__.py

"""
Lanes Board - Django applications

- core: models, permissions, errors and shared API helpers
- board: position engine, JSON API and realtime rooms
"""

__version__ = '0.1.0'
