# apps/core/__init__.py

"""
Core - base application of Lanes Board

- Models: users, projects, lists, cards, checklists, activity
- Access rules (BoardPermissions)
- Error types and the JSON API helpers
"""
