# apps/board/__init__.py

"""
Board - Kanban application of Lanes Board

- Position engine: dense ordering of lists, cards, checklists and items
- JSON API for the drag-and-drop client
- WebSocket rooms with presence and change relay
"""
