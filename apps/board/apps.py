# apps/board/apps.py

import logging

from django.apps import AppConfig

logger = logging.getLogger(__name__)


class BoardConfig(AppConfig):
    """Board app: position engine, JSON API and realtime rooms"""

    default_auto_field = 'django.db.models.BigAutoField'
    name = 'apps.board'
    verbose_name = 'Board'

    def ready(self):
        """
        Creates the process-wide presence store and its sweeper

        Both are handed to the WebSocket consumer in routing.py and to
        the ASGI lifespan handler in config/asgi.py.
        """
        from .presence import build_presence_store
        from .sweeper import PresenceSweeper

        self.presence = build_presence_store()
        self.sweeper = PresenceSweeper(self.presence)

        logger.info(f"🔌 Board app ready - presence store: {type(self.presence).__name__}")
