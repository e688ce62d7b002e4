# apps/board/routing.py

from django.apps import apps
from django.urls import re_path

from . import consumers

board_app = apps.get_app_config('board')

# WebSocket routes; one socket joins any number of project rooms
websocket_urlpatterns = [
    re_path(
        r'ws/collab/$',
        consumers.CollaborationConsumer.as_asgi(presence=board_app.presence, sweeper=board_app.sweeper),
    ),
]
