# config/asgi.py

import os

from django.core.asgi import get_asgi_application
from channels.routing import ProtocolTypeRouter, URLRouter
from channels.auth import AuthMiddlewareStack

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'config.settings.development')

# Set up Django before importing anything that touches models or apps
django_asgi_app = get_asgi_application()

from django.apps import apps  # noqa: E402

from apps.board.routing import websocket_urlpatterns  # noqa: E402
from apps.board.sweeper import LifespanApp  # noqa: E402

board_app = apps.get_app_config('board')

application = ProtocolTypeRouter({
    # Plain HTTP (JSON API, admin)
    "http": django_asgi_app,

    # WebSocket with session authentication
    "websocket": AuthMiddlewareStack(
        URLRouter(websocket_urlpatterns)
    ),

    # Server startup/shutdown: presence sweeper
    "lifespan": LifespanApp(board_app.presence, board_app.sweeper),
})
