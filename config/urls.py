# config/urls.py

from django.conf import settings
from django.contrib import admin
from django.urls import include, path

urlpatterns = [
    # Admin
    path('admin/', admin.site.urls),

    # JSON API
    path('api/', include('apps.board.urls')),
    path('api/', include('apps.core.urls')),
]

if settings.DEBUG:
    # Debug Toolbar if available
    try:
        import debug_toolbar

        urlpatterns = [
            path('__debug__/', include(debug_toolbar.urls)),
        ] + urlpatterns
    except ImportError:
        pass

admin.site.site_header = 'Lanes Board Admin'
admin.site.site_title = 'Lanes Board'
admin.site.index_title = 'Administration'
