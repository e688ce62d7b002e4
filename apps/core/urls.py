# apps/core/urls.py

from django.urls import path
from . import views

app_name = 'core'

urlpatterns = [
    # === MONITORING ===
    path('health/', views.health_check, name='health'),
]
