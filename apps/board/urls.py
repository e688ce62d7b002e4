# apps/board/urls.py

from django.urls import path
from . import views

app_name = 'board'

urlpatterns = [
    # === BOARD ===
    path('projects/<int:project_id>/board', views.board_data, name='board_data'),

    # === LISTS ===
    path('projects/<int:project_id>/lists', views.project_lists, name='project_lists'),
    path('projects/<int:project_id>/lists/reorder', views.reorder_lists, name='reorder_lists'),
    path('lists/<int:list_id>', views.list_detail, name='list_detail'),

    # === CARDS ===
    path('lists/<int:list_id>/cards', views.list_cards, name='list_cards'),
    path('cards/<int:card_id>', views.card_detail, name='card_detail'),
    path('cards/<int:card_id>/move', views.move_card, name='move_card'),

    # === CHECKLISTS ===
    path('cards/<int:card_id>/checklists', views.card_checklists, name='card_checklists'),
    path('checklists/<int:checklist_id>', views.checklist_detail, name='checklist_detail'),
    path('checklists/<int:checklist_id>/items', views.checklist_items, name='checklist_items'),
    path('checklists/<int:checklist_id>/items/reorder', views.reorder_checklist_items,
         name='reorder_checklist_items'),
    path('checklist-items/<int:item_id>', views.checklist_item_detail, name='checklist_item_detail'),
]
