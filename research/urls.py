"""URL declarations for the research application.

Page routes come first, followed by the JSON API under ``api/``.
"""

from django.urls import path

from . import views
from . import views_api as api

urlpatterns = [
    # Accounts
    path('accounts/login/', views.login_view, name='login'),
    path('accounts/logout/', views.logout_view, name='logout'),
    path('register/', views.register, name='register'),
    # Home
    path('', views.home, name='home'),
    # Personas
    path('personas/', views.persona_list, name='persona_list'),
    path('personas/add/', views.persona_add, name='persona_add'),
    path('personas/export-workbook/', views.persona_export_workbook, name='persona_export_workbook'),
    path('personas/import-workbook/', views.persona_import_workbook, name='persona_import_workbook'),
    path('personas/<int:pk>/edit/', views.persona_edit, name='persona_edit'),
    path('personas/<int:pk>/delete/', views.persona_delete, name='persona_delete'),
    # Experiments
    path('experiments/', views.experiment_list, name='experiment_list'),
    path('experiments/new/', views.experiment_wizard, {'step': 1}, name='experiment_add'),
    path('experiments/new/cancel/', views.experiment_wizard_cancel, name='experiment_wizard_cancel'),
    path('experiments/new/<int:step>/', views.experiment_wizard, name='experiment_wizard'),
    path('experiments/<int:pk>/edit/', views.experiment_edit, name='experiment_edit'),
    path('experiments/<int:pk>/status/', views.experiment_status, name='experiment_status'),
    path('experiments/<int:pk>/delete/', views.experiment_delete, name='experiment_delete'),
    # Results
    path('results/', views.results, name='results'),
    path('results/<int:pk>/export/', views.results_export, name='results_export'),
    path('responses/<int:pk>/sentiment/', views.response_sentiment_update, name='response_sentiment_update'),
    path('responses/<int:pk>/delete/', views.response_delete, name='response_delete'),

    # JSON API
    path('api/personas/', api.persona_collection, name='api_persona_collection'),
    path('api/personas/<int:persona_id>/', api.persona_detail, name='api_persona_detail'),
    path('api/personas/<int:persona_id>/responses/', api.persona_responses, name='api_persona_responses'),
    path('api/experiments/', api.experiment_collection, name='api_experiment_collection'),
    path('api/experiments/<int:experiment_id>/', api.experiment_detail, name='api_experiment_detail'),
    path('api/experiments/<int:experiment_id>/status/', api.experiment_status, name='api_experiment_status'),
    path('api/experiments/<int:experiment_id>/responses/', api.experiment_responses, name='api_experiment_responses'),
    path('api/experiments/<int:experiment_id>/summary/', api.experiment_summary, name='api_experiment_summary'),
    path('api/responses/', api.response_collection, name='api_response_collection'),
    path('api/responses/<int:response_id>/', api.response_detail, name='api_response_detail'),
    path('api/responses/<int:response_id>/sentiment/', api.response_sentiment, name='api_response_sentiment'),
]
