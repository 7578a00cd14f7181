# fiscal/urls.py
from django.urls import path

from fiscal.views.batch_views import run_summary_view, void_documents_view
from fiscal.views.document_views import (
    document_detail_view,
    download_document_view,
    issue_document_view,
    list_documents_view,
    retry_document_view,
    sign_document_view,
)
from fiscal.views.settings_views import environment_view, initialize_profile_view

app_name = "fiscal"

urlpatterns = [
    # Documentos
    path("documents/", list_documents_view, name="document-list"),
    path("documents/issue/", issue_document_view, name="document-issue"),
    path("documents/<uuid:pk>/", document_detail_view, name="document-detail"),
    path("documents/<uuid:pk>/sign/", sign_document_view, name="document-sign"),
    path("documents/<uuid:pk>/retry/", retry_document_view, name="document-retry"),
    path("documents/<uuid:pk>/download/", download_document_view, name="document-download"),

    # Lotes
    path("summary/run/", run_summary_view, name="summary-run"),
    path("void/", void_documents_view, name="void"),

    # Configuração
    path("settings/environment/", environment_view, name="settings-environment"),
    path("settings/initialize/", initialize_profile_view, name="settings-initialize"),
]
