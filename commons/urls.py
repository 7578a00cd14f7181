from django.urls import path

from .views.commons_views import health

urlpatterns = [
    path("health/", health, name="health"),
]
