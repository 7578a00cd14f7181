from django.urls import path

from users.views.user_views import login

urlpatterns = [
    path("login/", login, name="auth_login"),
]
