import logging

from django.contrib.auth import authenticate
from rest_framework import status
from rest_framework.decorators import api_view, permission_classes
from rest_framework.permissions import AllowAny
from rest_framework.response import Response
from rest_framework_simplejwt.tokens import RefreshToken

from users.serializers import LoginSerializer

logger = logging.getLogger("cpe.auth")


@api_view(["POST"])
@permission_classes([AllowAny])
def login(request):
    ser = LoginSerializer(data=request.data)
    ser.is_valid(raise_exception=True)
    data = ser.validated_data

    user = authenticate(username=data["username"], password=data["password"])
    if not user:
        logger.warning(
            "login_failed",
            extra={"event": "auth_login", "username": data["username"], "outcome": "invalid_credentials"},
        )
        return Response(
            {"code": "AUTH_1001", "message": "Credenciais inválidas"},
            status=status.HTTP_401_UNAUTHORIZED,
        )

    if user.tenant_id is not None and not user.tenant.active:
        return Response(
            {"code": "AUTH_1002", "message": "Tenant inativo"},
            status=status.HTTP_403_FORBIDDEN,
        )

    refresh = RefreshToken.for_user(user)
    refresh["tenant_id"] = str(user.tenant_id) if user.tenant_id else None
    refresh["role"] = user.role

    logger.info(
        "login_success",
        extra={
            "event": "auth_login",
            "user_id": user.id,
            "tenant_id": str(user.tenant_id) if user.tenant_id else None,
            "outcome": "success",
        },
    )
    return Response(
        {
            "access": str(refresh.access_token),
            "refresh": str(refresh),
            "user": {"id": user.id, "username": user.username, "role": user.role},
        },
        status=status.HTTP_200_OK,
    )
