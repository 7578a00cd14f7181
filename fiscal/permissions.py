# fiscal/permissions.py
from rest_framework.exceptions import PermissionDenied
from rest_framework.permissions import BasePermission


class HasFiscalTenant(BasePermission):
    """
    Usuário autenticado e vinculado a um tenant (SUPERADMIN pode não ter).
    Sem tenant responde 403 com code AUTH_1006.
    """

    message = "Usuário sem tenant fiscal vinculado."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            # deixa o IsAuthenticated fazer seu papel (401/403)
            return False

        if getattr(user, "tenant_id", None) is None and not getattr(user, "is_superadmin", False):
            raise PermissionDenied({"code": "AUTH_1006", "message": self.message})

        return True


class IsOwnerOrSuperAdmin(BasePermission):
    """
    Operações de lote e re-tentativa: OWNER ou SUPERADMIN.
    """

    message = "Operação restrita a OWNER ou SUPERADMIN."

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False

        if not getattr(user, "is_owner_or_superadmin", False):
            raise PermissionDenied({"code": "AUTH_1008", "message": self.message})

        return True
