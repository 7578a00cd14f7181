from django.contrib.auth.models import AbstractUser
from django.db import models


class UserRole(models.TextChoices):
    OPERATOR = "OPERATOR", "Operador"
    OWNER = "OWNER", "Proprietário"
    SUPERADMIN = "SUPERADMIN", "Super administrador"


class User(AbstractUser):
    # username/email padrões do Django
    tenant = models.ForeignKey(
        "tenants.Tenant",
        on_delete=models.PROTECT,
        null=True,
        blank=True,
        related_name="users",
    )
    role = models.CharField(
        max_length=16,
        choices=UserRole.choices,
        default=UserRole.OPERATOR,
    )

    class Meta:
        db_table = "user"

    @property
    def is_superadmin(self) -> bool:
        return self.role == UserRole.SUPERADMIN

    @property
    def is_owner_or_superadmin(self) -> bool:
        return self.role in (UserRole.OWNER, UserRole.SUPERADMIN)
