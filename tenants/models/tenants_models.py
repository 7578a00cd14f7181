import uuid

from django.db import models


class Tenant(models.Model):
    """
    Contribuinte emissor (empresa) isolado dos demais.

    Todos os dados fiscais (perfil, documentos, jobs, auditoria) referenciam
    o tenant explicitamente.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    code = models.CharField(max_length=32, unique=True)
    name = models.CharField(max_length=150)
    active = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "tenant"

    def __str__(self):
        return f"{self.code} - {self.name}"
