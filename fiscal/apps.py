from django.apps import AppConfig


class FiscalConfig(AppConfig):
    default_auto_field = "django.db.models.BigAutoField"
    name = "fiscal"
    verbose_name = "Emissão fiscal (CPE)"

    def ready(self):
        # Conecta os receivers de auditoria ao sinal fiscal_event
        from fiscal import receivers  # noqa: F401
