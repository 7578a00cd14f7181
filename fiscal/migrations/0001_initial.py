import uuid
from decimal import Decimal

import django.db.models.deletion
import django.utils.timezone
from django.db import migrations, models


class Migration(migrations.Migration):

    initial = True

    dependencies = [
        ("tenants", "0001_initial"),
    ]

    operations = [
        migrations.CreateModel(
            name="TenantFiscalProfile",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "environment",
                    models.CharField(
                        choices=[("SANDBOX", "Sandbox (beta)"), ("PRODUCTION", "Produção")],
                        default="SANDBOX",
                        max_length=16,
                    ),
                ),
                ("enabled", models.BooleanField(default=False)),
                ("tax_id", models.CharField(blank=True, default="", max_length=11)),
                ("legal_name", models.CharField(blank=True, default="", max_length=255)),
                ("address", models.CharField(blank=True, default="", max_length=255)),
                ("sol_user", models.CharField(blank=True, default="", max_length=64)),
                ("sol_password", models.CharField(blank=True, default="", max_length=128)),
                ("default_invoice_series", models.CharField(default="F001", max_length=4)),
                ("default_receipt_series", models.CharField(default="B001", max_length=4)),
                ("default_credit_note_series", models.CharField(default="FC01", max_length=4)),
                ("default_debit_note_series", models.CharField(default="FD01", max_length=4)),
                ("default_summary_series", models.CharField(default="RC01", max_length=4)),
                ("default_void_series", models.CharField(default="RA01", max_length=4)),
                ("next_invoice_number", models.PositiveIntegerField(default=1)),
                ("next_receipt_number", models.PositiveIntegerField(default=1)),
                ("next_credit_note_number", models.PositiveIntegerField(default=1)),
                ("next_debit_note_number", models.PositiveIntegerField(default=1)),
                ("next_summary_number", models.PositiveIntegerField(default=1)),
                ("next_void_number", models.PositiveIntegerField(default=1)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "tenant",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="fiscal_profile",
                        to="tenants.tenant",
                    ),
                ),
            ],
            options={
                "db_table": "tenant_fiscal_profile",
            },
        ),
        migrations.CreateModel(
            name="TenantCertificate",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("pfx", models.BinaryField()),
                ("password", models.CharField(blank=True, default="", max_length=128)),
                ("serial_number", models.CharField(blank=True, default="", max_length=128)),
                ("issuer", models.CharField(blank=True, default="", max_length=255)),
                ("expires_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(auto_now_add=True)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "tenant",
                    models.OneToOneField(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="fiscal_certificate",
                        to="tenants.tenant",
                    ),
                ),
            ],
            options={
                "db_table": "tenant_certificate",
            },
        ),
        migrations.CreateModel(
            name="FiscalDocument",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("sale_id", models.CharField(blank=True, max_length=64, null=True)),
                (
                    "doc_type",
                    models.CharField(
                        choices=[
                            ("INVOICE", "Factura"),
                            ("RECEIPT", "Boleta"),
                            ("CREDIT_NOTE", "Nota de crédito"),
                            ("DEBIT_NOTE", "Nota de débito"),
                            ("SUMMARY", "Resumen diario"),
                            ("VOID_COMMUNICATION", "Comunicación de baja"),
                        ],
                        max_length=24,
                    ),
                ),
                ("series", models.CharField(max_length=4)),
                ("number", models.PositiveIntegerField()),
                ("full_number", models.CharField(max_length=13)),
                ("issue_date", models.DateTimeField(default=django.utils.timezone.now)),
                ("currency", models.CharField(default="PEN", max_length=3)),
                (
                    "customer_doc_type",
                    models.CharField(
                        choices=[
                            ("DNI", "DNI"),
                            ("RUC", "RUC"),
                            ("CE", "Carnê de estrangeiro"),
                            ("PASAPORTE", "Passaporte"),
                            ("CDI", "Cédula diplomática"),
                            ("SIN_RUC", "Não domiciliado"),
                            ("OTROS", "Outros"),
                        ],
                        default="OTROS",
                        max_length=16,
                    ),
                ),
                ("customer_doc_number", models.CharField(blank=True, default="", max_length=20)),
                ("customer_name", models.CharField(max_length=255)),
                ("customer_address", models.CharField(blank=True, max_length=255, null=True)),
                ("taxable", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("tax", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                ("total", models.DecimalField(decimal_places=2, default=Decimal("0.00"), max_digits=12)),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("DRAFT", "Rascunho"),
                            ("SIGNED", "Assinado"),
                            ("QUEUED", "Na fila"),
                            ("SENT", "Enviado"),
                            ("ACCEPTED", "Aceito"),
                            ("REJECTED", "Rejeitado"),
                            ("ERROR", "Erro"),
                            ("CANCELED", "Anulado"),
                        ],
                        default="DRAFT",
                        max_length=16,
                    ),
                ),
                ("signed_payload", models.TextField(blank=True, null=True)),
                ("content_hash", models.CharField(blank=True, max_length=128, null=True)),
                ("submission_id", models.CharField(blank=True, max_length=128, null=True)),
                ("authority_code", models.CharField(blank=True, max_length=16, null=True)),
                ("authority_message", models.TextField(blank=True, null=True)),
                ("authority_responded_at", models.DateTimeField(blank=True, null=True)),
                ("void_reason", models.CharField(blank=True, max_length=255, null=True)),
                ("reported_in_summary", models.BooleanField(default=False)),
                ("reference_date", models.DateField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="fiscal_documents",
                        to="tenants.tenant",
                    ),
                ),
                (
                    "void_communication",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="voided_documents",
                        to="fiscal.fiscaldocument",
                    ),
                ),
                (
                    "reference_document",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="amendments",
                        to="fiscal.fiscaldocument",
                    ),
                ),
            ],
            options={
                "db_table": "fiscal_document",
            },
        ),
        migrations.AddConstraint(
            model_name="fiscaldocument",
            constraint=models.UniqueConstraint(
                fields=("tenant", "doc_type", "series", "number"),
                name="uniq_fiscal_document_number",
            ),
        ),
        migrations.AddIndex(
            model_name="fiscaldocument",
            index=models.Index(fields=["tenant", "status"], name="idx_fiscal_doc_tenant_status"),
        ),
        migrations.AddIndex(
            model_name="fiscaldocument",
            index=models.Index(fields=["tenant", "doc_type", "issue_date"], name="idx_fiscal_doc_type_date"),
        ),
        migrations.AddIndex(
            model_name="fiscaldocument",
            index=models.Index(fields=["sale_id"], name="idx_fiscal_doc_sale"),
        ),
        migrations.CreateModel(
            name="SummaryItem",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "summary",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="summary_items",
                        to="fiscal.fiscaldocument",
                    ),
                ),
                (
                    "receipt",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="included_in_summaries",
                        to="fiscal.fiscaldocument",
                    ),
                ),
            ],
            options={
                "db_table": "fiscal_summary_item",
            },
        ),
        migrations.AddConstraint(
            model_name="summaryitem",
            constraint=models.UniqueConstraint(fields=("summary", "receipt"), name="uniq_summary_item"),
        ),
        migrations.CreateModel(
            name="DeliveryJob",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                (
                    "job_type",
                    models.CharField(
                        choices=[
                            ("SEND_DOCUMENT", "Enviar comprovante"),
                            ("SEND_SUMMARY", "Enviar resumo diário"),
                            ("SEND_VOID", "Enviar comunicação de baixa"),
                            ("POLL_STATUS", "Consultar ticket"),
                        ],
                        max_length=16,
                    ),
                ),
                (
                    "status",
                    models.CharField(
                        choices=[
                            ("QUEUED", "Na fila"),
                            ("RUNNING", "Em execução"),
                            ("DONE", "Concluído"),
                            ("FAILED", "Falhou"),
                        ],
                        default="QUEUED",
                        max_length=16,
                    ),
                ),
                ("next_run_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("attempts", models.PositiveIntegerField(default=0)),
                ("max_attempts", models.PositiveIntegerField(default=5)),
                ("last_error", models.TextField(blank=True, null=True)),
                ("locked_at", models.DateTimeField(blank=True, null=True)),
                ("locked_by", models.CharField(blank=True, max_length=128, null=True)),
                ("completed_at", models.DateTimeField(blank=True, null=True)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                ("updated_at", models.DateTimeField(auto_now=True)),
                (
                    "tenant",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="delivery_jobs",
                        to="tenants.tenant",
                    ),
                ),
                (
                    "document",
                    models.ForeignKey(
                        on_delete=django.db.models.deletion.PROTECT,
                        related_name="delivery_jobs",
                        to="fiscal.fiscaldocument",
                    ),
                ),
            ],
            options={
                "db_table": "fiscal_delivery_job",
            },
        ),
        migrations.AddIndex(
            model_name="deliveryjob",
            index=models.Index(fields=["status", "next_run_at"], name="idx_job_status_next_run"),
        ),
        migrations.AddIndex(
            model_name="deliveryjob",
            index=models.Index(fields=["document", "status"], name="idx_job_document_status"),
        ),
        migrations.CreateModel(
            name="FiscalAuditEvent",
            fields=[
                ("id", models.UUIDField(default=uuid.uuid4, editable=False, primary_key=True, serialize=False)),
                ("tenant_id", models.CharField(blank=True, max_length=64, null=True)),
                ("event_type", models.CharField(max_length=64)),
                (
                    "severity",
                    models.CharField(
                        choices=[("INFO", "Info"), ("WARN", "Aviso"), ("ERROR", "Erro")],
                        default="INFO",
                        max_length=8,
                    ),
                ),
                ("actor_id", models.CharField(blank=True, max_length=64, null=True)),
                ("meta", models.JSONField(blank=True, default=dict)),
                ("created_at", models.DateTimeField(default=django.utils.timezone.now)),
                (
                    "document",
                    models.ForeignKey(
                        blank=True,
                        null=True,
                        on_delete=django.db.models.deletion.SET_NULL,
                        related_name="audit_events",
                        to="fiscal.fiscaldocument",
                    ),
                ),
            ],
            options={
                "db_table": "fiscal_audit_event",
            },
        ),
        migrations.AddIndex(
            model_name="fiscalauditevent",
            index=models.Index(fields=["tenant_id", "created_at"], name="idx_audit_tenant_created"),
        ),
        migrations.AddIndex(
            model_name="fiscalauditevent",
            index=models.Index(fields=["event_type"], name="idx_audit_event_type"),
        ),
    ]
