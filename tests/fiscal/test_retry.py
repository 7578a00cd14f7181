# tests/fiscal/test_retry.py

import pytest
from django.utils import timezone

from fiscal.collaborator_factory import build_mock_collaborators
from fiscal.collaborators import MockTransportAlwaysFail
from fiscal.models import DeliveryJob, DocType, DocumentStatus, JobStatus, JobType
from fiscal.services.delivery_queue import run_once
from fiscal.services.document_service import retry_document
from fiscal.services.issuance_service import issue_document
from tests.helpers import drain_queue, invoice_payload, make_jobs_ready


def _issue(profile, collaborators):
    return issue_document(
        tenant=profile.tenant,
        doc_type=DocType.INVOICE,
        collaborators=collaborators,
        **invoice_payload(),
    )


@pytest.mark.django_db
def test_retry_reaproveita_job_vivo(fiscal_ready):
    """
    Cenário:
      - Primeira tentativa falha e o job fica QUEUED com backoff.
      - Retry manual não cria job novo: antecipa o existente para agora.
    """
    failing = build_mock_collaborators(transport=MockTransportAlwaysFail())
    result = _issue(fiscal_ready, failing)
    run_once(worker_id="w-1", collaborators_provider=lambda job: failing)

    job = DeliveryJob.objects.get(pk=result.job.pk)
    assert job.next_run_at > timezone.now()

    retried = retry_document(result.document)

    assert retried.pk == job.pk
    assert DeliveryJob.objects.count() == 1
    assert DeliveryJob.objects.get(pk=job.pk).next_run_at <= timezone.now()


@pytest.mark.django_db
def test_retry_apos_erro_cria_job_novo(fiscal_ready, collaborators):
    failing = build_mock_collaborators(transport=MockTransportAlwaysFail())
    result = _issue(fiscal_ready, failing)
    for _ in range(5):
        make_jobs_ready()
        run_once(worker_id="w-1", collaborators_provider=lambda job: failing)

    document = result.document
    document.refresh_from_db()
    assert document.status == DocumentStatus.ERROR

    new_job = retry_document(document)

    assert new_job.pk != result.job.pk
    assert new_job.attempts == 0
    assert document.status == DocumentStatus.QUEUED

    drain_queue(collaborators)
    document.refresh_from_db()
    assert document.status == DocumentStatus.ACCEPTED


@pytest.mark.django_db
def test_retry_de_documento_enviado_encerra_consulta(fiscal_ready, collaborators):
    result = _issue(fiscal_ready, collaborators)
    run_once(worker_id="w-1", collaborators_provider=lambda job: collaborators)

    document = result.document
    document.refresh_from_db()
    assert document.status == DocumentStatus.SENT

    new_job = retry_document(document)

    poll = DeliveryJob.objects.get(document=document, job_type=JobType.POLL_STATUS)
    assert poll.status == JobStatus.FAILED
    assert new_job.job_type == JobType.SEND_DOCUMENT
    assert new_job.status == JobStatus.QUEUED
