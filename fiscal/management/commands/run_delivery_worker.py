import logging
import signal
import time

from django.conf import settings
from django.core.management.base import BaseCommand, CommandError
from django.db import DatabaseError, close_old_connections

from fiscal.services.delivery_queue import default_worker_id, run_once

logger = logging.getLogger("cpe.worker")


class Command(BaseCommand):
    help = "Processa a fila de entrega de documentos fiscais (envio e consulta de tickets)."

    def add_arguments(self, parser):
        parser.add_argument(
            "--once",
            action="store_true",
            help="Executa um único ciclo e sai.",
        )
        parser.add_argument(
            "--batch-size",
            type=int,
            default=10,
            help="Máximo de jobs por ciclo (padrão: 10).",
        )
        parser.add_argument(
            "--interval",
            type=float,
            default=None,
            help="Segundos entre ciclos (padrão: FISCAL_WORKER_INTERVAL_SECONDS).",
        )
        parser.add_argument(
            "--worker-id",
            default=None,
            help="Identificador do worker no lease dos jobs (padrão: host:pid).",
        )

    def handle(self, *args, **options):
        batch_size = options["batch_size"]
        if batch_size < 1:
            raise CommandError("--batch-size deve ser >= 1.")

        interval = options["interval"]
        if interval is None:
            interval = float(getattr(settings, "FISCAL_WORKER_INTERVAL_SECONDS", 10))

        worker_id = options["worker_id"] or default_worker_id()
        self._stopping = False

        previous_handlers = {}
        if not options["once"]:
            for signum in (signal.SIGTERM, signal.SIGINT):
                previous_handlers[signum] = signal.signal(signum, self._request_stop)

        logger.info(
            "worker_started",
            extra={
                "event": "worker_lifecycle",
                "worker_id": worker_id,
                "batch_size": batch_size,
                "interval": interval,
                "once": options["once"],
            },
        )

        try:
            self._loop(worker_id, batch_size, interval, once=options["once"])
        finally:
            for signum, handler in previous_handlers.items():
                signal.signal(signum, handler)

        logger.info("worker_stopped", extra={"event": "worker_lifecycle", "worker_id": worker_id})
        self.stdout.write(self.style.SUCCESS("Worker finalizado."))

    def _loop(self, worker_id: str, batch_size: int, interval: float, *, once: bool) -> None:
        while True:
            try:
                result = run_once(worker_id=worker_id, batch_size=batch_size)
            except DatabaseError as exc:
                logger.exception(
                    "worker_cycle_failed",
                    extra={"event": "worker_cycle", "worker_id": worker_id, "outcome": "database_error"},
                )
                if once:
                    raise CommandError(f"Ciclo do worker falhou: {exc}") from exc
                # Descarta a conexão quebrada; o próximo ciclo reconecta
                close_old_connections()
                self._sleep(interval)
                if self._stopping:
                    break
                continue

            if result.claimed or result.reclaimed:
                self.stdout.write(
                    f"claimed={result.claimed} done={result.done} retried={result.retried} "
                    f"failed={result.failed} reclaimed={result.reclaimed}"
                )

            if once or self._stopping:
                break

            # Ciclo cheio: provavelmente há mais jobs prontos, não espera
            if result.claimed >= batch_size:
                continue

            self._sleep(interval)
            if self._stopping:
                break

    def _request_stop(self, signum, frame):
        logger.info("worker_stop_requested", extra={"event": "worker_lifecycle", "signal": signum})
        self._stopping = True

    def _sleep(self, seconds: float) -> None:
        # Dorme em fatias curtas para reagir rápido ao SIGTERM
        deadline = time.monotonic() + seconds
        while not self._stopping and time.monotonic() < deadline:
            time.sleep(min(0.5, max(deadline - time.monotonic(), 0)))
