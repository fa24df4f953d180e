import argparse
import json
import sys
from pathlib import Path

from recordvault.config.settings import Settings
from recordvault.database.connection import close_pool, init_pool
from recordvault.ledger.exceptions import LedgerError
from recordvault.logging.logger import Log
from recordvault.pipeline.audit import LedgerAuditor
from recordvault.pipeline.collaborators import Collaborators
from recordvault.pipeline.exceptions import PipelineError
from recordvault.pipeline.ingestion import build_ingestion_orchestrator
from recordvault.pipeline.models import RecordClassification, RecordDescriptor
from recordvault.pipeline.retrieval import build_retrieval_orchestrator
from recordvault.pipeline.uploads import UploadLoader
from recordvault.storage.exceptions import ContentStoreError
from recordvault.worker.executor import IngestRequest, PipelineExecutor


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="recordvault",
        description="Encrypt, store and ledger-anchor medical records.",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("check", help="Verify content store and ledger connectivity")

    ingest = sub.add_parser("ingest", help="Ingest one or more files for a patient")
    ingest.add_argument("files", nargs="+", type=Path)
    ingest.add_argument("--patient", required=True, help="Patient email or id")
    ingest.add_argument(
        "--classification",
        required=True,
        choices=[c.value for c in RecordClassification],
    )
    ingest.add_argument("--submitter", required=True, help="Submitting hospital identity")
    ingest.add_argument("--description", default="")
    ingest.add_argument("--mime-type", default=None)

    retrieve = sub.add_parser("retrieve", help="Download and decrypt a record")
    retrieve.add_argument("record_id", type=int)
    retrieve.add_argument("--requester", required=True)
    retrieve.add_argument("--output", required=True, type=Path)

    audit = sub.add_parser("audit", help="Compare ledger anchors with stored descriptors")
    audit.add_argument("subject_identity")

    return parser


def describe(descriptor: RecordDescriptor) -> dict[str, object]:
    """Caller-facing view of a descriptor; never includes the encryption key."""
    return {
        "id": descriptor.id,
        "file_name": descriptor.file_name,
        "classification": descriptor.classification.value,
        "file_size": descriptor.file_size,
        "mime_type": descriptor.mime_type,
        "cid": descriptor.cid,
        "ledger_receipt": descriptor.ledger_receipt,
        "status": descriptor.status.value,
        "created_at": descriptor.created_at.isoformat(),
    }


def _run_check(collaborators: Collaborators) -> int:
    results: dict[str, str] = {}
    exit_code = 0
    for name, verify, errors in (
        ("store", collaborators.store.verify_credentials, ContentStoreError),
        ("ledger", collaborators.ledger.verify_connection, LedgerError),
    ):
        try:
            verify()
        except errors as exc:
            results[name] = f"{type(exc).__name__}: {exc}"
            exit_code = 1
        else:
            results[name] = "ok"
    print(json.dumps(results))
    return exit_code


def _run_ingest(args: argparse.Namespace, executor: PipelineExecutor) -> int:
    loader = UploadLoader()
    requests = [
        IngestRequest(
            subject_identifier=args.patient,
            classification=args.classification,
            upload=loader.load(path, args.mime_type),
            submitter_identity=args.submitter,
            description=args.description,
        )
        for path in args.files
    ]
    exit_code = 0
    for outcome in executor.ingest_many(requests):
        if outcome.descriptor is not None:
            print(json.dumps({"file": outcome.file_name, "record": describe(outcome.descriptor)}))
        elif outcome.error is not None:
            exit_code = 1
            print(json.dumps({"file": outcome.file_name, "failure": outcome.error.to_report()}))
    return exit_code


def _run_retrieve(args: argparse.Namespace, executor: PipelineExecutor) -> int:
    try:
        record = executor.submit_retrieve(args.record_id, args.requester).result()
    except PipelineError as exc:
        print(json.dumps({"record_id": args.record_id, "failure": exc.to_report()}))
        return 1
    with args.output.open("wb") as fh:
        for chunk in record.iter_chunks():
            fh.write(chunk)
    print(json.dumps({"record": describe(record.descriptor), "output": str(args.output)}))
    return 0


def _run_audit(args: argparse.Namespace, collaborators: Collaborators) -> int:
    report = LedgerAuditor(collaborators.ledger, collaborators.metadata_store).audit_subject(
        args.subject_identity
    )
    print(
        json.dumps(
            {
                "subject_identity": report.subject_identity,
                "consistent": report.consistent,
                "anchored_without_descriptor": list(report.anchored_without_descriptor),
                "descriptors_without_anchor": list(report.descriptors_without_anchor),
            }
        )
    )
    return 0 if report.consistent else 1


def main(argv: list[str] | None = None) -> int:
    """Entry point: configure logging -> initialize pool -> build collaborators -> run command."""
    args = _build_parser().parse_args(argv)
    settings = Settings()
    Log.configure(settings.log_level)
    collaborators = Collaborators.from_settings(settings)

    if args.command == "check":
        return _run_check(collaborators)

    init_pool(settings)
    try:
        if args.command == "audit":
            return _run_audit(args, collaborators)
        with PipelineExecutor(
            build_ingestion_orchestrator(settings, collaborators),
            build_retrieval_orchestrator(settings, collaborators),
            max_workers=settings.max_workers,
        ) as executor:
            if args.command == "ingest":
                return _run_ingest(args, executor)
            return _run_retrieve(args, executor)
    finally:
        close_pool()


if __name__ == "__main__":
    sys.exit(main())
