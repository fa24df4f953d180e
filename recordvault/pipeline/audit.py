from dataclasses import dataclass

from recordvault.database.base import BaseMetadataStore
from recordvault.ledger.base import BaseLedgerAnchor
from recordvault.logging.logger import Log


@dataclass(frozen=True)
class AuditReport:
    """Ledger vs. metadata comparison for one subject."""

    subject_identity: str
    anchored_cids: tuple[str, ...]
    recorded_cids: tuple[str, ...]
    anchored_without_descriptor: tuple[str, ...]
    descriptors_without_anchor: tuple[str, ...]

    @property
    def consistent(self) -> bool:
        return not self.anchored_without_descriptor and not self.descriptors_without_anchor


class LedgerAuditor:
    """Read-only check that every anchor has a descriptor and vice versa.

    Orphan anchors are expected after persist-stage failures; this only
    reports them.
    """

    def __init__(self, ledger: BaseLedgerAnchor, metadata_store: BaseMetadataStore) -> None:
        self._ledger = ledger
        self._metadata_store = metadata_store

    def audit_subject(self, subject_identity: str) -> AuditReport:
        # The count is a single cheap call; only list CIDs when there are any.
        anchored_count = self._ledger.count_by_subject(subject_identity)
        anchored = self._ledger.query_by_subject(subject_identity) if anchored_count else []
        recorded = [d.cid for d in self._metadata_store.list_by_subject(subject_identity)]

        anchored_set, recorded_set = set(anchored), set(recorded)
        report = AuditReport(
            subject_identity=subject_identity,
            anchored_cids=tuple(anchored),
            recorded_cids=tuple(recorded),
            anchored_without_descriptor=tuple(c for c in anchored if c not in recorded_set),
            descriptors_without_anchor=tuple(c for c in recorded if c not in anchored_set),
        )
        if report.consistent:
            Log.info(f"Ledger audit clean: {len(anchored)} anchors", subject=subject_identity)
        else:
            Log.warning(
                "Ledger audit found mismatches",
                subject=subject_identity,
                orphan_anchors=len(report.anchored_without_descriptor),
                unanchored_descriptors=len(report.descriptors_without_anchor),
            )
        return report
