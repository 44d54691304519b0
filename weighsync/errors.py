class SyncError(Exception):
    pass


class BatchApplyError(SyncError):
    """A store failure stopped a push batch part way through.

    Records merged before the failure stay committed; ``applied`` counts them.
    """

    def __init__(self, applied: int, entity: str, record_id: str) -> None:
        super().__init__(f"failed to apply {entity} {record_id!r} after {applied} records")
        self.applied = applied
        self.entity = entity
        self.record_id = record_id
