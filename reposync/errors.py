"""Fatal error types surfaced to the command line entrypoints."""


class RepoSyncError(Exception):
    """Base class for run-fatal sync errors."""


class SourceDatasetError(RepoSyncError):
    """The project dataset could not be read or parsed."""


class SnapshotWriteError(RepoSyncError):
    """The snapshot file could not be written."""


class SnapshotFormatError(RepoSyncError):
    """An existing snapshot file is not a valid sync snapshot."""
