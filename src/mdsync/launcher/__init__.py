from mdsync.launcher.opener import DocumentOpener, NoSuitableApplicationError, OpenResult

__all__ = [
    "DocumentOpener",
    "NoSuitableApplicationError",
    "OpenResult",
]
