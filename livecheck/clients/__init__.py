from livecheck.clients.file_watcher import DocumentWatcher

__all__ = ["DocumentWatcher"]
