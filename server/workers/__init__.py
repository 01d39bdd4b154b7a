from .file_watcher import ChangeEvent, ChangeRelay, ChangeSource, FileWatcher

__all__ = ["ChangeEvent", "ChangeRelay", "ChangeSource", "FileWatcher"]
