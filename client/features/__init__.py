from .watch_reporter import WatchReporter

__all__ = ["WatchReporter"]
