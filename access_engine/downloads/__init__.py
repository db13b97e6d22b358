from access_engine.downloads.service import DownloadReason, DownloadResolution, DownloadService

__all__ = ["DownloadReason", "DownloadResolution", "DownloadService"]
