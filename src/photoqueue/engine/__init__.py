"""Engine module for upload orchestration."""

from photoqueue.engine.agent import UploadAgent

__all__ = ["UploadAgent"]
