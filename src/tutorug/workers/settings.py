"""arq worker settings module.

Import path for arq CLI: arq tutorug.workers.settings.WorkerSettings
"""

from __future__ import annotations

from tutorug.workers.sweeps import SweepWorkerSettings as WorkerSettings

__all__ = ["WorkerSettings"]
