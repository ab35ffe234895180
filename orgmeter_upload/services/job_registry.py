"""Process-local registry of upload jobs executing in this process."""
import threading


class JobRegistry:
    """
    Tracks which jobs are running here and whether they were asked to stop.

    Advisory only: the persisted job status is authoritative. A job running
    in another process (or left over from before a restart) is not listed.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._jobs: dict[str, dict] = {}

    def register(self, job_id: str) -> None:
        with self._lock:
            self._jobs[job_id] = {"cancelled": False}

    def unregister(self, job_id: str) -> None:
        with self._lock:
            self._jobs.pop(job_id, None)

    def is_running(self, job_id: str) -> bool:
        with self._lock:
            return job_id in self._jobs

    def signal_cancel(self, job_id: str) -> bool:
        """Flag a running job for cancellation. Returns False if it is not running here."""
        with self._lock:
            tracker = self._jobs.get(job_id)
            if tracker is None:
                return False
            tracker["cancelled"] = True
            return True

    def is_cancel_signalled(self, job_id: str) -> bool:
        with self._lock:
            tracker = self._jobs.get(job_id)
            return bool(tracker and tracker["cancelled"])

    def running_count(self) -> int:
        with self._lock:
            return len(self._jobs)
