"""Run ARQ worker. Usage: python -m cookie_gallery.worker.run_worker"""

from arq import run_worker

from cookie_gallery.worker.tasks import WorkerSettings

if __name__ == "__main__":
    run_worker(WorkerSettings)
