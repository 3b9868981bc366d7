from common.workers.launcher import WorkerLauncher
from packages.entitlements.workers.usage_rollover_worker import UsageRolloverWorker

if __name__ == "__main__":
    WorkerLauncher().run_from_args(
        worker_factory=UsageRolloverWorker, worker_name="Usage Rollover Worker"
    )
