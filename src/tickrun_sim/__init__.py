"""tickrun-sim - drive synthetic workloads through a tickrun Scheduler."""
