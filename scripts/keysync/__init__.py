"""keysync: SSH access reconciliation for per-application workloads.

Discovers running workloads from the orchestrator, resolves the GitHub
collaborators with push access to each workload's repository, fetches their
public keys and writes authorized_keys / passwd artifacts (or a JSON
snapshot for a privileged updater).
"""
