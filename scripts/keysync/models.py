"""Value types passed between pipeline stages.

Every stage takes the previous stage's output and returns a new value;
nothing here is mutated after construction.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Mapping, Optional

# Workload label keys. Owner/name each have a legacy underscore spelling.
LABEL_OWNER = ("git.owner", "git_owner")
LABEL_NAME = ("git.name", "git_name")
LABEL_SSH_USER = "ci.rabbit.ssh.user"
LABEL_CONTAINER_NAME = "name"

KeySet = Mapping[str, tuple[str, ...]]


def _first_label(labels: Mapping[str, Any], keys: tuple[str, ...]) -> Optional[str]:
    for key in keys:
        value = labels.get(key)
        if value:
            return str(value)
    return None


@dataclass(frozen=True)
class Workload:
    repo_id: Optional[str]
    login: Optional[str] = None
    namespace: str = ""
    container_name: Optional[str] = None

    @classmethod
    def from_item(cls, item: Mapping[str, Any]) -> "Workload":
        """Parse one orchestrator list item. Missing fields get defaults."""
        metadata = item.get("metadata") or {}
        labels = metadata.get("labels") or {}

        owner = _first_label(labels, LABEL_OWNER)
        name = _first_label(labels, LABEL_NAME)
        repo_id = f"{owner}/{name}" if owner and name else None

        return cls(
            repo_id=repo_id,
            login=labels.get(LABEL_SSH_USER) or None,
            namespace=metadata.get("namespace") or "",
            container_name=metadata.get("name") or labels.get(LABEL_CONTAINER_NAME) or None,
        )


@dataclass(frozen=True)
class Collaborator:
    login: str
    permissions: Mapping[str, bool] = field(default_factory=dict)

    @property
    def can_push(self) -> bool:
        return bool(self.permissions.get("push"))

    @classmethod
    def from_api(cls, payload: Mapping[str, Any]) -> Optional["Collaborator"]:
        login = payload.get("login")
        if not login:
            return None
        perms = payload.get("permissions") or {}
        return cls(login=str(login), permissions={k: bool(v) for k, v in perms.items()})


@dataclass(frozen=True)
class Application:
    """Everything provisioned under one login name."""

    login: str
    repo_id: Optional[str]
    namespace: str = ""
    containers: tuple[str, ...] = ()
    collaborators: tuple[Collaborator, ...] = ()

    @property
    def primary_container(self) -> str:
        return self.containers[0] if self.containers else ""

    @property
    def connection_string(self) -> str:
        return f"-n {self.namespace}  {self.primary_container}"

    def to_template(self) -> dict[str, Any]:
        """Plain dict view handed to the password template."""
        return {
            "login": self.login,
            "repo_id": self.repo_id or "",
            "namespace": self.namespace,
            "containers": list(self.containers),
            "collaborators": [c.login for c in self.collaborators],
        }


@dataclass(frozen=True)
class ResolvedState:
    applications: Mapping[str, Application]
    users: Mapping[str, tuple[str, ...]]
    keys: KeySet

    def keys_for(self, account: str) -> tuple[str, ...]:
        return tuple(self.keys.get(account, ()))


def build_applications(workloads: Iterable[Workload]) -> dict[str, Application]:
    """Group workloads into applications keyed by login name.

    Workloads without a login are dropped. The last workload seen for a login
    supplies repo and namespace; every workload with that login contributes
    its container name, in inventory order.
    """
    owners: dict[str, Workload] = {}
    containers: dict[str, list[str]] = {}
    for workload in workloads:
        if not workload.login:
            continue
        owners[workload.login] = workload
        names = containers.setdefault(workload.login, [])
        if workload.container_name and workload.container_name not in names:
            names.append(workload.container_name)

    return {
        login: Application(
            login=login,
            repo_id=w.repo_id,
            namespace=w.namespace,
            containers=tuple(containers[login]),
        )
        for login, w in owners.items()
    }


def clean_key_lines(lines: Iterable[str]) -> tuple[str, ...]:
    """Strip, drop blank lines and de-duplicate, keeping first-seen order."""
    cleaned: dict[str, None] = {}
    for line in lines:
        line = line.strip()
        if line:
            cleaned.setdefault(line, None)
    return tuple(cleaned)
