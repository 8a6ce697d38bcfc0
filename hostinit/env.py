"""Provisioning environment: every collaborator a setup job needs, passed explicitly."""

from dataclasses import dataclass, field

from hostinit.cloud import CloudManager, StaticCloudManager
from hostinit.config import Settings
from hostinit.credentials import CredentialStore
from hostinit.events import EventLog
from hostinit.host.store import HostStore, UserStore
from hostinit.jobs.queue import JobQueue
from hostinit.remote.executor import BoundedRemoteExecutor


@dataclass
class ProvisionEnv:
    """Settings plus stores, executor, cloud hooks, audit log and queue."""

    settings: Settings = field(default_factory=Settings)
    hosts: HostStore = field(default_factory=HostStore)
    users: UserStore = field(default_factory=UserStore)
    credentials: CredentialStore = field(default_factory=CredentialStore)
    executor: BoundedRemoteExecutor = field(default_factory=BoundedRemoteExecutor)
    cloud: CloudManager = field(default_factory=StaticCloudManager)
    events: EventLog = field(default_factory=EventLog)
    queue: JobQueue = field(default_factory=JobQueue)
