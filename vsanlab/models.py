from sqlalchemy import Column, Integer, String, Enum, ForeignKey, Boolean, DateTime, Text
from sqlalchemy.orm import declarative_base, relationship
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
import enum

Base = declarative_base()

# ============================================================================
# ENUM DEFINITIONS
# ============================================================================

class LabScenario(str, enum.Enum):
    """Deployment topology chosen at scenario selection"""
    STANDARD = "STANDARD"  # 7-node cluster
    ROBO = "ROBO"  # 2 data nodes + witness appliance

class VsanArchitecture(str, enum.Enum):
    """Storage architecture, fixed for a session"""
    OSA = "OSA"  # mirrored: cache tier + capacity tier per disk group
    ESA = "ESA"  # pooled: single NVMe storage pool per host

class LabPhase(str, enum.Enum):
    """Cluster setup lifecycle"""
    INTRO = "INTRO"
    CREATE_CLUSTER = "CREATE_CLUSTER"
    ADD_HOSTS = "ADD_HOSTS"
    CONFIG_VSAN = "CONFIG_VSAN"
    DEPLOYING = "DEPLOYING"
    OPERATION = "OPERATION"

class HostStatus(str, enum.Enum):
    """Host connection state as seen by the cluster"""
    UNMANAGED = "Unmanaged"
    CONNECTED = "Connected"
    DISCONNECTED = "Disconnected"
    MAINTENANCE = "Maintenance"

class NetworkIsolation(str, enum.Enum):
    NORMAL = "Normal"
    ISOLATED = "Isolated"

class DiskMedia(str, enum.Enum):
    SSD = "SSD"
    HDD = "HDD"
    NVME = "NVMe"

class DiskTier(str, enum.Enum):
    """Slot the device was provisioned for"""
    CACHE = "Cache"
    CAPACITY = "Capacity"
    STORAGE_POOL = "StoragePool"
    WITNESS_METADATA = "WitnessMetadata"

class DiskRole(str, enum.Enum):
    """Role a disk has been claimed as"""
    UNCLAIMED = "Unclaimed"
    CACHE = "Cache"
    CAPACITY = "Capacity"
    STORAGE_POOL = "StoragePool"
    WITNESS = "Witness"

class DiskHealth(str, enum.Enum):
    HEALTHY = "Healthy"
    FAILED = "Failed"

class PowerState(str, enum.Enum):
    POWERED_ON = "PoweredOn"
    POWERED_OFF = "PoweredOff"
    BOOTING = "Booting"

class Compliance(str, enum.Enum):
    COMPLIANT = "Compliant"
    NON_COMPLIANT = "NonCompliant"

class ComponentKind(str, enum.Enum):
    VM_HOME = "VMHome"
    DATA_REPLICA = "DataReplica"
    WITNESS = "Witness"

class ComponentStatus(str, enum.Enum):
    ACTIVE = "Active"
    ABSENT = "Absent"
    STALE = "Stale"

class HealthState(str, enum.Enum):
    """Cluster-wide vSAN health"""
    HEALTHY = "Healthy"
    WARNING = "Warning"
    CRITICAL = "Critical"
    RESYNCING = "Resyncing"

class Encoding(str, enum.Enum):
    MIRROR = "Mirror"
    ERASURE_CODED = "ErasureCoded"

class StoragePolicyName(str, enum.Enum):
    RAID1_FTT1 = "RAID1_FTT1"
    RAID5_FTT1 = "RAID5_FTT1"
    RAID1_FTT2 = "RAID1_FTT2"
    RAID6_FTT2 = "RAID6_FTT2"
    RAID1_FTT3 = "RAID1_FTT3"

class MaintenanceMode(str, enum.Enum):
    ENSURE_ACCESSIBILITY = "EnsureAccessibility"
    FULL_DATA_EVACUATION = "FullDataEvacuation"

class FailureKind(str, enum.Enum):
    """Target kind for failure injection and recovery"""
    HOST = "HOST"
    DISK = "DISK"
    NETWORK = "NETWORK"

class Severity(str, enum.Enum):
    INFO = "INFO"
    ERROR = "ERROR"

class EventType(str, enum.Enum):
    """Event log event types"""
    LAB_SETUP = "lab_setup"
    HOST_JOIN = "host_join"
    HOST_LEAVE = "host_leave"
    HOST_CONFIG = "host_config"
    DISK_CLAIM = "disk_claim"
    VSAN_DEPLOY = "vsan_deploy"
    VM_DEPLOY = "vm_deploy"
    HOST_FAILURE = "host_failure"
    NETWORK_PARTITION = "network_partition"
    DISK_FAILURE = "disk_failure"
    HA_RESTART = "ha_restart"
    RECOVERY_START = "recovery_start"
    RESYNC_PROGRESS = "resync_progress"
    RESYNC_COMPLETE = "resync_complete"
    MAINTENANCE_ENTER = "maintenance_enter"
    MAINTENANCE_EXIT = "maintenance_exit"
    EVACUATION_PROGRESS = "evacuation_progress"
    VMOTION = "vmotion"
    REBALANCE_START = "rebalance_start"
    REBALANCE_COMPLETE = "rebalance_complete"
    UPGRADE_START = "upgrade_start"
    UPGRADE_PROGRESS = "upgrade_progress"
    UPGRADE_COMPLETE = "upgrade_complete"
    COMMAND_FAILED = "command_failed"

class WorkflowKind(str, enum.Enum):
    VSAN_DEPLOY = "vsan_deploy"
    RESYNC = "resync"
    EVACUATION = "evacuation"
    UPGRADE = "upgrade"
    REBALANCE = "rebalance"

class WorkflowState(str, enum.Enum):
    """Long-running workflow state"""
    SCHEDULED = "scheduled"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"

class WorkflowPhase(str, enum.Enum):
    PENDING = "pending"
    COMPUTE_EVACUATION = "compute_evacuation"
    DATA_EVACUATION = "data_evacuation"
    RESYNCING = "resyncing"
    REMEDIATING = "remediating"
    MIGRATING = "migrating"
    DONE = "done"

# ============================================================================
# STORAGE POLICIES (immutable configuration)
# ============================================================================

@dataclass(frozen=True)
class PolicySpec:
    """Redundancy contract of a named storage policy"""
    name: StoragePolicyName
    ftt: int
    encoding: Encoding
    multiplier: Decimal
    min_hosts: int
    data_components: int
    witness_components: int

    @property
    def placed_components(self) -> int:
        return self.data_components + self.witness_components


POLICIES = {
    StoragePolicyName.RAID1_FTT1: PolicySpec(
        StoragePolicyName.RAID1_FTT1, 1, Encoding.MIRROR, Decimal("2"), 3, 2, 1
    ),
    StoragePolicyName.RAID5_FTT1: PolicySpec(
        StoragePolicyName.RAID5_FTT1, 1, Encoding.ERASURE_CODED, Decimal("1.33"), 4, 4, 0
    ),
    StoragePolicyName.RAID1_FTT2: PolicySpec(
        StoragePolicyName.RAID1_FTT2, 2, Encoding.MIRROR, Decimal("3"), 5, 3, 2
    ),
    StoragePolicyName.RAID6_FTT2: PolicySpec(
        StoragePolicyName.RAID6_FTT2, 2, Encoding.ERASURE_CODED, Decimal("1.5"), 6, 6, 0
    ),
    StoragePolicyName.RAID1_FTT3: PolicySpec(
        StoragePolicyName.RAID1_FTT3, 3, Encoding.MIRROR, Decimal("4"), 7, 4, 3
    ),
}


def get_policy(name) -> PolicySpec:
    return POLICIES[StoragePolicyName(name)]

# ============================================================================
# CORE MODEL DEFINITIONS
# ============================================================================

class Host(Base):
    """ESXi host - contributes compute and local disks to the cluster"""
    __tablename__ = "hosts"

    id = Column(String, primary_key=True)
    name = Column(String, unique=True, nullable=False)
    ip_address = Column(String)
    version = Column(String, nullable=False)
    is_witness = Column(Boolean, default=False, nullable=False)
    ordinal = Column(Integer, nullable=False)  # discovery order

    # State
    status = Column(Enum(HostStatus), default=HostStatus.UNMANAGED, nullable=False)
    isolation = Column(Enum(NetworkIsolation), default=NetworkIsolation.NORMAL, nullable=False)
    vsan_traffic_enabled = Column(Boolean, default=False, nullable=False)

    # Relationships
    disks = relationship(
        "Disk", back_populates="host", order_by="Disk.position", cascade="all, delete-orphan"
    )

    @property
    def short_name(self) -> str:
        return self.name.split(".")[0]

    @property
    def in_cluster(self) -> bool:
        return self.status != HostStatus.UNMANAGED


class Disk(Base):
    """Local device owned by one host for its lifetime"""
    __tablename__ = "disks"

    id = Column(String, primary_key=True)
    host_id = Column(String, ForeignKey("hosts.id"), nullable=False)
    position = Column(Integer, nullable=False)

    media = Column(Enum(DiskMedia), nullable=False)
    tier = Column(Enum(DiskTier), nullable=False)
    capacity_gb = Column(Integer, nullable=False)
    size_label = Column(String)

    # State
    claimed_as = Column(Enum(DiskRole), default=DiskRole.UNCLAIMED, nullable=False)
    health = Column(Enum(DiskHealth), default=DiskHealth.HEALTHY, nullable=False)

    # Relationships
    host = relationship("Host", back_populates="disks")


class VirtualMachine(Base):
    """Test workload VM placed on a host with a storage policy"""
    __tablename__ = "virtual_machines"

    id = Column(String, primary_key=True)
    ordinal = Column(Integer, nullable=False)
    name = Column(String, unique=True, nullable=False)
    host_id = Column(String, ForeignKey("hosts.id"), nullable=False)

    power = Column(Enum(PowerState), default=PowerState.POWERED_ON, nullable=False)
    compliance = Column(Enum(Compliance), default=Compliance.COMPLIANT, nullable=False)
    policy = Column(Enum(StoragePolicyName), nullable=False)

    # Capacity
    size_gb = Column(Integer, nullable=False)
    used_space_gb = Column(Integer, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)

    # Relationships
    components = relationship(
        "VMComponent", back_populates="vm", order_by="VMComponent.position", cascade="all, delete-orphan"
    )


class VMComponent(Base):
    """vSAN object component (home namespace, data replica or witness)"""
    __tablename__ = "vm_components"

    id = Column(String, primary_key=True)
    vm_id = Column(String, ForeignKey("virtual_machines.id"), nullable=False)
    position = Column(Integer, nullable=False)
    kind = Column(Enum(ComponentKind), nullable=False)
    host_id = Column(String, ForeignKey("hosts.id"), nullable=False)
    status = Column(Enum(ComponentStatus), default=ComponentStatus.ACTIVE, nullable=False)

    # Relationships
    vm = relationship("VirtualMachine", back_populates="components")


class ClusterHealth(Base):
    """Cluster-wide health singleton (id=1)"""
    __tablename__ = "cluster_health"

    id = Column(Integer, primary_key=True)
    state = Column(Enum(HealthState), default=HealthState.HEALTHY, nullable=False)
    resync_progress = Column(Integer, default=0, nullable=False)  # 0-100
    last_change = Column(DateTime, default=datetime.utcnow)


class LabSession(Base):
    """Session-wide settings and workflow locks (id=1)"""
    __tablename__ = "lab_session"

    id = Column(Integer, primary_key=True)
    scenario = Column(Enum(LabScenario), default=LabScenario.STANDARD, nullable=False)
    architecture = Column(Enum(VsanArchitecture), default=VsanArchitecture.OSA, nullable=False)
    phase = Column(Enum(LabPhase), default=LabPhase.INTRO, nullable=False)
    cluster_created = Column(Boolean, default=False, nullable=False)
    selected_policy = Column(Enum(StoragePolicyName), default=StoragePolicyName.RAID1_FTT1, nullable=False)

    # Maintenance evacuation lock
    maintenance_host_id = Column(String, ForeignKey("hosts.id"))
    maintenance_progress = Column(Integer, default=0, nullable=False)

    # Lifecycle upgrade lock
    upgrading_host_id = Column(String, ForeignKey("hosts.id"))
    upgrade_progress = Column(Integer, default=0, nullable=False)


class WorkflowJob(Base):
    """Tracks multi-step workflows (resync, evacuation, upgrade, rebalance)"""
    __tablename__ = "workflow_jobs"
    __table_args__ = {"sqlite_autoincrement": True}  # ids never reused after a lab reset

    id = Column(Integer, primary_key=True)
    kind = Column(Enum(WorkflowKind), nullable=False)
    state = Column(Enum(WorkflowState), default=WorkflowState.IN_PROGRESS, nullable=False)
    phase = Column(Enum(WorkflowPhase), default=WorkflowPhase.PENDING, nullable=False)
    target_id = Column(String)
    mode = Column(String)
    progress_percent = Column(Integer, default=0, nullable=False)
    steps_completed = Column(Integer, default=0, nullable=False)

    started_at = Column(DateTime, default=datetime.utcnow)
    completed_at = Column(DateTime)


class EventLog(Base):
    """Timestamped operator-facing event"""
    __tablename__ = "event_logs"

    id = Column(Integer, primary_key=True)
    event_type = Column(Enum(EventType), nullable=False)
    severity = Column(Enum(Severity), default=Severity.INFO, nullable=False)
    message = Column(Text, nullable=False)

    # Context references
    host_id = Column(String)
    vm_id = Column(String)
    disk_id = Column(String)

    timestamp = Column(DateTime, default=datetime.utcnow)

    def render(self) -> str:
        return f"[{self.timestamp.strftime('%H:%M:%S')}] {self.severity.value} | {self.message}"
