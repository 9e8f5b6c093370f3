import os


def _int_env(name: str, default: int) -> int:
    raw = str(os.getenv(name, str(default))).strip()
    try:
        return int(raw)
    except Exception:
        return default


def _float_env(name: str, default: float) -> float:
    raw = str(os.getenv(name, str(default))).strip()
    try:
        return float(raw)
    except Exception:
        return default


DATABASE_URL = str(os.getenv("VSANLAB_DATABASE_URL", "sqlite://")).strip()
LOG_LEVEL = str(os.getenv("VSANLAB_LOG_LEVEL", "INFO")).strip().upper()

INITIAL_VERSION = "ESXi 8.0 U2"
TARGET_VERSION = "ESXi 8.0 U3"

# Simulated delays (seconds)
VSAN_DEPLOY_DELAY = _float_env("VSANLAB_VSAN_DEPLOY_DELAY", 3.0)
RESYNC_STEP_DELAY = _float_env("VSANLAB_RESYNC_STEP_DELAY", 0.4)
EVACUATION_COMPUTE_DELAY = _float_env("VSANLAB_EVACUATION_COMPUTE_DELAY", 1.5)
EVACUATION_STEP_DELAY = _float_env("VSANLAB_EVACUATION_STEP_DELAY", 0.5)
UPGRADE_STEP_DELAY = _float_env("VSANLAB_UPGRADE_STEP_DELAY", 0.3)
REBALANCE_DELAY = _float_env("VSANLAB_REBALANCE_DELAY", 3.0)
MIGRATION_SETTLE_DELAY = _float_env("VSANLAB_MIGRATION_SETTLE_DELAY", 0.5)

# Progress increments (percent)
RESYNC_STEP_PERCENT = _int_env("VSANLAB_RESYNC_STEP_PERCENT", 10)
RESYNC_EVENT_EVERY_PERCENT = 20
EVACUATION_STEP_PERCENT = _int_env("VSANLAB_EVACUATION_STEP_PERCENT", 20)
UPGRADE_STEP_PERCENT = _int_env("VSANLAB_UPGRADE_STEP_PERCENT", 10)

# Test VM deployment profile
TEST_VM_COUNT = 12
TEST_VM_SIZES_GB = [50, 50, 100, 100, 200, 200, 500, 500, 100, 200, 50, 500]

# Hosts required before the cluster can be formed / VMs deployed
STANDARD_MIN_HOSTS = 3
ROBO_DATA_HOSTS = 2
MIN_ACTIVE_HOSTS_FOR_VMS = 3
