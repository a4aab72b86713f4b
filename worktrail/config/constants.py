"""Hard-coded configuration constants not meant to be user-configurable."""

DEFAULT_HOME_DIRNAME = ".worktrail"
CONFIG_FILENAME = "config.json"
STORE_METADATA_DIRNAME = ".git"
SNAPSHOT_DELIMITER = " | Snapshot @ "
SNAPSHOT_PREFIX = "Snapshot @ "
SHORT_HASH_LENGTH = 8
RESTORE_TEMP_PREFIX = "worktrail-restore-"

# Number of failure entries to include in error messages
MAX_FAILURE_SAMPLES = 5
