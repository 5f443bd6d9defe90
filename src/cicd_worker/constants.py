"""Centralized constants for the CI/CD worker."""

# Configuration
DEFAULT_PROJECTS_FILE = "/etc/ci-cd_worker/list_of_projects_to_update.yaml"

# Logging
DEFAULT_LOG_DIRECTORY = "/var/log/cc_app_logs/ci-cd_worker/"
MAIN_LOG_FILE_NAME = "main.log"

# Polling (lock convergence and service-status convergence)
POLL_INTERVAL_SECONDS = 0.5
POLL_DEADLINE_SECONDS = 5.0

# Git
UP_TO_DATE_MARKER = "Your branch is up to date"

# Build
DEFAULT_BUILD_COMMAND = "cargo build --release"
DEFAULT_ARTIFACT_DIR = "target/release"
LOCK_FILE_SUFFIX = ".lock"

# Service control
DEFAULT_SERVICE_COMMAND = "systemctl"
SERVICE_STATUS_EXIT_CODES = (0, 3)
SERVICE_INACTIVE_MARKER = "Active: inactive"
SERVICE_RUNNING_MARKER = "Active: active (running)"

# Process exit codes
EXIT_OK = 0
EXIT_PROJECT_FAILED = 1
EXIT_ABORTED = 2
