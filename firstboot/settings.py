# This file is part of firstboot. See LICENSE file for license information.

# Set and read for determining the cloud config file location
CFG_FILE = "/etc/firstboot/firstboot.cfg"

# Directory holding drop-in configuration, applied in sorted order
CFG_DIR = "/etc/firstboot/firstboot.cfg.d"

DEFAULT_SSH_KEY_TYPES = ["rsa", "dsa", "ecdsa", "ed25519"]

BUILTIN_CFG = {
    "log_file": "/var/log/firstboot.log",
    "syslog_tag": "google",
    "syslog_address": "/dev/log",
    "console": "/dev/console",
    # Where per-boot artifacts (downloaded scripts, environment) go
    "run_dir": "/var/run/google",
    # Where per-instance state survives reboots
    "state_dir": "/var/lib/google",
    "metadata": {
        "command": "/usr/share/google/get_metadata_value",
        # None waits forever, the init system bounds the boot
        "max_wait": None,
        "sleep_time": 1,
    },
    "hooks": {
        "first_boot": "/usr/share/google/first-boot",
        "irq_affinity": "/usr/share/google/virtionet-irq-affinity",
    },
    "download": {
        "gsutil": "gsutil",
        "retries": 5,
        "initial_delay": 1,
        "max_delay": 32,
        "connect_timeout": 10,
        "timeout": 120,
    },
    "ssh": {
        "key_dir": "/etc/ssh",
        "key_types": DEFAULT_SSH_KEY_TYPES,
    },
}
