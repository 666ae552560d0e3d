# This file is part of firstboot. See LICENSE file for license information.

import logging
import logging.handlers
import os
import sys

DEFAULT_LOG_FORMAT = "%(asctime)s - %(filename)s[%(levelname)s]: %(message)s"
SYSLOG_FORMAT = "%(tag)s: %(filename)s[%(levelname)s]: %(message)s"


class TagFilter(logging.Filter):
    """Expose the syslog tag to format strings as %(tag)s."""

    def __init__(self, tag):
        super().__init__()
        self.tag = tag

    def filter(self, record):
        record.tag = self.tag
        return True


def setup_basic_logging(level=logging.DEBUG, formatter=None):
    formatter = formatter or logging.Formatter(DEFAULT_LOG_FORMAT)
    root = logging.getLogger()
    for handler in root.handlers:
        if getattr(handler, "firstboot_console", False):
            handler.setLevel(level)
            return
    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(formatter)
    console.setLevel(level)
    console.firstboot_console = True  # type: ignore
    root.addHandler(console)
    root.setLevel(logging.DEBUG)


def setup_logging(cfg=None, level=logging.DEBUG):
    """Send log records to the log file, syslog and stderr.

    Handlers that cannot be created (no syslog socket, unwritable log
    file) are skipped with a message on stderr so boot can continue.
    """
    cfg = cfg or {}
    root = logging.getLogger()
    formatter = logging.Formatter(DEFAULT_LOG_FORMAT)

    log_file = cfg.get("log_file")
    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            file_handler = logging.FileHandler(log_file)
        except OSError as e:
            sys.stderr.write(
                "Failed to open log file %s: %s\n" % (log_file, e)
            )
        else:
            file_handler.setFormatter(formatter)
            file_handler.setLevel(level)
            root.addHandler(file_handler)

    syslog_address = cfg.get("syslog_address")
    if syslog_address and os.path.exists(syslog_address):
        try:
            syslog = logging.handlers.SysLogHandler(
                address=syslog_address,
                facility=logging.handlers.SysLogHandler.LOG_DAEMON,
            )
        except OSError as e:
            sys.stderr.write(
                "Failed to connect to syslog at %s: %s\n" % (syslog_address, e)
            )
        else:
            syslog.addFilter(TagFilter(cfg.get("syslog_tag", "firstboot")))
            syslog.setFormatter(logging.Formatter(SYSLOG_FORMAT))
            syslog.setLevel(logging.INFO)
            root.addHandler(syslog)

    setup_basic_logging(level)
    root.setLevel(level)
