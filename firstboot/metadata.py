# This file is part of firstboot. See LICENSE file for license information.
"""Instance metadata access.

Notes:
 * The metadata service is never spoken to directly. Every lookup goes
   through the image's metadata helper command, which prints the value on
   stdout and exits with a curl exit code on failure.
 * A missing attribute and an unreachable service both look like a failed
   command. Callers asking for optional attributes use
   get_metadata_attribute with a default.
"""

import logging
import time
from typing import Optional

from firstboot import subp

LOG = logging.getLogger(__name__)

DEFAULT_COMMAND = "/usr/share/google/get_metadata_value"

# Key polled while waiting for the service. It is also the instance id.
CONNECTIVITY_KEY = "id"

# curl exit codes the metadata helper passes through
CURL_COULDNT_RESOLVE_HOST = 6
CURL_COULDNT_CONNECT = 7
CURL_HTTP_RETURNED_ERROR = 22

EXIT_CODE_REASONS = {
    CURL_COULDNT_RESOLVE_HOST: "Failed to resolve host",
    CURL_COULDNT_CONNECT: "Failed to connect to host",
    CURL_HTTP_RETURNED_ERROR: "Metadata server returned an HTTP error",
}


class MetadataError(Exception):
    def __init__(self, key, exit_code=None, stderr=None):
        self.key = key
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(
            "Failed to read metadata key %r (exit code %s)" % (key, exit_code)
        )

    @property
    def reason(self) -> str:
        return EXIT_CODE_REASONS.get(
            self.exit_code, "Unable to obtain metadata server connection"
        )


def get_metadata_value(
    key: str, *, command: str = DEFAULT_COMMAND, tries: Optional[int] = None
) -> str:
    """Return the value stored at key, with trailing newlines removed.

    :param tries: Exported as MDS_TRIES so the helper can retry on its own.
    :raises MetadataError: if the helper fails or cannot be executed.
    """
    update_env = {"MDS_TRIES": str(tries)} if tries is not None else None
    try:
        out, _err = subp.subp([command, key], update_env=update_env)
    except subp.ProcessExecutionError as e:
        exit_code = e.exit_code if isinstance(e.exit_code, int) else None
        raise MetadataError(key, exit_code=exit_code, stderr=e.stderr) from e
    return out.rstrip("\n")


def get_metadata_attribute(
    name: str, default=None, *, command: str = DEFAULT_COMMAND
) -> Optional[str]:
    """Return instance attribute name, or default when it is not set."""
    try:
        return get_metadata_value("attributes/%s" % name, command=command)
    except MetadataError as e:
        LOG.debug("Metadata attribute %s is not available: %s", name, e)
        return default


def wait_for_metadata(
    *,
    command: str = DEFAULT_COMMAND,
    max_wait: Optional[float] = None,
    sleep_time: float = 1,
) -> bool:
    """Block until the metadata service answers.

    :param max_wait: Seconds to keep trying, None keeps trying forever.
    :return: True once the service answered, False if max_wait elapsed.
    """
    LOG.info("Checking for metadata server connection.")
    start_time = time.monotonic()
    tries = 0
    while True:
        tries += 1
        try:
            get_metadata_value(CONNECTIVITY_KEY, command=command, tries=tries)
        except MetadataError as e:
            LOG.warning("%s. Retrying (attempt %s).", e.reason, tries)
        else:
            LOG.info("Metadata server connection established.")
            return True

        elapsed = time.monotonic() - start_time
        if max_wait is not None and elapsed + sleep_time > max_wait:
            LOG.error(
                "Giving up on metadata server after %s attempts (%d seconds)",
                tries,
                int(elapsed),
            )
            return False
        time.sleep(sleep_time)
