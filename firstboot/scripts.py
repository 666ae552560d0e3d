# This file is part of firstboot. See LICENSE file for license information.
"""Fetch and run the user supplied startup and shutdown scripts."""

import logging
import os
import subprocess
from typing import Dict, Optional

from firstboot import metadata, storage, util

LOG = logging.getLogger(__name__)

SCRIPT_TYPES = ("startup", "shutdown")


class ScriptError(Exception):
    pass


def _script_path(script_type: str, run_dir: str) -> str:
    return os.path.join(run_dir, "%s-script" % script_type)


def fetch_script(script_type: str, dest: str, cfg: dict) -> Optional[str]:
    """Store the script_type script at dest.

    The <type>-script-url attribute takes precedence over the inline
    <type>-script attribute.

    :return: dest, or None if the instance has no such script.
    :raises ScriptError: if the script url could not be downloaded.
    """
    if script_type not in SCRIPT_TYPES:
        raise ValueError("Unknown script type: %s" % script_type)
    command = util.get_cfg_by_path(
        cfg, "metadata/command", metadata.DEFAULT_COMMAND
    )
    # a script left over from an earlier boot must never be run again
    util.del_file(dest)

    url = metadata.get_metadata_attribute(
        "%s-script-url" % script_type, command=command
    )
    if url:
        url = url.strip()
        LOG.info("Downloading %s script from %s", script_type, url)
        try:
            storage.download_with_retry(url, dest, cfg.get("download", {}))
        except storage.DownloadError as e:
            raise ScriptError(
                "Could not download %s script: %s" % (script_type, e)
            ) from e
        os.chmod(dest, 0o700)
        return dest

    content = metadata.get_metadata_attribute(
        "%s-script" % script_type, command=command
    )
    if content:
        LOG.info("Found %s script in metadata", script_type)
        util.write_file(dest, content, mode=0o700)
        return dest

    LOG.info("No %s script found in metadata.", script_type)
    return None


def run_script(
    path: str, script_type: str, env: Optional[Dict[str, str]] = None
) -> int:
    """Execute path, logging each line of its output.

    :return: The exit code of the script.
    """
    LOG.info("Running %s script %s", script_type, path)
    run_env = os.environ.copy()
    if env:
        run_env.update(env)
    try:
        proc = subprocess.Popen(
            [path],
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            stdin=subprocess.DEVNULL,
            env=run_env,
        )
    except OSError as e:
        raise ScriptError(
            "Could not execute %s script %s: %s" % (script_type, path, e)
        ) from e
    with proc.stdout:
        for line in iter(proc.stdout.readline, b""):
            LOG.info(
                "%s-script: %s",
                script_type,
                util.decode_binary(line).rstrip("\n"),
            )
    rc = proc.wait()
    if rc:
        LOG.warning("%s script %s exited with %s", script_type, path, rc)
    else:
        LOG.info("Finished running %s script %s", script_type, path)
    return rc


def run_scripts(
    script_type: str, cfg: dict, env: Optional[Dict[str, str]] = None
) -> Optional[int]:
    """Fetch and run the script_type script.

    :return: The script's exit code, None when there is no script.
    """
    dest = _script_path(script_type, cfg["run_dir"])
    path = fetch_script(script_type, dest, cfg)
    if path is None:
        return None
    return run_script(path, script_type, env=env)
