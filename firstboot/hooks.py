# This file is part of firstboot. See LICENSE file for license information.
"""Image hooks run during boot and the diagnostics logged afterwards."""

import logging
import os

from firstboot import subp, util

LOG = logging.getLogger(__name__)

FIRST_BOOT_MARKER = "first-boot"


def _marker_path(state_dir: str, instance_id: str) -> str:
    return os.path.join(state_dir, instance_id, FIRST_BOOT_MARKER)


def run_first_boot(cfg: dict, instance_id: str) -> bool:
    """Run the first-boot hook unless it already ran for instance_id.

    The marker is only written after the hook succeeded, so a failed hook
    is retried on the next boot.

    :return: True if the hook ran on this call.
    :raises ProcessExecutionError: if the hook fails.
    """
    hook = util.get_cfg_by_path(cfg, "hooks/first_boot")
    if not hook or not util.is_exe(hook):
        LOG.debug("Skipping first boot, no executable hook at %s", hook)
        return False

    marker = _marker_path(cfg["state_dir"], instance_id)
    if os.path.exists(marker):
        LOG.debug(
            "Skipping first boot, already ran for instance %s (%s)",
            instance_id,
            marker,
        )
        return False

    LOG.info("Running first boot hook %s", hook)
    subp.subp(
        [hook], capture=False, update_env={"INSTANCE_ID": instance_id}
    )
    util.write_file(marker, "%s\n" % instance_id)
    return True


def run_irq_affinity(cfg: dict) -> bool:
    """Spread virtio-net interrupts across cpus using the image's helper.

    Failures only affect network performance, so they are logged and
    reported through the return value.
    """
    helper = util.get_cfg_by_path(cfg, "hooks/irq_affinity")
    if not helper or not util.is_exe(helper):
        LOG.debug("Skipping IRQ affinity setup, no helper at %s", helper)
        return False
    LOG.info("Setting up network IRQ affinity using %s", helper)
    try:
        out, err = subp.subp([helper])
    except subp.ProcessExecutionError as e:
        util.logexc(LOG, "Failed to set up network IRQ affinity: %s", e)
        return False
    for line in (out + err).splitlines():
        LOG.info("irq-affinity: %s", line)
    return True


def get_ssh_host_key_fingerprint(pubkey: str) -> str:
    out, _err = subp.subp(["ssh-keygen", "-lf", pubkey])
    return out.strip()


def log_ssh_host_key_fingerprints(cfg: dict) -> dict:
    """Log the fingerprint of every configured SSH host key type.

    The fingerprints are also written to the console so they show up in
    the serial port output.

    :return: dict of key type to fingerprint for the keys found.
    """
    key_dir = util.get_cfg_by_path(cfg, "ssh/key_dir", "/etc/ssh")
    key_types = util.get_cfg_by_path(cfg, "ssh/key_types", [])
    lines = ["SSH public key fingerprints"]
    found = {}
    for key_type in key_types:
        pubkey = os.path.join(key_dir, "ssh_host_%s_key.pub" % key_type)
        if not os.path.exists(pubkey):
            lines.append("No %s public key found." % key_type.upper())
            continue
        try:
            fingerprint = get_ssh_host_key_fingerprint(pubkey)
        except subp.ProcessExecutionError as e:
            util.logexc(LOG, "Failed to fingerprint %s: %s", pubkey, e)
            continue
        found[key_type] = fingerprint
        lines.append("%s public key" % key_type.upper())
        lines.append(fingerprint)

    for line in lines:
        LOG.info(line)
    util.write_to_console(
        "".join("%s\n" % line for line in lines), cfg.get("console")
    )
    return found
