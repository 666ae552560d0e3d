# This file is part of firstboot. See LICENSE file for license information.

import logging
import os
from typing import Callable, List, Optional, Tuple

from firstboot import hooks, metadata, scripts, settings, util

LOG = logging.getLogger(__name__)

NO_PREVIOUS_INSTANCE_ID = "NO_PREVIOUS_INSTANCE_ID"


class Init:
    """One boot of the instance, from reading config to diagnostics."""

    def __init__(
        self,
        cfg_file: str = settings.CFG_FILE,
        cfg_dir: str = settings.CFG_DIR,
    ):
        self.cfg_file = cfg_file
        self.cfg_dir = cfg_dir
        self._cfg: Optional[dict] = None
        self._instance_id: Optional[str] = None
        self._previous_iid: Optional[str] = None

    @property
    def cfg(self) -> dict:
        if self._cfg is None:
            self._cfg = self._read_cfg([])
        return self._cfg

    def read_cfg(self, extra_fns=None) -> dict:
        self._cfg = self._read_cfg(extra_fns or [])
        return self._cfg

    def _read_cfg(self, extra_fns) -> dict:
        # Earliest source wins: command line files, drop-ins, main file.
        cfgs = [util.read_conf(fn) for fn in extra_fns]
        if os.path.isdir(self.cfg_dir):
            cfgs.append(util.read_conf_d(self.cfg_dir))
        if os.path.isfile(self.cfg_file):
            cfgs.append(util.read_conf(self.cfg_file))
        cfgs.append(settings.BUILTIN_CFG)
        return util.mergemanydict(cfgs)

    @property
    def metadata_command(self) -> str:
        return util.get_cfg_by_path(
            self.cfg, "metadata/command", metadata.DEFAULT_COMMAND
        )

    @property
    def instance_id(self) -> str:
        if self._instance_id is None:
            self._instance_id = metadata.get_metadata_value(
                "id", command=self.metadata_command
            )
        return self._instance_id

    def wait_for_metadata(self) -> bool:
        return metadata.wait_for_metadata(
            command=self.metadata_command,
            max_wait=util.get_cfg_by_path(self.cfg, "metadata/max_wait"),
            sleep_time=util.get_cfg_by_path(
                self.cfg, "metadata/sleep_time", 1
            ),
        )

    def _iid_file(self) -> str:
        return os.path.join(self.cfg["state_dir"], "instance-id")

    def previous_iid(self) -> str:
        if self._previous_iid is not None:
            return self._previous_iid

        try:
            self._previous_iid = util.load_file(self._iid_file()).strip()
        except OSError:
            self._previous_iid = NO_PREVIOUS_INSTANCE_ID

        LOG.debug("previous iid found to be %s", self._previous_iid)
        return self._previous_iid

    def is_new_instance(self) -> bool:
        """Return true if this is the first boot of this instance id."""
        previous = self.previous_iid()
        return (
            previous == NO_PREVIOUS_INSTANCE_ID
            or previous != self.instance_id
        )

    def record_instance_id(self) -> None:
        util.write_file(self._iid_file(), "%s\n" % self.instance_id)

    def write_environment(self) -> str:
        """Export the instance id for scripts run later in boot."""
        env_file = os.path.join(self.cfg["run_dir"], "instance.sh")
        util.write_file(env_file, "INSTANCE_ID=%s\n" % self.instance_id)
        return env_file

    def _first_boot(self):
        hooks.run_first_boot(self.cfg, self.instance_id)

    def _irq_affinity(self):
        hooks.run_irq_affinity(self.cfg)

    def _startup_script(self):
        rc = scripts.run_scripts(
            "startup", self.cfg, env={"INSTANCE_ID": self.instance_id}
        )
        if rc:
            raise scripts.ScriptError("startup script exited with %s" % rc)

    def _fingerprints(self):
        hooks.log_ssh_host_key_fingerprints(self.cfg)

    def boot_steps(self) -> List[Tuple[str, Callable[[], None]]]:
        return [
            ("environment", self.write_environment),
            ("record-instance-id", self.record_instance_id),
            ("first-boot", self._first_boot),
            ("irq-affinity", self._irq_affinity),
            ("startup-script", self._startup_script),
            ("ssh-fingerprints", self._fingerprints),
        ]

    def run(self) -> List[str]:
        """Perform every boot step.

        A failing step does not stop later steps.

        :return: Names of the steps that failed.
        """
        if not self.wait_for_metadata():
            return ["metadata"]

        try:
            instance_id = self.instance_id
        except metadata.MetadataError:
            util.logexc(LOG, "Failed to read the instance id")
            return ["instance-id"]
        if self.is_new_instance():
            LOG.info("First boot of instance %s", instance_id)

        failures = []
        for name, step in self.boot_steps():
            LOG.debug("Running boot step %s", name)
            try:
                step()
            except Exception:
                util.logexc(LOG, "Boot step %s failed", name)
                failures.append(name)
        return failures
