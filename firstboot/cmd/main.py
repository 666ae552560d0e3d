#!/usr/bin/env python3

# This file is part of firstboot. See LICENSE file for license information.
"""Prepare a freshly booted instance: metadata, hooks and user scripts."""
import argparse
import logging
import os
import sys

from firstboot import hooks, log, scripts, storage, version
from firstboot.stages import Init

LOG = logging.getLogger(__name__)
NAME = "firstboot"


def main_boot(name, args):
    init = Init()
    init.read_cfg(args.files)
    log.setup_logging(init.cfg, logging.DEBUG)
    LOG.info(
        "PID [%s] started %s v. %s",
        os.getpid(),
        name,
        version.version_string(),
    )
    failures = init.run()
    if failures:
        LOG.error("Boot finished with failed steps: %s", ", ".join(failures))
        return 1
    LOG.info("Boot finished")
    return 0


def main_run_scripts(name, args):
    init = Init()
    init.read_cfg(args.files)
    log.setup_logging(init.cfg, logging.DEBUG)
    try:
        rc = scripts.run_scripts(args.script_type, init.cfg)
    except scripts.ScriptError:
        LOG.exception("Failed to run %s script", args.script_type)
        return 1
    return 1 if rc else 0


def main_download(name, args):
    init = Init()
    init.read_cfg(args.files)
    try:
        storage.download_with_retry(
            args.url, args.dest, init.cfg.get("download", {})
        )
    except storage.DownloadError as e:
        LOG.error("%s", e)
        return 1
    return 0


def main_classify(name, args):
    obj = storage.classify_url(args.url)
    if obj is None:
        print("not a storage url")
    else:
        print(obj.gs_url)
    return 0


def main_fingerprints(name, args):
    init = Init()
    init.read_cfg(args.files)
    hooks.log_ssh_host_key_fingerprints(init.cfg)
    return 0


def get_parser(parser=None):
    """
    Build or extend an arg parser for the firstboot utility.

    :param parser: Optional existing ArgumentParser instance.
    :return: ArgumentParser with proper argument configuration.
    """
    if not parser:
        parser = argparse.ArgumentParser(prog=NAME, description=__doc__)

    parser.add_argument(
        "--version",
        "-v",
        action="version",
        version="%(prog)s " + version.version_string(),
        help="Show program's version number and exit.",
    )
    parser.add_argument(
        "--debug",
        "-d",
        action="store_true",
        help="Show additional pre-action logging (default: %(default)s).",
        default=False,
    )
    parser.add_argument(
        "--file",
        "-f",
        action="append",
        dest="files",
        default=[],
        help="Use additional yaml configuration files.",
    )

    subparsers = parser.add_subparsers(title="Subcommands", dest="subcommand")
    subparsers.required = True

    parser_boot = subparsers.add_parser(
        "boot", help="Run every boot step (called by the init system)."
    )
    parser_boot.set_defaults(action=("boot", main_boot))

    parser_scripts = subparsers.add_parser(
        "run-scripts", help="Fetch and run the startup or shutdown script."
    )
    parser_scripts.add_argument(
        "script_type",
        choices=scripts.SCRIPT_TYPES,
        help="Which script to run.",
    )
    parser_scripts.set_defaults(action=("run-scripts", main_run_scripts))

    parser_download = subparsers.add_parser(
        "download", help="Download a url, preferring the storage client."
    )
    parser_download.add_argument("url", help="Url to download.")
    parser_download.add_argument("dest", help="Destination file path.")
    parser_download.set_defaults(action=("download", main_download))

    parser_classify = subparsers.add_parser(
        "classify", help="Print the gs:// form of a storage url."
    )
    parser_classify.add_argument("url", help="Url to classify.")
    parser_classify.set_defaults(action=("classify", main_classify))

    parser_fingerprints = subparsers.add_parser(
        "fingerprints", help="Log SSH host key fingerprints."
    )
    parser_fingerprints.set_defaults(
        action=("fingerprints", main_fingerprints)
    )

    return parser


def sub_main(args):
    (name, functor) = args.action

    # the boot-time subcommands install their own handlers from config
    if name not in ("boot", "run-scripts"):
        log.setup_basic_logging(
            logging.DEBUG if args.debug else logging.INFO
        )
    elif args.debug:
        log.setup_basic_logging()

    try:
        return functor(name, args)
    except Exception:
        LOG.exception("Received fatal exception running %s!", name)
        return 1


def main(sysv_args=None):
    if sysv_args is None:
        sysv_args = sys.argv[1:]
    args = get_parser().parse_args(sysv_args)
    return sub_main(args)


if __name__ == "__main__":
    sys.exit(main())
