# This file is part of firstboot. See LICENSE file for license information.

import copy
import glob
import logging
import os
from typing import Any, Dict, List, Optional, Union

import yaml

LOG = logging.getLogger(__name__)


def decode_binary(blob: Union[str, bytes], encoding="utf-8") -> str:
    # Converts a binary type into a text type using given encoding.
    if isinstance(blob, str):
        return blob
    return blob.decode(encoding, errors="replace")


def encode_text(text: Union[str, bytes], encoding="utf-8") -> bytes:
    # Converts a text string into a binary type using given encoding.
    if isinstance(text, bytes):
        return text
    return text.encode(encoding)


def load_file(fname: str, quiet: bool = False) -> str:
    LOG.debug("Reading from %s (quiet=%s)", fname, quiet)
    try:
        with open(fname, "rb") as ifh:
            contents = ifh.read()
    except FileNotFoundError:
        if not quiet:
            raise
        return ""
    LOG.debug("Read %s bytes from %s", len(contents), fname)
    return decode_binary(contents)


def ensure_dir(path: str, mode: Optional[int] = None) -> None:
    if not os.path.isdir(path):
        os.makedirs(path)
    if mode is not None:
        os.chmod(path, mode)


def write_file(
    filename: str,
    content: Union[str, bytes],
    mode: int = 0o644,
    omode: str = "wb",
) -> None:
    """
    Writes a file with the given content and sets the file mode as specified.

    @param filename: The full path of the file to write.
    @param content: The content to write to the file.
    @param mode: The filesystem mode to set on the file.
    @param omode: The open mode used when opening the file (w, wb, a, etc.)
    """
    ensure_dir(os.path.dirname(filename))
    if "b" in omode.lower():
        content = encode_text(content)
        write_type = "bytes"
    else:
        content = decode_binary(content)
        write_type = "characters"
    LOG.debug(
        "Writing to %s - %s: [%s] %s %s",
        filename,
        omode,
        "%o" % mode,
        len(content),
        write_type,
    )
    with open(filename, omode) as fh:
        fh.write(content)
        fh.flush()
    os.chmod(filename, mode)


def del_file(path: str) -> None:
    LOG.debug("Attempting to remove %s", path)
    try:
        os.unlink(path)
    except FileNotFoundError:
        pass


def is_exe(fpath: str) -> bool:
    # return boolean indicating if fpath exists and is executable.
    return os.path.isfile(fpath) and os.access(fpath, os.X_OK)


def read_conf(fname: str) -> Dict[str, Any]:
    """Load a YAML config file, an empty file yields an empty dict."""
    cfg = yaml.safe_load(load_file(fname))
    if cfg is None:
        return {}
    if not isinstance(cfg, dict):
        raise TypeError(
            "Config file %s must contain a mapping, found %s"
            % (fname, type(cfg).__name__)
        )
    return cfg


def read_conf_d(confd: str) -> Dict[str, Any]:
    """Merge every *.cfg file in confd, later files win."""
    confs = sorted(glob.glob(os.path.join(confd, "*.cfg")), reverse=True)
    cfgs = [read_conf(fn) for fn in confs if os.path.isfile(fn)]
    return mergemanydict(cfgs)


def mergemanydict(srcs: List[Dict[str, Any]], reverse=False) -> Dict:
    """Merge dicts, earlier sources take precedence over later ones.

    Nested dicts are merged recursively. Any other value found in an earlier
    source replaces the value from a later source.
    """
    if reverse:
        srcs = reversed(srcs)
    merged_cfg: Dict[str, Any] = {}
    for cfg in srcs:
        if cfg:
            merged_cfg = _merge_into(merged_cfg, cfg)
    return merged_cfg


def _merge_into(winner: Dict[str, Any], loser: Dict[str, Any]) -> Dict:
    for key, value in loser.items():
        if key not in winner:
            winner[key] = copy.deepcopy(value)
        elif isinstance(winner[key], dict) and isinstance(value, dict):
            winner[key] = _merge_into(winner[key], value)
    return winner


def get_cfg_by_path(yobj, keyp, default=None):
    """Return the value of the item at path C{keyp} in C{yobj}.

    example:
      get_cfg_by_path({'a': {'b': {'num': 4}}}, 'a/b/num') == 4
      get_cfg_by_path({'a': {'b': {'num': 4}}}, 'c/d') == None

    @param yobj: A dictionary.
    @param keyp: A path inside yobj.  it can be a '/' delimited string,
                 or an iterable.
    @param default: The default to return if the path does not exist.
    @return: The value of the item at keyp."
    is not found."""

    if isinstance(keyp, str):
        keyp = keyp.split("/")
    cur = yobj
    for tok in keyp:
        if not isinstance(cur, dict) or tok not in cur:
            return default
        cur = cur[tok]
    return cur


def logexc(
    log, msg, *args, log_level: int = logging.WARNING, exc_info=True
) -> None:
    """Log a message at log_level and the exception traceback at debug."""
    log.log(log_level, msg, *args)
    log.debug(msg, exc_info=exc_info, *args)


def write_to_console(text: str, console: str) -> bool:
    """Write text to the console device, returning False if unavailable."""
    if not console or not os.path.exists(console):
        return False
    try:
        with open(console, "w") as wfh:
            wfh.write(text)
            wfh.flush()
    except OSError as e:
        LOG.debug("Failed to write to console %s: %s", console, e)
        return False
    return True
