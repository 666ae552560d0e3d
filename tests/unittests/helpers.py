# This file is part of firstboot. See LICENSE file for license information.

import contextlib

from firstboot import settings, util


@contextlib.contextmanager
def does_not_raise():
    """Context manager to parametrize tests raising and not raising exceptions

    Note: In python-3.7+, this can be substituted by contextlib.nullcontext
    More info:
    https://docs.pytest.org/en/6.2.x/example/parametrize.html?highlight=does_not_raise#parametrizing-conditional-raising

    Example:
    --------
    >>> @pytest.mark.parametrize(
    >>>     "example_input,expectation",
    >>>     [
    >>>         (1, does_not_raise()),
    >>>         (-1, pytest.raises(ValueError)),
    >>>     ],
    >>> )
    >>> def test_division(
    >>>     example_input: int, expectation: ContextManager
    >>> ) -> None:
    >>>     with expectation:
    >>>         assert (0 / example_input) is not None

    """
    yield


def make_cfg(tmp_path, **overrides):
    """Builtin config with every path pointed below tmp_path."""
    cfg = util.mergemanydict(
        [
            overrides,
            {
                "log_file": str(tmp_path / "firstboot.log"),
                "console": str(tmp_path / "console"),
                "run_dir": str(tmp_path / "run"),
                "state_dir": str(tmp_path / "state"),
                "hooks": {
                    "first_boot": str(tmp_path / "first-boot"),
                    "irq_affinity": str(tmp_path / "irq-affinity"),
                },
                "download": {"retries": 2, "initial_delay": 0},
                "ssh": {"key_dir": str(tmp_path / "ssh")},
            },
            settings.BUILTIN_CFG,
        ]
    )
    return cfg
