# This file is part of firstboot. See LICENSE file for license information.

import pytest

from tests.unittests.helpers import make_cfg


@pytest.fixture
def cfg(tmp_path):
    return make_cfg(tmp_path)


@pytest.fixture(autouse=True)
def no_sleep(mocker):
    """Never actually sleep while retrying."""
    return mocker.patch("time.sleep")


@pytest.fixture
def write_exe(tmp_path):
    def _write_exe(path, content):
        path.write_text(content)
        path.chmod(0o755)
        return str(path)

    return _write_exe
