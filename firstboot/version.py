# This file is part of firstboot. See LICENSE file for license information.

__VERSION__ = "1.4.0"


def version_string():
    """Extract a version string from firstboot."""
    return __VERSION__
