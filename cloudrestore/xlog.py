# -*- coding: utf-8 -*-
# © Copyright EnterpriseDB UK Limited 2024-2025
#
# This file is part of cloudrestore.
#
# cloudrestore is free software: you can redistribute it and/or modify
# it under the terms of the GNU General Public License as published by
# the Free Software Foundation, either version 3 of the License, or
# (at your option) any later version.
#
# cloudrestore is distributed in the hope that it will be useful,
# but WITHOUT ANY WARRANTY; without even the implied warranty of
# MERCHANTABILITY or FITNESS FOR A PARTICULAR PURPOSE.  See the
# GNU General Public License for more details.
#
# You should have received a copy of the GNU General Public License
# along with cloudrestore.  If not, see <http://www.gnu.org/licenses/>.

"""
This module contains functions to parse WAL file names and LSNs
"""

import os
import re

# WAL segment name parser: timeline, log and segment as 8 hex digits each
_wal_segment_re = re.compile(r"^([\dA-Fa-f]{8})([\dA-Fa-f]{8})([\dA-Fa-f]{8})$")

# LSN parser, formatted as %X/%X
_lsn_re = re.compile(r"^([\dA-Fa-f]{1,8})/([\dA-Fa-f]{1,8})$")


def is_wal_file(path):
    """
    Return True if the path names a regular WAL segment, False for
    .backup, .history, .partial files and anything else.

    It supports either a full file path or a simple file name.

    :param str path: the file name to test
    :rtype: bool
    """
    return _wal_segment_re.match(os.path.basename(path)) is not None


def decode_segment_timeline(path):
    """
    Return the timeline of a WAL segment

    :param str path: the WAL segment name
    :rtype: int
    :raise ValueError: if the name is not a WAL segment
    """
    match = _wal_segment_re.match(os.path.basename(path))
    if not match:
        raise ValueError("Invalid WAL segment name: %s" % path)
    return int(match.group(1), 16)


def parse_lsn(lsn_string):
    """
    Transform a string XLOG location, formatted as %X/%X, in the corresponding
    numeric representation

    :param str lsn_string: the string XLOG location, i.e. '2/82000168'
    :rtype: int
    :raise ValueError: if the string is not a valid LSN
    """
    match = _lsn_re.match(lsn_string or "")
    if not match:
        raise ValueError("Invalid LSN: %s" % lsn_string)

    return (int(match.group(1), 16) << 32) + int(match.group(2), 16)
