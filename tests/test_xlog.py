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

import pytest

from cloudrestore import xlog


# noinspection PyMethodMayBeStatic
class TestXlog(object):
    @pytest.mark.parametrize(
        ("path", "expected"),
        [
            ("000000010000000000000002", True),
            ("/pgdata/pg_wal/00000001000000000000000A", True),
            ("00000001000000000000000A.partial", False),
            ("000000010000000000000002.00000028.backup", False),
            ("00000002.history", False),
            ("00000001000000000000000", False),
            ("", False),
        ],
    )
    def test_is_wal_file(self, path, expected):
        assert xlog.is_wal_file(path) is expected

    def test_decode_segment_timeline(self):
        assert xlog.decode_segment_timeline("0000000A0000000000000002") == 10
        with pytest.raises(ValueError):
            xlog.decode_segment_timeline("00000002.history")

    @pytest.mark.parametrize(
        ("lsn", "expected"),
        [
            ("0/0", 0),
            ("0/2000028", 0x2000028),
            ("2/82000168", (2 << 32) + 0x82000168),
            ("FFFFFFFF/FFFFFFFF", (0xFFFFFFFF << 32) + 0xFFFFFFFF),
        ],
    )
    def test_parse_lsn(self, lsn, expected):
        assert xlog.parse_lsn(lsn) == expected

    @pytest.mark.parametrize("lsn", [None, "", "0/", "12345", "G/0", "1/123456789"])
    def test_parse_lsn_invalid(self, lsn):
        with pytest.raises(ValueError):
            xlog.parse_lsn(lsn)
