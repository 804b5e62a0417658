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

import errno
import os
from datetime import datetime

import mock
import pytest
from dateutil import tz

from cloudrestore import utils


# noinspection PyMethodMayBeStatic
class TestMkpath(object):
    @mock.patch("cloudrestore.utils.os")
    def test_path_exists(self, mock_os):
        mock_os.path.isdir.return_value = True
        utils.mkpath("/test/path")
        assert not mock_os.makedirs.called

    @mock.patch("cloudrestore.utils.os")
    def test_path_not_exists(self, mock_os):
        mock_os.path.isdir.return_value = False
        utils.mkpath("/test/path")
        mock_os.makedirs.assert_called_once_with("/test/path")


# noinspection PyMethodMayBeStatic
class TestWhich(object):
    def test_which(self, tmpdir):
        executable = tmpdir.join("barman-cloud-restore")
        executable.write("#!/bin/sh\n")
        executable.chmod(0o755)
        path = os.pathsep.join(["/nonexistent", tmpdir.strpath])
        assert utils.which("barman-cloud-restore", path) == executable.strpath

    def test_which_not_executable(self, tmpdir):
        tmpdir.join("barman-cloud-restore").write("#!/bin/sh\n")
        assert utils.which("barman-cloud-restore", tmpdir.strpath) is None

    def test_which_absolute_path(self, tmpdir):
        executable = tmpdir.join("tool")
        executable.write("")
        executable.chmod(0o755)
        assert utils.which(executable.strpath, "") == executable.strpath
        assert utils.which(tmpdir.join("missing").strpath, "") is None


# noinspection PyMethodMayBeStatic
class TestFsyncDir(object):
    def test_fsync_dir(self, tmpdir):
        utils.fsync_dir(tmpdir.strpath)

    @mock.patch("cloudrestore.utils.os.fsync")
    def test_fsync_dir_einval(self, fsync_mock, tmpdir):
        fsync_mock.side_effect = OSError(errno.EINVAL, "Invalid argument")
        utils.fsync_dir(tmpdir.strpath)

    @mock.patch("cloudrestore.utils.os.fsync")
    def test_fsync_dir_error(self, fsync_mock, tmpdir):
        fsync_mock.side_effect = OSError(errno.EIO, "I/O error")
        with pytest.raises(OSError):
            utils.fsync_dir(tmpdir.strpath)


# noinspection PyMethodMayBeStatic
class TestForceStr(object):
    def test_str(self):
        assert utils.force_str("text") == "text"

    def test_bytes(self):
        assert utils.force_str(b"caf\xc3\xa9") == "caf\xe9"
        assert utils.force_str(b"\xff") == "�"

    def test_exception(self):
        assert utils.force_str(ValueError("bad value")) == "bad value"


# noinspection PyMethodMayBeStatic
class TestLoadDatetimeTz(object):
    def test_naive_is_utc(self):
        assert utils.load_datetime_tz("2025-01-02 10:00:00") == datetime(
            2025, 1, 2, 10, 0, 0, tzinfo=tz.tzutc()
        )

    def test_aware(self):
        timestamp = utils.load_datetime_tz("2025-01-02T12:00:00+02:00")
        assert timestamp == datetime(2025, 1, 2, 10, 0, 0, tzinfo=tz.tzutc())
        assert timestamp.utcoffset().total_seconds() == 7200

    def test_invalid(self):
        with pytest.raises(ValueError):
            utils.load_datetime_tz("not a timestamp")


# noinspection PyMethodMayBeStatic
class TestRedactEnvironment(object):
    def test_redact(self):
        env = {
            "PATH": "/usr/bin",
            "AWS_ACCESS_KEY_ID": "AKIAEXAMPLE",
            "AWS_SECRET_ACCESS_KEY": "secret",
            "AWS_SESSION_TOKEN": "token",
            "AZURE_STORAGE_CONNECTION_STRING": "conn",
            "AZURE_STORAGE_SAS_TOKEN": "sas",
            "GOOGLE_APPLICATION_CREDENTIALS": "/controller/creds.json",
            "AWS_DEFAULT_REGION": "eu-west-1",
        }
        assert utils.redact_environment(env) == {
            "PATH": "/usr/bin",
            "AWS_ACCESS_KEY_ID": "*REDACTED*",
            "AWS_SECRET_ACCESS_KEY": "*REDACTED*",
            "AWS_SESSION_TOKEN": "*REDACTED*",
            "AZURE_STORAGE_CONNECTION_STRING": "*REDACTED*",
            "AZURE_STORAGE_SAS_TOKEN": "*REDACTED*",
            "GOOGLE_APPLICATION_CREDENTIALS": "*REDACTED*",
            "AWS_DEFAULT_REGION": "eu-west-1",
        }
        # The original is not modified
        assert env["AWS_SECRET_ACCESS_KEY"] == "secret"
