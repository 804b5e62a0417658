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

import logging

import mock
import pytest


@pytest.fixture(scope="session", autouse=True)
def default_session_fixture(request):
    """
    Make sure that any attempt to run a real barman-cloud command results
    in an error

    :type request: _pytest.python.SubRequest
    :return:
    """
    logging.info("Patching cloudrestore.command_wrappers.subprocess.Popen")
    popen_patch = mock.patch("cloudrestore.command_wrappers.subprocess.Popen")
    popen_mock = popen_patch.__enter__()
    popen_mock.side_effect = OSError("no external process allowed in tests")

    def unpatch():
        popen_patch.__exit__(None, None, None)
        logging.info("Unpatching cloudrestore.command_wrappers.subprocess.Popen")

    request.addfinalizer(unpatch)
