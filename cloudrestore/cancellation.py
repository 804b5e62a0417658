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
Cooperative cancellation for the blocking steps of a restore.

A :class:`Cancellation` is created once per restore attempt and passed
down to every step which may block: the commands polling the child
processes and the filesystem operations moving files around.
"""

import logging
import threading
import time

from cloudrestore.exceptions import OperationCancelled

_logger = logging.getLogger(__name__)


class Cancellation(object):
    """
    A cancellation flag with an optional deadline
    """

    def __init__(self, timeout=None):
        """
        :param float|None timeout: seconds after which the operation is
            considered expired. None means no deadline.
        """
        self._event = threading.Event()
        self._reason = None
        self.deadline = None
        if timeout is not None:
            self.deadline = time.monotonic() + timeout

    def cancel(self, reason="operation cancelled"):
        """
        Request the cancellation of the running operation

        :param str reason: the reason reported by :meth:`check`
        """
        if not self._event.is_set():
            _logger.info("Cancellation requested: %s", reason)
            self._reason = reason
            self._event.set()

    @property
    def expired(self):
        return self.deadline is not None and time.monotonic() >= self.deadline

    @property
    def cancelled(self):
        return self._event.is_set() or self.expired

    def check(self):
        """
        Raise OperationCancelled if the operation must stop

        :raise OperationCancelled: when cancelled or past the deadline
        """
        if self._event.is_set():
            raise OperationCancelled(self._reason)
        if self.expired:
            raise OperationCancelled("deadline exceeded")


def check_cancellation(cancellation):
    """
    Shortcut accepting a missing cancellation token

    :param Cancellation|None cancellation: the token, if any
    """
    if cancellation is not None:
        cancellation.check()
