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
Backup catalog of a server stored in a barman-cloud object store, and the
logic choosing the backup to restore for a recovery target.
"""

import collections
import json
import logging

from cloudrestore import xlog
from cloudrestore.exceptions import (
    BackupListFailure,
    BackupNotFoundException,
    InvalidRecoveryTarget,
)
from cloudrestore.utils import force_str, load_datetime_tz

_logger = logging.getLogger(__name__)

#: Status of a backup which completed successfully
DONE = "DONE"

#: Timeline keywords which don't restrict the choice of the backup
_ANY_TIMELINE = ("", "latest", "current")

_BackupDescriptorBase = collections.namedtuple(
    "_BackupDescriptorBase",
    "backup_id server_name backup_name begin_wal end_wal begin_lsn end_lsn "
    "begin_time end_time timeline status error",
)


class BackupDescriptor(_BackupDescriptorBase):
    """
    Immutable description of a backup available in the object store
    """

    __slots__ = ()

    def __new__(
        cls,
        backup_id,
        server_name=None,
        backup_name=None,
        begin_wal=None,
        end_wal=None,
        begin_lsn=None,
        end_lsn=None,
        begin_time=None,
        end_time=None,
        timeline=None,
        status=DONE,
        error=None,
    ):
        return super(BackupDescriptor, cls).__new__(
            cls,
            backup_id,
            server_name,
            backup_name,
            begin_wal,
            end_wal,
            begin_lsn,
            end_lsn,
            begin_time,
            end_time,
            timeline,
            status,
            error,
        )

    @property
    def is_completed(self):
        """
        True when the backup can be used as a recovery starting point
        """
        return (
            self.begin_time is not None
            and self.end_time is not None
            and self.status == DONE
        )

    @classmethod
    def from_json(cls, data):
        """
        Factory method that builds a BackupDescriptor from an item of the
        ``backups_list`` produced by ``barman-cloud-backup-list --format json``

        The ``*_iso`` timestamps are preferred, the ctime ones being
        kept by barman only for compatibility.

        :param dict data: the json document of a single backup
        :rtype: BackupDescriptor
        """
        times = {}
        for field in ("begin_time", "end_time"):
            value = data.get(field + "_iso") or data.get(field)
            times[field] = load_datetime_tz(value) if value else None
        timeline = data.get("timeline")
        if timeline is None and xlog.is_wal_file(data.get("begin_wal") or ""):
            timeline = xlog.decode_segment_timeline(data["begin_wal"])
        return cls(
            backup_id=data["backup_id"],
            server_name=data.get("server_name"),
            backup_name=data.get("backup_name"),
            begin_wal=data.get("begin_wal"),
            end_wal=data.get("end_wal"),
            begin_lsn=data.get("begin_xlog"),
            end_lsn=data.get("end_xlog"),
            begin_time=times["begin_time"],
            end_time=times["end_time"],
            timeline=int(timeline) if timeline is not None else None,
            status=data.get("status", DONE),
            error=data.get("error"),
        )


class RecoveryTarget(object):
    """
    The point where the recovery of a cluster should stop
    """

    def __init__(
        self,
        backup_id=None,
        target_time=None,
        target_lsn=None,
        target_name=None,
        target_xid=None,
        target_immediate=False,
        target_tli=None,
        exclusive=None,
    ):
        self.backup_id = backup_id
        self.target_time = target_time
        self.target_lsn = target_lsn
        self.target_name = target_name
        self.target_xid = target_xid
        self.target_immediate = target_immediate
        self.target_tli = target_tli
        self.exclusive = exclusive

    @classmethod
    def from_json(cls, data):
        """
        Build a RecoveryTarget from the ``recoveryTarget`` stanza of a
        cluster definition

        :param dict|None data: the json document
        :rtype: RecoveryTarget|None
        """
        if not data:
            return None
        target_tli = data.get("targetTLI")
        return cls(
            backup_id=data.get("backupID") or None,
            target_time=data.get("targetTime") or None,
            target_lsn=data.get("targetLSN") or None,
            target_name=data.get("targetName") or None,
            target_xid=data.get("targetXID") or None,
            target_immediate=bool(data.get("targetImmediate", False)),
            target_tli=str(target_tli) if target_tli is not None else None,
            exclusive=data.get("exclusive"),
        )

    def parse_target_tli(self):
        """
        Parse the target timeline

        :return int|None: the timeline the backup must belong to,
            None when any timeline is acceptable
        :raise InvalidRecoveryTarget: if the value is not valid
        """
        if self.target_tli is None or self.target_tli.strip() in _ANY_TIMELINE:
            return None
        if self.target_tli.strip().isdigit():
            return int(self.target_tli)
        raise InvalidRecoveryTarget(
            "'%s' is not a valid timeline keyword" % self.target_tli
        )

    def parse_target_time(self):
        """
        :return datetime.datetime: the timezone-aware target time
        :raise InvalidRecoveryTarget: if the value cannot be parsed
        """
        try:
            return load_datetime_tz(self.target_time)
        except (ValueError, OverflowError) as e:
            raise InvalidRecoveryTarget(
                "Unable to parse the target time parameter %r: %s"
                % (self.target_time, force_str(e))
            )

    def parse_target_lsn(self):
        """
        :return int: the numeric target LSN
        :raise InvalidRecoveryTarget: if the value cannot be parsed
        """
        try:
            return xlog.parse_lsn(self.target_lsn)
        except ValueError as e:
            raise InvalidRecoveryTarget(
                "Unable to parse the target LSN parameter %r: %s"
                % (self.target_lsn, force_str(e))
            )


class BackupCatalog(object):
    """
    The backups of a server, keyed by backup ID
    """

    def __init__(self, backups=()):
        """
        :param collections.abc.Iterable[BackupDescriptor] backups:
        """
        self._backups = dict((backup.backup_id, backup) for backup in backups)

    def __len__(self):
        return len(self._backups)

    def __iter__(self):
        return iter(self._backups.values())

    def __contains__(self, backup_id):
        return backup_id in self._backups

    def get_backup(self, backup_id):
        """
        :param str backup_id: the ID of the backup
        :rtype: BackupDescriptor|None
        """
        return self._backups.get(backup_id)

    @classmethod
    def from_json(cls, document):
        """
        Parse the output of ``barman-cloud-backup-list --format json``

        :param str document: the json text
        :rtype: BackupCatalog
        :raise BackupListFailure: if the document cannot be parsed
        """
        try:
            data = json.loads(document)
            return cls(
                BackupDescriptor.from_json(item)
                for item in data.get("backups_list", [])
            )
        except (ValueError, KeyError, TypeError, AttributeError) as e:
            raise BackupListFailure(
                "Unable to parse the backup list: %s" % force_str(e)
            )

    def _candidates(self, timeline=None):
        """
        Completed backups from the most recent to the oldest one.

        Backups are sorted by end time and, for equal end times, by
        backup ID.

        :param int|None timeline: restrict the result to this timeline
        :rtype: list[BackupDescriptor]
        """
        return sorted(
            (
                backup
                for backup in self._backups.values()
                if backup.is_completed
                and (timeline is None or backup.timeline == timeline)
            ),
            key=lambda backup: (backup.end_time, backup.backup_id),
            reverse=True,
        )

    def latest_backup(self, timeline=None):
        """
        The completed backup with the latest end time

        :param int|None timeline: restrict the search to this timeline
        :rtype: BackupDescriptor|None
        """
        candidates = self._candidates(timeline)
        return candidates[0] if candidates else None

    def find_backup(self, recovery_target):
        """
        Find the most recent completed backup which can be used to reach
        the recovery target.

        :param RecoveryTarget recovery_target: the recovery target
        :rtype: BackupDescriptor|None
        :raise InvalidRecoveryTarget: if the target cannot be parsed
        """
        # A backup chosen by the user always wins
        if recovery_target.backup_id:
            return self.get_backup(recovery_target.backup_id)

        timeline = recovery_target.parse_target_tli()

        if recovery_target.target_time:
            target_time = recovery_target.parse_target_time()
            for backup in self._candidates(timeline):
                if backup.end_time <= target_time:
                    return backup
            return None

        if recovery_target.target_lsn:
            target_lsn = recovery_target.parse_target_lsn()
            for backup in self._candidates(timeline):
                if not backup.end_lsn:
                    continue
                try:
                    end_lsn = xlog.parse_lsn(backup.end_lsn)
                except ValueError:
                    _logger.warning(
                        "Skipping backup %s: invalid end LSN %r",
                        backup.backup_id,
                        backup.end_lsn,
                    )
                    continue
                if end_lsn <= target_lsn:
                    return backup
            return None

        # Restore points, transaction IDs and the immediate target can't be
        # matched against the backup metadata: the replay will reach them
        # starting from the latest backup
        return self.latest_backup(timeline)


def select_backup(catalog, recovery_target=None):
    """
    Choose the backup to restore.

    :param BackupCatalog catalog: the available backups
    :param RecoveryTarget|None recovery_target: the recovery target, None
        to restore the latest backup
    :rtype: BackupDescriptor
    :raise BackupNotFoundException: if no backup satisfies the request
    :raise InvalidRecoveryTarget: if the target cannot be parsed
    """
    if recovery_target is None:
        backup = catalog.latest_backup()
    else:
        backup = catalog.find_backup(recovery_target)

    if backup is None:
        if len(catalog) == 0:
            raise BackupNotFoundException("no backup found in the catalog")
        raise BackupNotFoundException("no target backup found")
    if recovery_target is not None and recovery_target.backup_id:
        if not backup.is_completed:
            raise BackupNotFoundException(
                "backup %s is not completed (status: %s)"
                % (backup.backup_id, backup.status)
            )
    return backup
