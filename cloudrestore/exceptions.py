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


class CloudRestoreException(Exception):
    """
    The base class of all other cloudrestore exceptions
    """


class ConfigurationException(CloudRestoreException):
    """
    Base exception for all the Configuration errors
    """


class NotFoundException(CloudRestoreException):
    """
    Base exception for objects which cannot be found
    """


class CommandException(CloudRestoreException):
    """
    Base exception for all the errors related to
    the execution of a Command.
    """


class RecoverySourceNotSpecified(ConfigurationException):
    """
    The cluster does not declare an external recovery source
    """


class InvalidRecoveryTarget(ConfigurationException):
    """
    Exception for a recovery target which cannot be parsed
    """


class CredentialsException(ConfigurationException):
    """
    The credentials for the object store cannot be resolved
    """


class BackupNotFoundException(NotFoundException):
    """
    No backup in the catalog satisfies the request
    """


class ExternalClusterNotFoundException(NotFoundException):
    """
    The recovery source names an external cluster which doesn't exist
    """


class ObjectStoreNotFoundException(NotFoundException):
    """
    The ObjectStore referenced by the cluster doesn't exist
    """


class WalContinuityException(CloudRestoreException):
    """
    The first WAL file needed by the backup cannot be fetched from the archive
    """


class CommandFailedException(CommandException):
    """
    Exception representing a failed command
    """


class BackupListFailure(CommandFailedException):
    """
    The backup catalog cannot be listed from the object store.

    ``kind`` classifies the failure of barman-cloud-backup-list, when known.
    """

    def __init__(self, message, kind=None):
        super(BackupListFailure, self).__init__(message)
        self.kind = kind


class BackupRestoreFailure(CommandFailedException):
    """
    Classified failure of a barman-cloud command.

    The ``kind`` attribute holds one of the
    :class:`cloudrestore.cloud.RestoreFailure` values, ``exit_code``
    the raw exit status of the process.
    """

    def __init__(self, kind, exit_code, command=None):
        super(BackupRestoreFailure, self).__init__(kind, exit_code, command)
        self.kind = kind
        self.exit_code = exit_code
        self.command = command

    def __str__(self):
        return "%s failed with exit code %s (%s)" % (
            self.command or "command",
            self.exit_code,
            self.kind,
        )


class FsOperationFailed(CommandException):
    """
    Exception which represents a failed execution of a command on FS
    """


class UnsafeDestinationException(CloudRestoreException):
    """
    The WAL archive destination already contains WALs of another server
    """


class OperationCancelled(CloudRestoreException):
    """
    The operation was cancelled or its deadline expired
    """
