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
Knowledge about the barman-cloud command line tools: the options they
need for each cloud provider and the meaning of their exit codes.
"""

import logging

LOGGING_FORMAT = "%(asctime)s [%(process)s] %(levelname)s: %(message)s"


class RestoreFailure(object):
    """
    Classification of the failures of a barman-cloud command
    """

    NOT_FOUND = "not-found"
    CONNECTIVITY = "connectivity"
    INVALID_ARGUMENTS = "invalid-arguments"
    GENERIC = "generic"

    # Exit codes documented by the barman-cloud tools
    EXIT_CODES = {
        1: NOT_FOUND,
        2: CONNECTIVITY,
        3: INVALID_ARGUMENTS,
        4: GENERIC,
    }

    @classmethod
    def from_exit_code(cls, exit_code):
        """
        Map the exit code of a barman-cloud command to a failure kind.

        Every exit code is mapped: the unknown ones are generic failures.

        :param int exit_code: the exit code of the process
        :rtype: str
        """
        return cls.EXIT_CODES.get(exit_code, cls.GENERIC)


def append_cloud_provider_options(options, configuration):
    """
    Append to a barman-cloud argument list the options selecting the
    cloud provider described by the credentials of an object store.

    :param list[str] options: the arguments built so far
    :param cloudrestore.config.StoreConfiguration configuration: the store
    :return list[str]: a new list of arguments
    """
    options = list(options)
    credentials = configuration.credentials
    if credentials is None:
        return options

    if credentials.aws is not None:
        options.extend(["--cloud-provider", "aws-s3"])
    elif credentials.azure is not None:
        options.extend(["--cloud-provider", "azure-blob-storage"])
        if credentials.azure.use_default_azure_credentials:
            options.extend(["--credential", "default"])
        elif credentials.azure.inherit_from_azure_ad:
            options.extend(["--credential", "managed-identity"])
    elif credentials.google is not None:
        options.extend(["--cloud-provider", "google-cloud-storage"])
    return options


def endpoint_options(endpoint_url):
    """
    :param str|None endpoint_url: the custom endpoint of the object store
    :rtype: list[str]
    """
    if endpoint_url:
        return ["--endpoint-url", endpoint_url]
    return []


def backup_list_options(configuration, server_name):
    """
    Arguments of barman-cloud-backup-list producing a json catalog

    :param cloudrestore.config.StoreConfiguration configuration: the store
    :param str server_name: the server whose backups are listed
    :rtype: list[str]
    """
    options = ["--format", "json"] + endpoint_options(configuration.endpoint_url)
    options = append_cloud_provider_options(options, configuration)
    return options + [configuration.destination_path, server_name]


def restore_options(configuration, server_name, backup_id, recovery_dir):
    """
    Arguments of barman-cloud-restore. The tool is positional: the order
    of the arguments matters.

    :param cloudrestore.config.StoreConfiguration configuration: the store
    :param str server_name: the server owning the backup
    :param str backup_id: the backup to restore
    :param str recovery_dir: the directory receiving the backup
    :rtype: list[str]
    """
    options = endpoint_options(configuration.endpoint_url) + [
        configuration.destination_path,
        server_name,
        backup_id,
    ]
    options = append_cloud_provider_options(options, configuration)
    return options + [recovery_dir]


def wal_restore_options(configuration, server_name, wal_name, wal_dest):
    """
    Arguments of barman-cloud-wal-restore.

    ``wal_name`` and ``wal_dest`` can be the ``%f`` and ``%p``
    placeholders of PostgreSQL's restore_command.

    :param cloudrestore.config.StoreConfiguration configuration: the store
    :param str server_name: the server owning the WAL archive
    :param str wal_name: the WAL file to fetch
    :param str wal_dest: the path the WAL file is written to
    :rtype: list[str]
    """
    options = endpoint_options(configuration.endpoint_url) + [
        configuration.destination_path,
        server_name,
        wal_name,
    ]
    options = append_cloud_provider_options(options, configuration)
    return options + [wal_dest]


def check_wal_archive_options(configuration, server_name):
    """
    Arguments of barman-cloud-check-wal-archive

    :param cloudrestore.config.StoreConfiguration configuration: the store
    :param str server_name: the server which will archive its WALs
    :rtype: list[str]
    """
    options = append_cloud_provider_options(
        endpoint_options(configuration.endpoint_url), configuration
    )
    return options + [configuration.destination_path, server_name]


def configure_logging(config):
    """
    Get a nicer output from the Python logging package
    """
    verbosity = config.verbose - config.quiet
    # The restore job reports its progress at INFO level by default
    log_level = min(max(logging.INFO - verbosity * 10, logging.DEBUG), logging.CRITICAL)
    logging.basicConfig(format=LOGGING_FORMAT, level=log_level)
