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
The restore job hooks: bootstrap the data directory of a cluster from a
backup stored in a barman-cloud object store.

The restore is a sequential pipeline:

1. check that the WAL archive destination of the new cluster is safe
2. choose the backup in the catalog of the recovery source
3. verify that the first WAL needed by the backup is in the archive
4. download the backup into PGDATA
5. move pg_wal to its dedicated volume, when there is one
6. build the configuration driving the WAL replay
"""

import logging
import os
import shlex
import types

from cloudrestore import xlog
from cloudrestore.catalog import BackupCatalog, select_backup
from cloudrestore.cloud import (
    RestoreFailure,
    backup_list_options,
    check_wal_archive_options,
    restore_options,
    wal_restore_options,
)
from cloudrestore.command_wrappers import (
    BarmanCloudBackupList,
    BarmanCloudCheckWalArchive,
    BarmanCloudRestore,
    BarmanCloudWalRestore,
)
from cloudrestore.credentials import env_set_cloud_credentials
from cloudrestore.exceptions import (
    BackupListFailure,
    BackupRestoreFailure,
    CommandFailedException,
    ConfigurationException,
    ExternalClusterNotFoundException,
    FsOperationFailed,
    RecoverySourceNotSpecified,
    UnsafeDestinationException,
    WalContinuityException,
)
from cloudrestore.fs import (
    ensure_parent_directory_exists,
    relocate_wal_directory,
    remove_file,
)
from cloudrestore.utils import force_str, redact_environment

_logger = logging.getLogger(__name__)

#: The only capability of the restore job hooks
RESTORE = "RESTORE"

#: Name of the file used to probe the presence of the first WAL
CONTINUITY_PROBE_FILE = "continuity-probe.wal"


class ResolvedBackup(object):
    """
    The backup chosen for the restore, together with the object store
    holding it
    """

    def __init__(self, descriptor, configuration, server_name):
        """
        :param cloudrestore.catalog.BackupDescriptor descriptor: the backup
        :param cloudrestore.config.StoreConfiguration configuration: the
            object store of the recovery source
        :param str server_name: the server name of the backup in the store
        """
        self.descriptor = descriptor
        self.configuration = configuration
        self.server_name = server_name

    @property
    def backup_id(self):
        return self.descriptor.backup_id

    @property
    def begin_wal(self):
        return self.descriptor.begin_wal

    def __repr__(self):
        return "ResolvedBackup(backup_id=%r, server_name=%r, destination_path=%r)" % (
            self.backup_id,
            self.server_name,
            self.configuration.destination_path,
        )


class RestoreResponse(object):
    """
    The result of a restore: the configuration to append to PostgreSQL's
    configuration and the environment the WAL replay must run with
    """

    def __init__(self, restore_config, envs):
        self.restore_config = restore_config
        self.envs = envs


def get_backup_catalog(configuration, server_name, env, cancellation=None):
    """
    List the backups of a server stored in an object store

    :param cloudrestore.config.StoreConfiguration configuration: the store
    :param str server_name: the server whose backups are listed
    :param collections.abc.Mapping env: environment holding the credentials
    :param cloudrestore.cancellation.Cancellation|None cancellation:
    :rtype: cloudrestore.catalog.BackupCatalog
    :raise BackupListFailure: if the catalog cannot be read
    """
    cmd = BarmanCloudBackupList(env=env, cancellation=cancellation)
    out, err = cmd.get_output(*backup_list_options(configuration, server_name))
    if cmd.ret != 0:
        _logger.error("%s failed: %s", cmd.COMMAND, err)
        kind = RestoreFailure.from_exit_code(cmd.ret)
        raise BackupListFailure(
            "Unable to list the backups of server %s (%s, exit code %s)"
            % (server_name, kind, cmd.ret),
            kind,
        )
    return BackupCatalog.from_json(out)


def ensure_archive_continuity(backup, env, probe_path, cancellation=None):
    """
    Check that the first WAL file needed by the backup can be fetched
    from the archive, before anything is written in PGDATA.

    The fetched file is removed whatever the result of the check.

    :param ResolvedBackup backup: the chosen backup
    :param collections.abc.Mapping env: environment holding the credentials
    :param str probe_path: where the WAL file is temporarily downloaded
    :param cloudrestore.cancellation.Cancellation|None cancellation:
    :raise WalContinuityException: if the WAL file cannot be fetched
    """
    try:
        ensure_parent_directory_exists(probe_path)

        if not xlog.is_wal_file(backup.begin_wal or ""):
            raise WalContinuityException(
                "backup %s has an invalid begin WAL: %r"
                % (backup.backup_id, backup.begin_wal)
            )

        try:
            cmd = BarmanCloudWalRestore(env=env, cancellation=cancellation)
            ret = cmd.execute(
                *wal_restore_options(
                    backup.configuration,
                    backup.server_name,
                    backup.begin_wal,
                    probe_path,
                )
            )
        except CommandFailedException as e:
            raise WalContinuityException(
                "encountered an error while checking the presence of first "
                "needed WAL in the archive: %s" % force_str(e)
            ) from e

        if ret != 0:
            failure = BackupRestoreFailure(
                RestoreFailure.from_exit_code(ret), ret, cmd.COMMAND
            )
            raise WalContinuityException(
                "encountered an error while checking the presence of first "
                "needed WAL in the archive: WAL %s of server %s cannot be "
                "fetched (%s)" % (backup.begin_wal, backup.server_name, failure.kind)
            ) from failure
        _logger.info("First needed WAL %s found in the archive", backup.begin_wal)
    finally:
        try:
            remove_file(probe_path)
        except FsOperationFailed as e:
            _logger.error("while deleting the temporary wal file: %s", force_str(e))


def restore_data_dir(backup, env, pgdata, cancellation=None):
    """
    Download the backup into PGDATA using barman-cloud-restore.

    A failed restore can leave PGDATA partially populated.

    :param ResolvedBackup backup: the chosen backup
    :param collections.abc.Mapping env: environment holding the credentials
    :param str pgdata: the data directory
    :param cloudrestore.cancellation.Cancellation|None cancellation:
    :raise BackupRestoreFailure: if barman-cloud-restore fails
    """
    options = restore_options(
        backup.configuration, backup.server_name, backup.backup_id, pgdata
    )
    _logger.info("Starting %s with options %s", BarmanCloudRestore.COMMAND, options)

    cmd = BarmanCloudRestore(env=env, cancellation=cancellation)
    ret = cmd.execute(*options)
    if ret != 0:
        failure = BackupRestoreFailure(
            RestoreFailure.from_exit_code(ret), ret, cmd.COMMAND
        )
        _logger.error("Can't restore backup: %s", failure)
        raise failure
    _logger.info("Restore completed")


def get_restore_wal_config(backup):
    """
    Build the content to append to PostgreSQL's configuration, letting it
    complete the WAL recovery from the object store and then start as a
    new primary.

    :param ResolvedBackup backup: the restored backup
    :rtype: str
    """
    cmd = [BarmanCloudWalRestore.COMMAND] + wal_restore_options(
        backup.configuration, backup.server_name, "%f", "%p"
    )
    restore_command = " ".join(shlex.quote(arg) for arg in cmd)
    return (
        "recovery_target_action = promote\n"
        "restore_command = '%s'\n" % restore_command.replace("'", "''")
    )


def check_backup_destination(
    cluster, configuration, server_name, env, cancellation=None
):
    """
    Check that the WAL archive destination of the cluster doesn't hold
    the WALs of another server.

    :param cloudrestore.config.Cluster cluster: the cluster being restored
    :param cloudrestore.config.StoreConfiguration configuration: the object
        store the cluster will archive its WALs to
    :param str server_name: the server name the cluster will archive with
    :param collections.abc.Mapping env: environment holding the credentials
    :param cloudrestore.cancellation.Cancellation|None cancellation:
    :raise UnsafeDestinationException: if the destination is in use
    :raise BackupRestoreFailure: if the check cannot be completed
    """
    if not cluster.is_empty_wal_archive_check_enabled():
        _logger.info("WAL archive destination check disabled for %s", cluster.name)
        return

    cmd = BarmanCloudCheckWalArchive(env=env, cancellation=cancellation)
    ret = cmd.execute(*check_wal_archive_options(configuration, server_name))
    if ret == 1:
        raise UnsafeDestinationException(
            "WAL archive destination %s is already in use for server %s"
            % (configuration.destination_path, server_name)
        )
    if ret != 0:
        raise BackupRestoreFailure(RestoreFailure.from_exit_code(ret), ret, cmd.COMMAND)
    _logger.info(
        "WAL archive destination %s is safe for server %s",
        configuration.destination_path,
        server_name,
    )


def resolve_recovery_source(cluster):
    """
    Find the external cluster the restore starts from

    :param cloudrestore.config.Cluster cluster: the cluster being restored
    :return tuple[ExternalCluster,PluginParameters]: the recovery source
        and the parameters of its plugin
    :raise RecoverySourceNotSpecified: if the cluster has no recovery source
    :raise ExternalClusterNotFoundException: if the source doesn't exist
    :raise ConfigurationException: if the source isn't configured for
        this plugin
    """
    source_name = cluster.recovery_source
    if not source_name:
        raise RecoverySourceNotSpecified("recovery source not specified")

    server = cluster.external_cluster(source_name)
    if server is None:
        raise ExternalClusterNotFoundException(
            "missing external cluster: %s" % source_name
        )

    plugin = server.plugin_configuration
    if plugin is None or not plugin.is_barman_cloud:
        raise ConfigurationException(
            "external cluster %s is not configured for the barman-cloud plugin"
            % source_name
        )
    if not plugin.parameters.barman_object_name:
        raise ConfigurationException(
            "missing barmanObjectName parameter in external cluster %s" % source_name
        )
    return server, plugin.parameters


class RestoreJobHooks(object):
    """
    Implementation of the restore job hooks
    """

    def __init__(self, client, config, base_env=None):
        """
        :param cloudrestore.client.ControlPlaneClient client: access to the
            object stores and to the secrets
        :param cloudrestore.config.RestoreJobConfig config: the job config
        :param collections.abc.Mapping|None base_env: the environment the
            credentials are added to, defaults to the current one
        """
        self.client = client
        self.config = config
        if base_env is None:
            base_env = os.environ
        self.base_env = types.MappingProxyType(dict(base_env))

    def get_capabilities(self):
        """
        :rtype: list[str]
        """
        return [RESTORE]

    @property
    def continuity_probe_path(self):
        return os.path.join(
            self.config.recovery_temporary_directory, CONTINUITY_PROBE_FILE
        )

    def _credentials_env(self, cluster, configuration):
        return env_set_cloud_credentials(
            self.client,
            cluster.namespace,
            configuration,
            self.base_env,
            self.config.scratch_directory,
        )

    def restore(self, cluster, cancellation=None):
        """
        Restore the cluster from a backup

        The recovery source and its object store are resolved before the
        destination check, so a missing source fails first.

        :param cloudrestore.config.Cluster cluster: the cluster to restore
        :param cloudrestore.cancellation.Cancellation|None cancellation:
        :rtype: RestoreResponse
        """
        server, source_parameters = resolve_recovery_source(cluster)
        if cluster.wal_storage and not self.config.wal_volume:
            raise ConfigurationException(
                "The cluster has a WAL storage but no WAL volume has been configured"
            )

        recovery_object_store = self.client.get_object_store(
            cluster.namespace, source_parameters.barman_object_name
        )

        # Before starting the restore we check if the archive destination
        # is safe to use, otherwise we stop creating the cluster
        archive_plugin = cluster.archive_plugin()
        if archive_plugin is not None and archive_plugin.parameters.barman_object_name:
            target_object_store = self.client.get_object_store(
                cluster.namespace, archive_plugin.parameters.barman_object_name
            )
            self.check_destination(
                cluster,
                target_object_store.configuration,
                archive_plugin.parameters.server_name,
                cancellation,
            )

        backup, env = self.load_backup_from_external_cluster(
            cluster,
            server,
            source_parameters,
            recovery_object_store.configuration,
            cancellation,
        )

        ensure_archive_continuity(
            backup, env, self.continuity_probe_path, cancellation
        )

        restore_data_dir(backup, env, self.config.pgdata, cancellation)

        if cluster.wal_storage:
            self.restore_custom_wal_dir(cancellation)

        config = get_restore_wal_config(backup)

        _logger.info(
            "sending restore response, config: %r, env: %r",
            config,
            redact_environment(env),
        )
        return RestoreResponse(restore_config=config, envs=env)

    def check_destination(self, cluster, configuration, server_name, cancellation=None):
        """
        Run the WAL archive destination check for the cluster, when its
        object store has credentials configured

        :param cloudrestore.config.Cluster cluster: the cluster
        :param cloudrestore.config.StoreConfiguration configuration: the
            object store the cluster will archive its WALs to
        :param str|None server_name: the serverName plugin parameter
        :param cloudrestore.cancellation.Cancellation|None cancellation:
        """
        if not configuration.has_credentials:
            _logger.info(
                "No credentials for %s, skipping the WAL archive destination check",
                configuration.destination_path,
            )
            return
        env = self._credentials_env(cluster, configuration)
        server_name = server_name or configuration.server_name or cluster.name
        check_backup_destination(cluster, configuration, server_name, env, cancellation)

    def load_backup_from_external_cluster(
        self, cluster, server, parameters, configuration, cancellation=None
    ):
        """
        Choose the backup to restore from the catalog of the recovery source

        :param cloudrestore.config.Cluster cluster: the cluster
        :param cloudrestore.config.ExternalCluster server: the recovery source
        :param cloudrestore.config.PluginParameters parameters: the plugin
            parameters of the recovery source
        :param cloudrestore.config.StoreConfiguration configuration: its
            object store
        :param cloudrestore.cancellation.Cancellation|None cancellation:
        :return tuple[ResolvedBackup,types.MappingProxyType]: the backup and
            the environment needed to access it
        """
        server_name = parameters.server_name or configuration.server_name or server.name

        _logger.info(
            "Recovering from external cluster %s (server name: %s)",
            server.name,
            server_name,
        )

        env = self._credentials_env(cluster, configuration)
        catalog = get_backup_catalog(configuration, server_name, env, cancellation)
        descriptor = select_backup(catalog, cluster.recovery_target)
        _logger.info(
            "Target backup found: %s (begin WAL: %s, end time: %s)",
            descriptor.backup_id,
            descriptor.begin_wal,
            descriptor.end_time,
        )
        return ResolvedBackup(descriptor, configuration, server_name), env

    def restore_custom_wal_dir(self, cancellation=None):
        """
        Move pg_wal to the dedicated WAL volume

        :return bool: True if anything was changed
        """
        if not self.config.wal_volume:
            raise ConfigurationException(
                "The cluster has a WAL storage but no WAL volume has been configured"
            )
        return relocate_wal_directory(
            self.config.pgdata, self.config.wal_volume, cancellation=cancellation
        )
