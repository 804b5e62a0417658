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

import json
from datetime import datetime, timedelta

from dateutil import tz

from cloudrestore import PLUGIN_NAME
from cloudrestore.catalog import DONE, BackupCatalog, BackupDescriptor
from cloudrestore.config import (
    AwsCredentials,
    BarmanCredentials,
    Cluster,
    SecretKeySelector,
    StoreConfiguration,
)

#: End times of the backups built by build_test_catalog
T1 = datetime(2025, 1, 1, 10, 0, 0, tzinfo=tz.tzutc())
T2 = datetime(2025, 1, 2, 10, 0, 0, tzinfo=tz.tzutc())
T3 = datetime(2025, 1, 3, 10, 0, 0, tzinfo=tz.tzutc())


def build_test_backup_descriptor(
    backup_id="20250101T090000",
    server_name="origin",
    backup_name=None,
    begin_wal="000000010000000000000002",
    end_wal="000000010000000000000003",
    begin_lsn="0/2000028",
    end_lsn="0/3000100",
    begin_time=None,
    end_time=None,
    timeline=1,
    status=DONE,
    error=None,
):
    """
    Create an 'Ad Hoc' BackupDescriptor object for testing purposes.

    When not given the begin time is one hour before T1 and the end time
    is T1.

    :rtype: cloudrestore.catalog.BackupDescriptor
    """
    if end_time is None:
        end_time = T1
    if begin_time is None:
        begin_time = end_time - timedelta(hours=1)
    return BackupDescriptor(
        backup_id=backup_id,
        server_name=server_name,
        backup_name=backup_name,
        begin_wal=begin_wal,
        end_wal=end_wal,
        begin_lsn=begin_lsn,
        end_lsn=end_lsn,
        begin_time=begin_time,
        end_time=end_time,
        timeline=timeline,
        status=status,
        error=error,
    )


def build_test_catalog():
    """
    A catalog with three completed backups ending at T1, T2 and T3.
    The last one belongs to timeline 2.

    :rtype: cloudrestore.catalog.BackupCatalog
    """
    return BackupCatalog(
        [
            build_test_backup_descriptor(
                backup_id="20250101T090000",
                begin_wal="000000010000000000000002",
                end_lsn="0/3000100",
                end_time=T1,
            ),
            build_test_backup_descriptor(
                backup_id="20250102T090000",
                begin_wal="000000010000000000000004",
                end_lsn="0/5000100",
                end_time=T2,
            ),
            build_test_backup_descriptor(
                backup_id="20250103T090000",
                begin_wal="000000020000000000000006",
                end_lsn="0/7000100",
                end_time=T3,
                timeline=2,
            ),
        ]
    )


def backup_descriptor_to_json(backup):
    """
    Convert a BackupDescriptor to an item of the ``backups_list`` array
    printed by ``barman-cloud-backup-list --format json``

    :rtype: dict
    """
    return {
        "backup_id": backup.backup_id,
        "backup_name": backup.backup_name,
        "server_name": backup.server_name,
        "begin_wal": backup.begin_wal,
        "end_wal": backup.end_wal,
        "begin_xlog": backup.begin_lsn,
        "end_xlog": backup.end_lsn,
        "begin_time": backup.begin_time.strftime("%a %b %d %H:%M:%S %Y")
        if backup.begin_time
        else None,
        "begin_time_iso": backup.begin_time.isoformat() if backup.begin_time else None,
        "end_time": backup.end_time.strftime("%a %b %d %H:%M:%S %Y")
        if backup.end_time
        else None,
        "end_time_iso": backup.end_time.isoformat() if backup.end_time else None,
        "timeline": backup.timeline,
        "status": backup.status,
        "error": backup.error,
    }


def build_backup_list_output(backups):
    """
    :param list[BackupDescriptor] backups: the backups
    :return str: the json document listing the backups
    """
    return json.dumps(
        {"backups_list": [backup_descriptor_to_json(backup) for backup in backups]}
    )


def build_store_configuration(
    destination_path="s3://backups/origin",
    endpoint_url=None,
    server_name=None,
    credentials=None,
):
    """
    Create a StoreConfiguration. Credentials default to AWS keys stored in
    the ``aws-creds`` secret.

    :rtype: cloudrestore.config.StoreConfiguration
    """
    if credentials is None:
        credentials = BarmanCredentials(
            aws=AwsCredentials(
                access_key_id=SecretKeySelector("aws-creds", "ACCESS_KEY_ID"),
                secret_access_key=SecretKeySelector("aws-creds", "ACCESS_SECRET_KEY"),
            )
        )
    return StoreConfiguration(
        destination_path=destination_path,
        endpoint_url=endpoint_url,
        server_name=server_name,
        credentials=credentials,
    )


def build_object_store_json(
    name="origin-store",
    namespace="default",
    destination_path="s3://backups/origin",
    endpoint_url=None,
    with_credentials=True,
):
    """
    The json document of an ObjectStore

    :rtype: dict
    """
    configuration = {"destinationPath": destination_path}
    if endpoint_url:
        configuration["endpointURL"] = endpoint_url
    if with_credentials:
        configuration["s3Credentials"] = {
            "accessKeyId": {"name": "aws-creds", "key": "ACCESS_KEY_ID"},
            "secretAccessKey": {"name": "aws-creds", "key": "ACCESS_SECRET_KEY"},
        }
    return {
        "metadata": {"name": name, "namespace": namespace},
        "spec": {"configuration": configuration},
    }


def build_cluster_json(
    name="cluster-restore",
    namespace="default",
    source="origin",
    recovery_target=None,
    source_parameters=None,
    archive_parameters=None,
    annotations=None,
    wal_storage=False,
):
    """
    The json document of a cluster recovering from the ``origin``
    external cluster.

    :param str|None source: the recovery source, None for a cluster
        without bootstrap.recovery
    :param dict|None recovery_target: the recoveryTarget stanza
    :param dict|None source_parameters: plugin parameters of the external
        cluster, defaults to the ``origin-store`` object store
    :param dict|None archive_parameters: when set the cluster archives its
        WALs with the plugin using these parameters
    :rtype: dict
    """
    if source_parameters is None:
        source_parameters = {"barmanObjectName": "origin-store"}
    spec = {
        "externalClusters": [
            {
                "name": "origin",
                "plugin": {"name": PLUGIN_NAME, "parameters": source_parameters},
            }
        ],
    }
    if source is not None:
        recovery = {"source": source}
        if recovery_target is not None:
            recovery["recoveryTarget"] = recovery_target
        spec["bootstrap"] = {"recovery": recovery}
    if archive_parameters is not None:
        spec["plugins"] = [
            {"name": PLUGIN_NAME, "enabled": True, "parameters": archive_parameters}
        ]
    if wal_storage:
        spec["walStorage"] = {"size": "1Gi"}
    return {
        "metadata": {
            "name": name,
            "namespace": namespace,
            "annotations": annotations or {},
        },
        "spec": spec,
    }


def build_test_cluster(**kwargs):
    """
    Same as build_cluster_json, returning a Cluster object

    :rtype: cloudrestore.config.Cluster
    """
    return Cluster.from_json(build_cluster_json(**kwargs))
