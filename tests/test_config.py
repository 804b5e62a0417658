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

import pytest

from cloudrestore import PLUGIN_NAME
from cloudrestore.config import (
    BarmanCredentials,
    Cluster,
    ObjectStore,
    PluginConfiguration,
    PluginParameters,
    RestoreJobConfig,
    StoreConfiguration,
    parse_boolean,
)
from cloudrestore.exceptions import ConfigurationException
from testing_helpers import build_cluster_json, build_object_store_json


# noinspection PyMethodMayBeStatic
class TestParseBoolean(object):
    @pytest.mark.parametrize("value", ["true", "T", "yes", "1", "On", True])
    def test_true(self, value):
        assert parse_boolean(value) is True

    @pytest.mark.parametrize("value", ["false", "F", "no", "0", "OFF", False])
    def test_false(self, value):
        assert parse_boolean(value) is False

    def test_invalid(self):
        with pytest.raises(ValueError):
            parse_boolean("maybe")


# noinspection PyMethodMayBeStatic
class TestObjectStore(object):
    def test_from_json(self):
        store = ObjectStore.from_json(
            build_object_store_json(
                name="origin-store",
                namespace="prod",
                destination_path="s3://backups/",
                endpoint_url="https://minio:9000",
            )
        )
        assert store.name == "origin-store"
        assert store.namespace == "prod"
        configuration = store.configuration
        assert configuration.destination_path == "s3://backups/"
        assert configuration.endpoint_url == "https://minio:9000"
        assert configuration.has_credentials
        assert configuration.credentials.aws.access_key_id.name == "aws-creds"
        assert configuration.credentials.aws.access_key_id.key == "ACCESS_KEY_ID"
        assert configuration.credentials.azure is None

    def test_without_credentials(self):
        store = ObjectStore.from_json(build_object_store_json(with_credentials=False))
        assert not store.configuration.has_credentials

    def test_missing_destination_path(self):
        with pytest.raises(ConfigurationException):
            StoreConfiguration.from_json({"endpointURL": "https://minio:9000"})

    def test_only_one_provider(self):
        with pytest.raises(ConfigurationException):
            BarmanCredentials.from_json(
                {
                    "s3Credentials": {"inheritFromIAMRole": True},
                    "googleCredentials": {"gkeEnvironment": True},
                }
            )

    def test_azure_credentials(self):
        credentials = BarmanCredentials.from_json(
            {
                "azureCredentials": {
                    "storageAccount": {"name": "azure", "key": "ACCOUNT"},
                    "inheritFromAzureAD": "true",
                }
            }
        )
        assert credentials.azure.storage_account.key == "ACCOUNT"
        assert credentials.azure.inherit_from_azure_ad is True
        assert credentials.azure.use_default_azure_credentials is False


# noinspection PyMethodMayBeStatic
class TestPluginParameters(object):
    def test_from_mapping(self):
        parameters = PluginParameters.from_mapping(
            {"barmanObjectName": "store", "serverName": "old-cluster"}
        )
        assert parameters.barman_object_name == "store"
        assert parameters.server_name == "old-cluster"

    def test_empty(self):
        parameters = PluginParameters.from_mapping(None)
        assert parameters.barman_object_name is None
        assert parameters.server_name is None

    def test_unknown_keys_are_ignored(self, caplog):
        # GIVEN plugin parameters with a key unknown to this version
        caplog.set_level(logging.WARNING)

        # WHEN they are parsed
        parameters = PluginParameters.from_mapping(
            {"barmanObjectName": "store", "compression": "zstd"}, "external cluster"
        )

        # THEN the known keys are loaded
        assert parameters.barman_object_name == "store"
        assert not hasattr(parameters, "compression")
        # AND the unknown one is reported
        assert (
            'Ignoring unknown parameter "compression" in external cluster '
            "configuration" in caplog.text
        )


# noinspection PyMethodMayBeStatic
class TestCluster(object):
    def test_from_json(self):
        cluster = Cluster.from_json(
            build_cluster_json(
                name="cluster-restore",
                namespace="prod",
                recovery_target={"targetTime": "2025-01-02 22:00:00"},
                archive_parameters={"barmanObjectName": "archive-store"},
                wal_storage=True,
            )
        )
        assert cluster.name == "cluster-restore"
        assert cluster.namespace == "prod"
        assert cluster.recovery_source == "origin"
        assert cluster.recovery_target.target_time == "2025-01-02 22:00:00"
        assert cluster.wal_storage is True
        origin = cluster.external_cluster("origin")
        assert origin.plugin_configuration.is_barman_cloud
        assert origin.plugin_configuration.parameters.barman_object_name == (
            "origin-store"
        )
        assert cluster.external_cluster("missing") is None
        assert cluster.archive_plugin().parameters.barman_object_name == (
            "archive-store"
        )

    def test_no_recovery(self):
        cluster = Cluster.from_json(build_cluster_json(source=None))
        assert cluster.recovery_source is None
        assert cluster.recovery_target is None
        assert cluster.archive_plugin() is None
        assert cluster.wal_storage is False

    def test_archive_plugin_ignores_other_plugins(self):
        cluster = Cluster(
            "cluster",
            plugins=[
                PluginConfiguration("other-plugin.example.com"),
                PluginConfiguration(PLUGIN_NAME, enabled=False),
            ],
        )
        assert cluster.archive_plugin() is None

    @pytest.mark.parametrize(
        ("annotations", "enabled"),
        [
            ({}, True),
            ({"cnpg.io/skipEmptyWalArchiveCheck": "enabled"}, False),
            ({"cnpg.io/skipEmptyWalArchiveCheck": "disabled"}, True),
        ],
    )
    def test_empty_wal_archive_check(self, annotations, enabled):
        cluster = Cluster.from_json(build_cluster_json(annotations=annotations))
        assert cluster.is_empty_wal_archive_check_enabled() is enabled

    def test_missing_name(self):
        with pytest.raises(ConfigurationException):
            Cluster.from_json({"metadata": {}, "spec": {}})


# noinspection PyMethodMayBeStatic
class TestRestoreJobConfig(object):
    def test_from_environment(self):
        config = RestoreJobConfig.from_environment(
            {
                "PGDATA": "/var/lib/postgresql/data/pgdata",
                "CLOUDRESTORE_WAL_VOLUME": "/var/lib/postgresql/wal",
            }
        )
        assert config.pgdata == "/var/lib/postgresql/data/pgdata"
        assert config.wal_volume == "/var/lib/postgresql/wal"
        assert config.scratch_directory == "/controller"
        assert config.recovery_temporary_directory == "/controller/recovery"

    def test_overrides(self):
        config = RestoreJobConfig.from_environment(
            {"PGDATA": "/env/pgdata", "CLOUDRESTORE_SCRATCH_DIRECTORY": "/scratch"},
            pgdata="/cli/pgdata",
            wal_volume=None,
        )
        assert config.pgdata == "/cli/pgdata"
        assert config.wal_volume is None
        assert config.scratch_directory == "/scratch"

    def test_relative_paths_are_made_absolute(self, tmpdir, monkeypatch):
        monkeypatch.chdir(tmpdir.strpath)
        config = RestoreJobConfig.from_environment(
            {"PGDATA": "pgdata", "CLOUDRESTORE_WAL_VOLUME": "volumes/wal"}
        )
        assert config.pgdata == tmpdir.join("pgdata").strpath
        assert config.wal_volume == tmpdir.join("volumes", "wal").strpath

    def test_pgdata_required(self):
        with pytest.raises(ConfigurationException):
            RestoreJobConfig.from_environment({})
