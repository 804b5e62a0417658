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
This module is responsible for the configuration of the restore job and
for the typed model of the objects it reads from the control plane: the
cluster being bootstrapped and the object stores holding the backups.
"""

import logging
import os
import re

from cloudrestore import PLUGIN_NAME
from cloudrestore.catalog import RecoveryTarget
from cloudrestore.exceptions import ConfigurationException

_logger = logging.getLogger(__name__)

_TRUE_RE = re.compile(r"""^(true|t|yes|1|on)$""", re.IGNORECASE)
_FALSE_RE = re.compile(r"""^(false|f|no|0|off)$""", re.IGNORECASE)

#: Annotation disabling the check of the WAL archive destination
SKIP_EMPTY_WAL_ARCHIVE_CHECK = "cnpg.io/skipEmptyWalArchiveCheck"

DEFAULT_SCRATCH_DIRECTORY = "/controller"


def parse_boolean(value):
    """
    Parse a string to a boolean value

    :param str|bool value: string representing a boolean
    :raises ValueError: if the string is an invalid boolean representation
    """
    if isinstance(value, bool):
        return value
    if _TRUE_RE.match(value):
        return True
    if _FALSE_RE.match(value):
        return False
    raise ValueError(
        "Invalid boolean representation (must be one in: "
        "true|t|yes|1|on | false|f|no|0|off)"
    )


def _required(data, key, source):
    value = data.get(key)
    if not value:
        raise ConfigurationException("Missing required option %s in %s" % (key, source))
    return value


class SecretKeySelector(object):
    """
    Reference to a key inside a secret
    """

    def __init__(self, name, key):
        self.name = name
        self.key = key

    def __repr__(self):
        return "SecretKeySelector(name=%r, key=%r)" % (self.name, self.key)

    @classmethod
    def from_json(cls, data):
        if not data:
            return None
        return cls(
            _required(data, "name", "secret reference"),
            _required(data, "key", "secret reference"),
        )


class AwsCredentials(object):
    def __init__(
        self,
        access_key_id=None,
        secret_access_key=None,
        session_token=None,
        region=None,
        inherit_from_iam_role=False,
    ):
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.session_token = session_token
        self.region = region
        self.inherit_from_iam_role = inherit_from_iam_role

    @classmethod
    def from_json(cls, data):
        return cls(
            access_key_id=SecretKeySelector.from_json(data.get("accessKeyId")),
            secret_access_key=SecretKeySelector.from_json(data.get("secretAccessKey")),
            session_token=SecretKeySelector.from_json(data.get("sessionToken")),
            region=SecretKeySelector.from_json(data.get("region")),
            inherit_from_iam_role=parse_boolean(data.get("inheritFromIAMRole", False)),
        )


class AzureCredentials(object):
    def __init__(
        self,
        connection_string=None,
        storage_account=None,
        storage_key=None,
        storage_sas_token=None,
        inherit_from_azure_ad=False,
        use_default_azure_credentials=False,
    ):
        self.connection_string = connection_string
        self.storage_account = storage_account
        self.storage_key = storage_key
        self.storage_sas_token = storage_sas_token
        self.inherit_from_azure_ad = inherit_from_azure_ad
        self.use_default_azure_credentials = use_default_azure_credentials

    @classmethod
    def from_json(cls, data):
        return cls(
            connection_string=SecretKeySelector.from_json(data.get("connectionString")),
            storage_account=SecretKeySelector.from_json(data.get("storageAccount")),
            storage_key=SecretKeySelector.from_json(data.get("storageKey")),
            storage_sas_token=SecretKeySelector.from_json(data.get("storageSasToken")),
            inherit_from_azure_ad=parse_boolean(data.get("inheritFromAzureAD", False)),
            use_default_azure_credentials=parse_boolean(
                data.get("useDefaultAzureCredentials", False)
            ),
        )


class GoogleCredentials(object):
    def __init__(self, application_credentials=None, gke_environment=False):
        self.application_credentials = application_credentials
        self.gke_environment = gke_environment

    @classmethod
    def from_json(cls, data):
        return cls(
            application_credentials=SecretKeySelector.from_json(
                data.get("applicationCredentials")
            ),
            gke_environment=parse_boolean(data.get("gkeEnvironment", False)),
        )


class BarmanCredentials(object):
    """
    Credentials of an object store. At most one provider is configured.
    """

    def __init__(self, aws=None, azure=None, google=None):
        configured = [p for p in (aws, azure, google) if p is not None]
        if len(configured) > 1:
            raise ConfigurationException(
                "Only one of s3Credentials, azureCredentials and "
                "googleCredentials can be set"
            )
        self.aws = aws
        self.azure = azure
        self.google = google

    @classmethod
    def from_json(cls, data):
        """
        :param dict data: the object store configuration document
        :rtype: BarmanCredentials|None
        """
        aws = data.get("s3Credentials")
        azure = data.get("azureCredentials")
        google = data.get("googleCredentials")
        if aws is None and azure is None and google is None:
            return None
        return cls(
            aws=AwsCredentials.from_json(aws) if aws is not None else None,
            azure=AzureCredentials.from_json(azure) if azure is not None else None,
            google=GoogleCredentials.from_json(google) if google is not None else None,
        )


class StoreConfiguration(object):
    """
    Where and how to reach a barman-cloud object store
    """

    def __init__(
        self, destination_path, endpoint_url=None, server_name=None, credentials=None
    ):
        self.destination_path = destination_path
        self.endpoint_url = endpoint_url
        self.server_name = server_name
        self.credentials = credentials

    @property
    def has_credentials(self):
        return self.credentials is not None

    @classmethod
    def from_json(cls, data):
        return cls(
            destination_path=_required(data, "destinationPath", "object store"),
            endpoint_url=data.get("endpointURL") or None,
            server_name=data.get("serverName") or None,
            credentials=BarmanCredentials.from_json(data),
        )


class ObjectStore(object):
    """
    A named object store configuration, as stored in the control plane
    """

    def __init__(self, name, namespace, configuration):
        self.name = name
        self.namespace = namespace
        self.configuration = configuration

    @classmethod
    def from_json(cls, data):
        metadata = data.get("metadata", {})
        spec = data.get("spec", {})
        return cls(
            name=_required(metadata, "name", "object store metadata"),
            namespace=metadata.get("namespace"),
            configuration=StoreConfiguration.from_json(
                _required(spec, "configuration", "object store spec")
            ),
        )


class PluginParameters(object):
    """
    The parameters given to the plugin in the cluster definition.

    Unknown keys are reported and ignored, so that a cluster written for a
    newer version of the plugin can still be restored.
    """

    #: Recognised keys and the attribute storing their value
    KEYS = {
        "barmanObjectName": "barman_object_name",
        "serverName": "server_name",
    }

    def __init__(self, barman_object_name=None, server_name=None):
        self.barman_object_name = barman_object_name
        self.server_name = server_name

    @classmethod
    def from_mapping(cls, parameters, source="plugin"):
        """
        :param dict[str,str]|None parameters: the raw parameters
        :param str source: description of the owner, for error reporting
        :rtype: PluginParameters
        """
        parameters = parameters or {}
        cls._validate_with_keys(parameters, source)
        return cls(
            **dict(
                (attribute, parameters.get(key) or None)
                for key, attribute in cls.KEYS.items()
            )
        )

    @classmethod
    def _validate_with_keys(cls, parameters, source):
        """
        Check every parameter against the list of recognised keys
        """
        for name in sorted(parameters):
            if name not in cls.KEYS:
                _logger.warning(
                    'Ignoring unknown parameter "%s" in %s configuration', name, source
                )


class PluginConfiguration(object):
    def __init__(self, name, enabled=True, parameters=None):
        self.name = name
        self.enabled = enabled
        self.parameters = parameters or PluginParameters()

    @property
    def is_barman_cloud(self):
        return self.enabled and self.name == PLUGIN_NAME

    @classmethod
    def from_json(cls, data, source="plugin"):
        if not data:
            return None
        name = _required(data, "name", source)
        return cls(
            name=name,
            enabled=parse_boolean(data.get("enabled", True)),
            parameters=PluginParameters.from_mapping(
                data.get("parameters"), "%s %s" % (source, name)
            ),
        )


class ExternalCluster(object):
    def __init__(self, name, plugin_configuration=None):
        self.name = name
        self.plugin_configuration = plugin_configuration

    @classmethod
    def from_json(cls, data):
        name = _required(data, "name", "external cluster")
        return cls(
            name=name,
            plugin_configuration=PluginConfiguration.from_json(
                data.get("plugin"), "external cluster %s plugin" % name
            ),
        )


class BootstrapRecovery(object):
    def __init__(self, source=None, recovery_target=None):
        self.source = source
        self.recovery_target = recovery_target

    @classmethod
    def from_json(cls, data):
        if data is None:
            return None
        return cls(
            source=data.get("source") or None,
            recovery_target=RecoveryTarget.from_json(data.get("recoveryTarget")),
        )


class Cluster(object):
    """
    The cluster being bootstrapped by the restore job
    """

    def __init__(
        self,
        name,
        namespace=None,
        annotations=None,
        plugins=(),
        external_clusters=(),
        bootstrap_recovery=None,
        wal_storage=False,
    ):
        self.name = name
        self.namespace = namespace
        self.annotations = dict(annotations or {})
        self.plugins = list(plugins)
        self.external_clusters = list(external_clusters)
        self.bootstrap_recovery = bootstrap_recovery
        self.wal_storage = wal_storage

    @classmethod
    def from_json(cls, data):
        """
        Build a Cluster from its json document (metadata and spec)

        :param dict data: the cluster definition
        :rtype: Cluster
        """
        metadata = data.get("metadata", {})
        spec = data.get("spec", {})
        bootstrap = spec.get("bootstrap") or {}
        return cls(
            name=_required(metadata, "name", "cluster metadata"),
            namespace=metadata.get("namespace"),
            annotations=metadata.get("annotations"),
            plugins=[
                PluginConfiguration.from_json(item, "cluster plugin")
                for item in spec.get("plugins") or []
            ],
            external_clusters=[
                ExternalCluster.from_json(item)
                for item in spec.get("externalClusters") or []
            ],
            bootstrap_recovery=BootstrapRecovery.from_json(bootstrap.get("recovery")),
            wal_storage=bool(spec.get("walStorage")),
        )

    @property
    def recovery_source(self):
        """
        The name of the external cluster to recover from, if any
        """
        if self.bootstrap_recovery is None:
            return None
        return self.bootstrap_recovery.source

    @property
    def recovery_target(self):
        if self.bootstrap_recovery is None:
            return None
        return self.bootstrap_recovery.recovery_target

    def external_cluster(self, name):
        """
        :param str name: the name of the external cluster
        :rtype: ExternalCluster|None
        """
        for external_cluster in self.external_clusters:
            if external_cluster.name == name:
                return external_cluster
        return None

    def archive_plugin(self):
        """
        The configuration of this plugin as WAL archiver of the cluster

        :rtype: PluginConfiguration|None
        """
        found = None
        for plugin in self.plugins:
            if plugin.is_barman_cloud:
                found = plugin
        return found

    def is_empty_wal_archive_check_enabled(self):
        """
        The check of the WAL archive destination runs unless the cluster
        explicitly opts out
        """
        return self.annotations.get(SKIP_EMPTY_WAL_ARCHIVE_CHECK) != "enabled"


class RestoreJobConfig(object):
    """
    Configuration of the restore job itself
    """

    #: Environment variables and the attribute they set
    ENVIRONMENT = {
        "PGDATA": "pgdata",
        "CLOUDRESTORE_WAL_VOLUME": "wal_volume",
        "CLOUDRESTORE_SCRATCH_DIRECTORY": "scratch_directory",
    }

    def __init__(self, pgdata, wal_volume=None, scratch_directory=None):
        """
        :param str pgdata: the data directory to restore
        :param str|None wal_volume: the dedicated volume for pg_wal, if any
        :param str|None scratch_directory: directory for temporary files
        """
        if not pgdata:
            raise ConfigurationException("The PGDATA directory is required")
        self.pgdata = os.path.abspath(pgdata)
        self.wal_volume = os.path.abspath(wal_volume) if wal_volume else None
        self.scratch_directory = scratch_directory or DEFAULT_SCRATCH_DIRECTORY

    @property
    def recovery_temporary_directory(self):
        """
        Directory holding the temporary files of the recovery process
        """
        return os.path.join(self.scratch_directory, "recovery")

    @classmethod
    def from_environment(cls, env=None, **overrides):
        """
        Build the configuration from environment variables.

        Keyword arguments which are not None take the precedence over
        the environment.

        :param collections.abc.Mapping|None env: the environment, defaults
            to the one of the current process
        :rtype: RestoreJobConfig
        """
        env = os.environ if env is None else env
        values = dict(
            (attribute, env.get(variable) or None)
            for variable, attribute in cls.ENVIRONMENT.items()
        )
        values.update(
            (key, value) for key, value in overrides.items() if value is not None
        )
        return cls(**values)
