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
Resolution of the object store credentials into the environment of the
barman-cloud commands.

The environment is built once per object store and passed explicitly to
every command: the environment of the current process is never changed.
"""

import logging
import os
import types

from cloudrestore.exceptions import CredentialsException
from cloudrestore.utils import mkpath

_logger = logging.getLogger(__name__)

#: Name of the file holding the Google application credentials
GOOGLE_CREDENTIALS_FILE = ".application_credentials.json"

_AWS_VARIABLES = (
    ("access_key_id", "AWS_ACCESS_KEY_ID"),
    ("secret_access_key", "AWS_SECRET_ACCESS_KEY"),
    ("session_token", "AWS_SESSION_TOKEN"),
    ("region", "AWS_DEFAULT_REGION"),
)

_AZURE_VARIABLES = (
    ("connection_string", "AZURE_STORAGE_CONNECTION_STRING"),
    ("storage_account", "AZURE_STORAGE_ACCOUNT"),
    ("storage_key", "AZURE_STORAGE_KEY"),
    ("storage_sas_token", "AZURE_STORAGE_SAS_TOKEN"),
)


class _SecretReader(object):
    """
    Reads the keys of the secrets of a namespace, fetching each secret once
    """

    def __init__(self, client, namespace):
        self.client = client
        self.namespace = namespace
        self._secrets = {}

    def read(self, selector):
        """
        :param cloudrestore.config.SecretKeySelector selector: the key
        :rtype: str
        :raise CredentialsException: if the secret or the key are missing
        """
        if selector.name not in self._secrets:
            self._secrets[selector.name] = self.client.get_secret(
                self.namespace, selector.name
            )
        secret = self._secrets[selector.name]
        if selector.key not in secret:
            raise CredentialsException(
                "Missing key %s in secret %s/%s"
                % (selector.key, self.namespace, selector.name)
            )
        return secret[selector.key]


def _set_variables(env, reader, credentials, variables):
    for attribute, variable in variables:
        selector = getattr(credentials, attribute)
        if selector is not None:
            env[variable] = reader.read(selector)


def _write_google_credentials(scratch_directory, content):
    """
    Store the Google application credentials in a file readable only
    by the current user

    :return str: the path of the file
    """
    mkpath(scratch_directory)
    path = os.path.join(scratch_directory, GOOGLE_CREDENTIALS_FILE)
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as credentials_file:
        credentials_file.write(content)
    return path


def env_set_cloud_credentials(
    client, namespace, configuration, base_env, scratch_directory
):
    """
    Build the environment for the barman-cloud commands accessing an
    object store.

    :param cloudrestore.client.ControlPlaneClient client: where the secrets are
    :param str namespace: the namespace of the secrets
    :param cloudrestore.config.StoreConfiguration configuration: the store
    :param collections.abc.Mapping base_env: the environment to start from
    :param str scratch_directory: where credential files can be written
    :return types.MappingProxyType: a read-only environment
    :raise CredentialsException: if a secret cannot be read
    """
    env = dict(base_env)
    credentials = configuration.credentials
    if credentials is None:
        return types.MappingProxyType(env)

    reader = _SecretReader(client, namespace)
    if credentials.aws is not None:
        if credentials.aws.inherit_from_iam_role:
            _logger.debug("Using the IAM role of the pod for AWS S3")
        else:
            _set_variables(env, reader, credentials.aws, _AWS_VARIABLES)
    elif credentials.azure is not None:
        azure = credentials.azure
        if azure.inherit_from_azure_ad or azure.use_default_azure_credentials:
            # The storage account is still needed to address the container
            if azure.storage_account is not None:
                env["AZURE_STORAGE_ACCOUNT"] = reader.read(azure.storage_account)
        else:
            _set_variables(env, reader, azure, _AZURE_VARIABLES)
    elif credentials.google is not None:
        google = credentials.google
        if google.application_credentials is not None:
            env["GOOGLE_APPLICATION_CREDENTIALS"] = _write_google_credentials(
                scratch_directory, reader.read(google.application_credentials)
            )
        elif not google.gke_environment:
            raise CredentialsException(
                "googleCredentials requires applicationCredentials "
                "outside of a GKE environment"
            )

    return types.MappingProxyType(env)
