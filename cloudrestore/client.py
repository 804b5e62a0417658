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
Access to the control plane storing the ObjectStore objects and the
secrets holding the object store credentials.
"""

import json
import logging
import os
from abc import ABCMeta, abstractmethod

from cloudrestore.config import ObjectStore
from cloudrestore.exceptions import (
    ConfigurationException,
    CredentialsException,
    ObjectStoreNotFoundException,
)
from cloudrestore.utils import force_str

_logger = logging.getLogger(__name__)


class ControlPlaneClient(metaclass=ABCMeta):
    """
    Read-only access to the objects of a namespace
    """

    @abstractmethod
    def get_object_store(self, namespace, name):
        """
        Fetch an ObjectStore

        :param str namespace: the namespace of the object
        :param str name: the name of the object
        :rtype: cloudrestore.config.ObjectStore
        :raise ObjectStoreNotFoundException: if it doesn't exist
        """

    @abstractmethod
    def get_secret(self, namespace, name):
        """
        Fetch the decoded content of a secret

        :param str namespace: the namespace of the secret
        :param str name: the name of the secret
        :rtype: dict[str,str]
        :raise CredentialsException: if it doesn't exist
        """


class LocalControlPlaneClient(ControlPlaneClient):
    """
    Control plane client reading json documents from a local directory.

    The layout is::

        <root>/objectstores/<namespace>/<name>.json
        <root>/secrets/<namespace>/<name>.json

    where the secret document is a flat json object mapping each key to
    its decoded value.
    """

    def __init__(self, root_directory):
        self.root_directory = root_directory

    def _path(self, kind, namespace, name):
        return os.path.join(
            self.root_directory, kind, namespace or "default", "%s.json" % name
        )

    def _load(self, path):
        with open(path, "r", encoding="utf-8") as document:
            return json.load(document)

    def get_object_store(self, namespace, name):
        path = self._path("objectstores", namespace, name)
        try:
            data = self._load(path)
        except FileNotFoundError:
            raise ObjectStoreNotFoundException(
                "ObjectStore %s/%s not found" % (namespace, name)
            )
        except ValueError as e:
            raise ConfigurationException(
                "Invalid ObjectStore document %s: %s" % (path, force_str(e))
            )
        _logger.debug("Loaded ObjectStore %s/%s from %s", namespace, name, path)
        return ObjectStore.from_json(data)

    def get_secret(self, namespace, name):
        path = self._path("secrets", namespace, name)
        try:
            data = self._load(path)
        except FileNotFoundError:
            raise CredentialsException("Secret %s/%s not found" % (namespace, name))
        except ValueError as e:
            raise CredentialsException(
                "Invalid secret document %s: %s" % (path, force_str(e))
            )
        if not isinstance(data, dict):
            raise CredentialsException(
                "Invalid secret document %s: expected a json object" % path
            )
        return dict((key, force_str(value)) for key, value in data.items())
