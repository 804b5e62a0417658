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
The main cloudrestore module
"""

from cloudrestore.version import __version__  # noqa

#: Name under which the plugin is registered in the cluster definition
PLUGIN_NAME = "barman-cloud.cloudnative-pg.io"
