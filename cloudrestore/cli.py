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
Command line entry point of the restore job
"""

import argparse
import json
import logging
import os
import shlex
import signal
import sys

import cloudrestore
from cloudrestore.cancellation import Cancellation
from cloudrestore.client import LocalControlPlaneClient
from cloudrestore.cloud import RestoreFailure, configure_logging
from cloudrestore.config import Cluster, RestoreJobConfig
from cloudrestore.exceptions import (
    BackupListFailure,
    BackupRestoreFailure,
    CloudRestoreException,
    ConfigurationException,
    OperationCancelled,
)
from cloudrestore.restore import RestoreJobHooks
from cloudrestore.utils import force_str


class OperationErrorExit(SystemExit):
    """
    Dedicated exit code for errors where connectivity to the cloud provider was ok
    but the operation still failed.
    """

    def __init__(self):
        super(OperationErrorExit, self).__init__(1)


class NetworkErrorExit(SystemExit):
    """Dedicated exit code for network related errors."""

    def __init__(self):
        super(NetworkErrorExit, self).__init__(2)


class CLIErrorExit(SystemExit):
    """Dedicated exit code for CLI level errors."""

    def __init__(self):
        super(CLIErrorExit, self).__init__(3)


class GeneralErrorExit(SystemExit):
    """Dedicated exit code for general errors."""

    def __init__(self):
        super(GeneralErrorExit, self).__init__(4)


class RestoreArgumentParser(argparse.ArgumentParser):
    """ArgumentParser which exits with CLIErrorExit on errors."""

    def error(self, message):
        try:
            super(RestoreArgumentParser, self).error(message)
        except SystemExit:
            raise CLIErrorExit()


def load_cluster(path):
    """
    Read the cluster definition from a json file, "-" meaning stdin

    :param str path: the file name
    :rtype: Cluster
    """
    try:
        if path == "-":
            data = json.load(sys.stdin)
        else:
            with open(path, "r", encoding="utf-8") as cluster_file:
                data = json.load(cluster_file)
    except (OSError, ValueError) as exc:
        logging.error(
            "Unable to read the cluster definition %s: %s", path, force_str(exc)
        )
        raise CLIErrorExit()
    return Cluster.from_json(data)


def write_env_file(path, envs, base_env):
    """
    Write the variables added to the environment by the restore in a file
    readable only by the current user, one ``NAME=value`` per line

    :param str path: the file name
    :param collections.abc.Mapping envs: the environment of the restore
    :param collections.abc.Mapping base_env: the environment it started from
    """
    fd = os.open(path, os.O_WRONLY | os.O_CREAT | os.O_TRUNC, 0o600)
    with os.fdopen(fd, "w", encoding="utf-8") as env_file:
        for name in sorted(envs):
            if base_env.get(name) != envs[name]:
                env_file.write("%s=%s\n" % (name, shlex.quote(envs[name])))


def write_restore_config(path, restore_config):
    """
    :param str|None path: the output file, None for stdout
    :param str restore_config: the recovery configuration
    """
    if path is None:
        sys.stdout.write(restore_config)
        sys.stdout.flush()
        return
    with open(path, "w", encoding="utf-8") as output:
        output.write(restore_config)


def install_signal_handlers(cancellation):
    """
    Cancel the running restore on SIGTERM and SIGINT

    :param Cancellation cancellation: the token of the restore
    """

    def handler(signum, frame):
        cancellation.cancel("received signal %s" % signal.Signals(signum).name)

    signal.signal(signal.SIGTERM, handler)
    signal.signal(signal.SIGINT, handler)


def main(args=None):
    """
    The main script entry point

    :param list[str] args: the raw arguments list. When not provided
        it defaults to sys.args[1:]
    """
    config = parse_arguments(args)
    configure_logging(config)

    if config.capabilities:
        for capability in RestoreJobHooks(None, None).get_capabilities():
            print(capability)
        raise SystemExit(0)

    try:
        job_config = RestoreJobConfig.from_environment(
            pgdata=config.pgdata,
            wal_volume=config.wal_volume,
            scratch_directory=config.scratch_directory,
        )
    except ConfigurationException as exc:
        logging.error("Invalid restore job configuration: %s", force_str(exc))
        raise CLIErrorExit()

    try:
        cluster = load_cluster(config.cluster_json)
        client = LocalControlPlaneClient(config.control_plane_directory)
        hooks = RestoreJobHooks(client, job_config)

        cancellation = Cancellation(config.timeout)
        install_signal_handlers(cancellation)

        response = hooks.restore(cluster, cancellation)

        write_restore_config(config.output, response.restore_config)
        if config.env_file:
            write_env_file(config.env_file, response.envs, hooks.base_env)

    except OperationCancelled as exc:
        logging.error("Restore of the cluster was cancelled: %s", force_str(exc))
        raise OperationErrorExit()
    except (BackupRestoreFailure, BackupListFailure) as exc:
        logging.error("Restore failed: %s", force_str(exc))
        if exc.kind == RestoreFailure.CONNECTIVITY:
            raise NetworkErrorExit()
        raise OperationErrorExit()
    except CloudRestoreException as exc:
        logging.error("Restore failed: %s", force_str(exc))
        logging.debug("Exception details:", exc_info=exc)
        raise OperationErrorExit()
    except Exception as exc:
        logging.error("Restore exception: %s", force_str(exc))
        logging.debug("Exception details:", exc_info=exc)
        raise GeneralErrorExit()


def parse_arguments(args=None):
    """
    Parse command line arguments

    :return: The options parsed
    """
    parser = RestoreArgumentParser(
        description="This script restores the data directory of a PostgreSQL "
        "cluster from a backup made with barman-cloud-backup, and prints "
        "the configuration needed to complete the recovery.",
        add_help=False,
    )
    parser.add_argument(
        "cluster_json",
        nargs="?",
        help="the json definition of the cluster to restore, '-' for stdin",
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version="%%(prog)s %s" % cloudrestore.__version__,
    )
    parser.add_argument("--help", action="help", help="show this help message and exit")
    verbosity = parser.add_mutually_exclusive_group()
    verbosity.add_argument(
        "-v",
        "--verbose",
        action="count",
        default=0,
        help="increase output verbosity (e.g., -vv is more than -v)",
    )
    verbosity.add_argument(
        "-q",
        "--quiet",
        action="count",
        default=0,
        help="decrease output verbosity (e.g., -qq is less than -q)",
    )
    parser.add_argument(
        "--capabilities",
        help="print the capabilities of the restore hook and exit",
        action="store_true",
        default=False,
    )
    parser.add_argument(
        "--pgdata",
        help="the data directory to restore (defaults to $PGDATA)",
    )
    parser.add_argument(
        "--wal-volume",
        help="the volume pg_wal is moved to when the cluster has a WAL storage "
        "(defaults to $CLOUDRESTORE_WAL_VOLUME)",
    )
    parser.add_argument(
        "--scratch-directory",
        help="directory for the temporary files of the restore "
        "(defaults to $CLOUDRESTORE_SCRATCH_DIRECTORY or /controller)",
    )
    parser.add_argument(
        "--control-plane-directory",
        help="directory holding the ObjectStore and secret documents",
        default=os.environ.get("CLOUDRESTORE_CONTROL_PLANE_DIRECTORY"),
    )
    parser.add_argument(
        "--timeout",
        type=float,
        help="the time in seconds after which the restore is cancelled",
    )
    parser.add_argument(
        "--output",
        help="write the recovery configuration to this file instead of stdout",
    )
    parser.add_argument(
        "--env-file",
        help="write the environment needed by the recovery to this file",
    )
    config = parser.parse_args(args=args)
    if not config.capabilities:
        if not config.cluster_json:
            parser.error("the cluster definition is required")
        if not config.control_plane_directory:
            parser.error("the control plane directory is required")
    return config


if __name__ == "__main__":
    main()
